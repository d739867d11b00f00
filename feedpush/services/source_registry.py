"""
Package source registry for feedpush.

Holds the sources known to a publish run: the ones loaded once from
external configuration, plus the ones created on demand for feeds that
configuration does not declare. The registry only grows; nothing is
removed, renamed or written back.
"""

import logging
import os
import threading
from typing import Iterable, List, Tuple, Dict

from ..domain.source import PackageSource
from ..exit_codes import InvalidArgumentError

logger = logging.getLogger(__name__)

V3_INDEX_SUFFIX = "/v3/index.json"

# Prefix of the names of sources created by feedpush
SOURCE_NAME_PREFIX = "FP-"


def normalize_local_path(path: str) -> str:
    return os.path.normpath(os.path.abspath(os.path.expanduser(path)))


class SourceRegistry:
    """
    Ordered, deduplicated list of package sources.

    Sources created here are inserted ahead of every preloaded source,
    in creation order, so they are looked up first and stay grouped.

    Example:
        registry = SourceRegistry.from_entries([{"name": "nuget.org", "location": url}])
        source = registry.find_or_create_from_url("nuget", url)
        assert source.name == "nuget.org"
    """

    def __init__(self, preloaded: Iterable[PackageSource] = ()):
        self._sources: List[PackageSource] = list(preloaded)
        self._created_count = 0
        self._lock = threading.Lock()

    @classmethod
    def from_entries(cls, entries: Iterable[Dict[str, str]]) -> 'SourceRegistry':
        """
        Build from configuration entries ({"name", "location"}).

        An entry whose location is already registered is dropped; the
        first one keeps its name.
        """
        sources = []
        seen = set()
        for entry in entries:
            source = PackageSource.from_location(entry['name'], entry['location'])
            if source.is_local:
                source = PackageSource(source.name, normalize_local_path(source.location), True)
            if (source.is_local, source.location) in seen:
                logger.debug(f"Skipped source {source.name}, {source.location} is already registered")
                continue
            seen.add((source.is_local, source.location))
            sources.append(source)
        return cls(sources)

    def find_or_create_from_url(self, name: str, url_v3: str) -> PackageSource:
        """
        Get the remote source for url_v3, creating it when unknown.

        An existing source keeps its own name; name is only used for a
        new source, as SOURCE_NAME_PREFIX + name.

        Raises:
            InvalidArgumentError: If url_v3 is not a v3 index url or name is empty
        """
        if not url_v3 or not url_v3.endswith(V3_INDEX_SUFFIX):
            raise InvalidArgumentError(f"Feed requires a {V3_INDEX_SUFFIX} url, got '{url_v3}'.")
        if not name or not name.strip():
            raise InvalidArgumentError("Feed name must not be empty.")

        with self._lock:
            for source in self._sources:
                if not source.is_local and source.location == url_v3:
                    return source
            return self._insert(PackageSource(SOURCE_NAME_PREFIX + name, url_v3, False))

    def find_or_create_from_local_path(self, local_path: str) -> PackageSource:
        """
        Get the local source for a directory, creating it when unknown.

        Paths are compared once made absolute and normalized.

        Raises:
            InvalidArgumentError: If local_path is empty
        """
        if not local_path or not local_path.strip():
            raise InvalidArgumentError("Local feed path must not be empty.")
        path = normalize_local_path(local_path)

        with self._lock:
            for source in self._sources:
                if source.is_local and normalize_local_path(source.location) == path:
                    return source
            last_part = os.path.basename(path) or path
            return self._insert(PackageSource(SOURCE_NAME_PREFIX + last_part, path, True))

    def _insert(self, source: PackageSource) -> PackageSource:
        self._sources.insert(self._created_count, source)
        self._created_count += 1
        logger.debug(f"Registered source {source.name} => {source.location}")
        return source

    def list_all(self) -> Tuple[PackageSource, ...]:
        """Snapshot of all sources in lookup order."""
        with self._lock:
            return tuple(self._sources)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sources)
