"""
Local directory feed infrastructure for feedpush.

A local feed is a plain directory. Packages are written in the
hierarchical layout that NuGet tooling reads:

    <root>/<id>/<version>/<id>.<version>.nupkg
    <root>/<id>/<version>/<id>.<version>.nupkg.sha512

with lowercase id and version. Flat directories holding
<Id>.<Version>.nupkg files are recognized when checking existence.
"""

import base64
import hashlib
import logging
import shutil
from pathlib import Path

from ..exit_codes import TransportError

logger = logging.getLogger(__name__)


class LocalFeedStore:
    """
    Local directory feed.

    Example:
        store = LocalFeedStore("/tmp/feed")
        if not store.exists("MyLib", "1.0.0"):
            store.push("out/MyLib.1.0.0.nupkg", "MyLib", "1.0.0")
    """

    def __init__(self, root: str, extension: str = 'nupkg', feed_name: str = None):
        self.root = Path(root)
        self.extension = extension
        self.feed_name = feed_name or str(root)

    def package_path(self, package_id: str, version: str) -> Path:
        """Path of a package in the hierarchical layout."""
        lower_id = package_id.lower()
        lower_version = version.lower()
        return self.root / lower_id / lower_version / f"{lower_id}.{lower_version}.{self.extension}"

    def exists(self, package_id: str, version: str) -> bool:
        if self.package_path(package_id, version).is_file():
            return True
        flat = self.root / f"{package_id}.{version}.{self.extension}"
        return flat.is_file()

    def push(self, file_path: str, package_id: str, version: str) -> None:
        """
        Copy a package file into the feed directory.

        Raises:
            TransportError: If the file is missing or cannot be written
        """
        source = Path(file_path)
        target = self.package_path(package_id, version)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
            digest = hashlib.sha512(target.read_bytes()).digest()
            target.with_name(target.name + '.sha512').write_text(base64.b64encode(digest).decode('ascii'))
        except OSError as e:
            raise TransportError(
                f"Unable to copy {source.name} to local feed: {e}",
                feed_name=self.feed_name,
                url=str(self.root),
            ) from e
        logger.info(f"Copied {source.name} to {target}")
