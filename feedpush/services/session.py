"""
Publish session for feedpush.

One PublishSession is built per run and handed to every component. It owns
what feeds share: the source registry, the HTTP session, the environment
used for secrets, and the one-shot credential initialization.
"""

import logging
import os
import threading
from typing import Any, Dict, List, MutableMapping, Optional

import click
import requests

from ..config import get_default_config, get_preloaded_sources
from .credentials import prepare_credential_provider_environment
from .source_registry import SourceRegistry

logger = logging.getLogger(__name__)


class PublishSession:
    """
    Context shared by the feeds of one publish run.

    The HTTP session is shared to reuse connections and gets no default
    headers.

    Example:
        with PublishSession.from_config(load_config()) as session:
            feed = create_local_feed(session, "./feed")
    """

    def __init__(
        self,
        registry: Optional[SourceRegistry] = None,
        config: Optional[Dict[str, Any]] = None,
        http: Optional[requests.Session] = None,
        environ: Optional[MutableMapping[str, str]] = None,
        interactive: bool = False,
    ):
        self.config = config if config is not None else get_default_config()
        self.registry = registry if registry is not None else SourceRegistry()
        self.http = http if http is not None else requests.Session()
        self.environ = os.environ if environ is None else environ
        self.interactive = interactive
        self.organization_feeds: List[Any] = []
        self._initialized = False
        self._init_lock = threading.Lock()
        self._prompt_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Dict[str, Any], interactive: Optional[bool] = None, **kwargs) -> 'PublishSession':
        """Build a session whose registry is seeded from configured sources."""
        if interactive is None:
            interactive = bool(config.get('publish', {}).get('interactive', False))
        registry = SourceRegistry.from_entries(get_preloaded_sources(config))
        return cls(registry=registry, config=config, interactive=interactive, **kwargs)

    @property
    def publish_settings(self) -> Dict[str, Any]:
        return self.config.get('publish', {})

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def interactive_env(self, name: str) -> Optional[str]:
        """
        Value of an environment variable, asking for it when interactive.

        A value typed at the prompt is stored back into the environment so
        the question is asked once.
        """
        if not name:
            return None
        value = self.environ.get(name)
        if value or not self.interactive:
            return value or None

        with self._prompt_lock:
            value = self.environ.get(name)
            if value:
                return value
            value = click.prompt(
                f"Environment variable '{name}' is not defined. Enter its value (empty to skip)",
                default='',
                show_default=False,
                hide_input=True,
            )
            if value:
                self.environ[name] = value
            return value or None

    def register_organization_feed(self, feed) -> None:
        self.organization_feeds.append(feed)

    def ensure_initialized(self) -> None:
        """Log the sources and export provider credentials, once per session."""
        with self._init_lock:
            if self._initialized:
                return
            logger.info("Initializing with sources:")
            for source in self.registry.list_all():
                logger.info(f"{source.name} => {source.location}")
            prepare_credential_provider_environment(self)
            self._initialized = True

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> 'PublishSession':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
