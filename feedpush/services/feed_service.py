"""
Feed publishing service for feedpush.

A Feed is one publish destination. Its kind selects, through
FEED_CAPABILITIES, how the push API key is resolved and what runs once
every package is pushed. Each feed goes through its lifecycle once:

    UNINITIALIZED -> PENDING_COMPUTED -> PUSHED -> [PROMOTED] -> DONE

FeedPublisher drives that lifecycle: it computes the packages a feed still
needs (existence check against the feed), pushes them, then runs the
post-push hook (view promotion for Azure DevOps feeds with views).
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple, Union

from ..domain.artifact import ArtifactInstance
from ..domain.operation import FeedPublishResult, PublishStatus, PublishSummary
from ..domain.source import PackageSource
from ..exit_codes import CommandError, ConfigError, FeedStateError, InvalidArgumentError
from ..infra.azure_client import AzurePackagingClient, feed_index_url
from ..infra.local_store import LocalFeedStore
from ..infra.nuget_client import NuGetFeedClient, PUSH_TIMEOUT_SECONDS
from .credentials import (
    endpoint_credential,
    no_api_key,
    resolve_organization_api_key,
    resolve_remote_api_key,
    secret_key_name,
)
from .session import PublishSession
from .source_registry import SOURCE_NAME_PREFIX, normalize_local_path

logger = logging.getLogger(__name__)


class FeedKind(Enum):
    """The closed set of feed variants."""
    LOCAL = "local"
    REMOTE = "remote"
    ORGANIZATION = "organization"
    ORGANIZATION_VIEWS = "organization-views"


class FeedState(Enum):
    UNINITIALIZED = "uninitialized"
    PENDING_COMPUTED = "pending_computed"
    PUSHED = "pushed"
    PROMOTED = "promoted"
    DONE = "done"


@dataclass
class Feed:
    """
    A publish destination and its lifecycle state.

    Attributes:
        kind: Feed variant
        source: Registered source backing the feed (gives name and url)
        secret_key_name: Environment variable holding the push secret
        organization: Azure DevOps organization (organization-views feeds)
        feed_id: Azure DevOps feed identifier (organization-views feeds)
        pending: Packages still to push, keyed like the candidate map
        already_published_count: Candidates found on the feed
    """
    kind: FeedKind
    source: PackageSource
    secret_key_name: Optional[str] = None
    organization: Optional[str] = None
    feed_id: Optional[str] = None
    pending: Dict[str, ArtifactInstance] = field(default_factory=dict)
    already_published_count: int = 0
    promotions: int = 0
    state: FeedState = FeedState.UNINITIALIZED

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def url(self) -> str:
        return self.source.location

    @property
    def is_local(self) -> bool:
        return self.source.is_local


ApiKeyResolver = Callable[[PublishSession, Feed], Optional[str]]
PostPushHook = Callable[['FeedPublisher', Feed], None]


def _no_hook(publisher: 'FeedPublisher', feed: Feed) -> None:
    return None


def _promote_to_views(publisher: 'FeedPublisher', feed: Feed) -> None:
    """Promote every pushed package into each view of its quality."""
    secret = publisher.session.interactive_env(feed.secret_key_name)
    for artifact in feed.pending.values():
        for view in artifact.quality_labels:
            publisher.packaging.promote(
                feed.organization,
                feed.feed_id,
                secret,
                artifact.name,
                artifact.version.package_string,
                view,
            )
            feed.promotions += 1
    feed.state = FeedState.PROMOTED


@dataclass(frozen=True)
class FeedCapabilities:
    resolve_api_key: ApiKeyResolver
    on_all_pushed: PostPushHook = _no_hook


FEED_CAPABILITIES: Dict[FeedKind, FeedCapabilities] = {
    FeedKind.LOCAL: FeedCapabilities(no_api_key),
    FeedKind.REMOTE: FeedCapabilities(resolve_remote_api_key),
    FeedKind.ORGANIZATION: FeedCapabilities(resolve_organization_api_key),
    FeedKind.ORGANIZATION_VIEWS: FeedCapabilities(resolve_organization_api_key, _promote_to_views),
}


# Feed factories

def create_local_feed(session: PublishSession, path: str) -> Feed:
    """Directory feed. Pushes are always allowed."""
    return Feed(kind=FeedKind.LOCAL, source=session.registry.find_or_create_from_local_path(path))


def create_remote_feed(session: PublishSession, name: str, url_v3: str,
                       secret_key_name: Optional[str]) -> Feed:
    """Remote feed whose API key is the value of secret_key_name."""
    source = session.registry.find_or_create_from_url(name, url_v3)
    return Feed(kind=FeedKind.REMOTE, source=source, secret_key_name=secret_key_name)


def create_organization_feed(session: PublishSession, name: str, url_v3: str,
                             secret_key_name: Optional[str]) -> Feed:
    """Azure DevOps feed without view handling."""
    source = session.registry.find_or_create_from_url(name, url_v3)
    feed = Feed(kind=FeedKind.ORGANIZATION, source=source, secret_key_name=secret_key_name)
    session.register_organization_feed(feed)
    return feed


def create_organization_views_feed(session: PublishSession, organization: str, feed_id: str) -> Feed:
    """
    Azure DevOps feed with @CI, @Preview, @Latest and @Stable views.

    Named "<organization>-<feed_id>" (unless the url is already registered)
    and authenticated by the AZURE_FEED_<ORG>_PAT secret.
    """
    if not organization or not organization.strip():
        raise InvalidArgumentError("Organization must not be empty.")
    if not feed_id or not feed_id.strip():
        raise InvalidArgumentError("Feed identifier must not be empty.")
    source = session.registry.find_or_create_from_url(
        f"{organization}-{feed_id}",
        feed_index_url(organization, feed_id),
    )
    feed = Feed(
        kind=FeedKind.ORGANIZATION_VIEWS,
        source=source,
        secret_key_name=secret_key_name(organization),
        organization=organization,
        feed_id=feed_id,
    )
    session.register_organization_feed(feed)
    return feed


def create_feed_from_config(session: PublishSession, entry: Mapping[str, Any]) -> Feed:
    """
    Create a feed from a configuration entry.

    Entries:
        {"type": "local", "path": "./feed"}
        {"type": "remote", "name": "nuget", "url": ".../v3/index.json", "secret_key_name": "NUGET_API_KEY"}
        {"type": "organization", "name": "x", "url": "...", "secret_key_name": "X_PAT"}
        {"type": "organization-views", "organization": "my-org", "feed": "my-feed"}

    Raises:
        ConfigError: On an unknown type or a missing field
    """
    def required(key: str) -> str:
        value = entry.get(key)
        if not value:
            raise ConfigError(f"Feed entry of type '{entry.get('type')}' requires '{key}': {dict(entry)!r}")
        return value

    kind = entry.get('type')
    if kind == FeedKind.LOCAL.value:
        return create_local_feed(session, required('path'))
    if kind == FeedKind.REMOTE.value:
        return create_remote_feed(session, required('name'), required('url'), entry.get('secret_key_name'))
    if kind == FeedKind.ORGANIZATION.value:
        secret = entry.get('secret_key_name')
        if not secret and entry.get('organization'):
            secret = secret_key_name(entry['organization'])
        return create_organization_feed(session, required('name'), required('url'), secret)
    if kind == FeedKind.ORGANIZATION_VIEWS.value:
        return create_organization_views_feed(session, required('organization'), required('feed'))
    raise ConfigError(f"Unknown feed type '{kind}'. Expected one of: {', '.join(k.value for k in FeedKind)}")


def feed_entry_names(session: PublishSession, entry: Mapping[str, Any]) -> Set[str]:
    """
    Names a configured feed entry can be selected by, without creating it.

    Covers the entry's own name, the prefixed name a new source would get,
    and the name of an already registered source with the same location.
    """
    kind = entry.get('type')
    if kind == FeedKind.LOCAL.value:
        location = normalize_local_path(entry['path']) if entry.get('path') else None
        bare = os.path.basename(location) if location else None
    elif kind == FeedKind.ORGANIZATION_VIEWS.value:
        organization, feed_id = entry.get('organization'), entry.get('feed')
        location = feed_index_url(organization, feed_id) if organization and feed_id else None
        bare = f"{organization}-{feed_id}" if location else None
    else:
        location = entry.get('url')
        bare = entry.get('name')

    names = {bare, SOURCE_NAME_PREFIX + bare} if bare else set()
    if location:
        names.update(s.name for s in session.registry.list_all() if s.location == location)
    return names


class FeedPublisher:
    """
    Runs the publish lifecycle of feeds within one session.

    Example:
        publisher = FeedPublisher(session)
        publisher.initialize(feed, {a.key: a for a in artifacts})
        result = publisher.publish(feed, "./releases")
    """

    def __init__(self, session: PublishSession, packaging: Optional[AzurePackagingClient] = None):
        self.session = session
        settings = session.publish_settings
        self.timeout = settings.get('http_timeout_seconds', 30)
        self.extension = settings.get('package_extension', 'nupkg')
        self.max_concurrent_checks = max(1, int(settings.get('max_concurrent_checks', 1)))
        self.packaging = packaging or AzurePackagingClient(session.http, timeout=self.timeout)
        self._clients: Dict[str, Union[NuGetFeedClient, LocalFeedStore]] = {}
        self._clients_lock = threading.Lock()

    def client_for(self, feed: Feed) -> Union[NuGetFeedClient, LocalFeedStore]:
        """
        Feed client, one per source location.

        Remote clients authenticate with the endpoint credential exported
        for their url, if any.
        """
        with self._clients_lock:
            client = self._clients.get(feed.url)
            if client is None:
                if feed.is_local:
                    client = LocalFeedStore(feed.url, extension=self.extension, feed_name=feed.name)
                else:
                    client = NuGetFeedClient(
                        feed.url,
                        self.session.http,
                        timeout=self.timeout,
                        feed_name=feed.name,
                        auth=endpoint_credential(self.session, feed.url),
                    )
                self._clients[feed.url] = client
            return client

    def compute_pending(
        self,
        feed: Feed,
        candidates: Mapping[str, ArtifactInstance],
    ) -> Tuple[Dict[str, ArtifactInstance], int]:
        """
        Split candidates into those to push and a count of those already published.

        Checks are independent and may run concurrently; results are taken
        in candidate order so the outcome does not depend on scheduling.
        """
        if candidates is None:
            raise InvalidArgumentError("Candidate artifacts must not be None.")
        self.session.ensure_initialized()
        client = self.client_for(feed)
        items = list(candidates.items())

        def check(artifact: ArtifactInstance) -> bool:
            return client.exists(artifact.name, artifact.version.package_string)

        workers = min(self.max_concurrent_checks, len(items))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(check, artifact) for _, artifact in items]
                found = [f.result() for f in futures]
        else:
            found = [check(artifact) for _, artifact in items]

        pending: Dict[str, ArtifactInstance] = {}
        already_published = 0
        for (key, artifact), exists in zip(items, found):
            if exists:
                already_published += 1
            else:
                logger.debug(f"Package {artifact.name} must be published to feed '{feed.name}'.")
                pending[key] = artifact
        logger.debug(f" ==> {len(pending)} package(s) must be published to feed '{feed.name}'.")
        return pending, already_published

    def initialize(self, feed: Feed, candidates: Mapping[str, ArtifactInstance]) -> None:
        """
        Compute the feed's pending set, replacing any previous one.

        Raises:
            FeedStateError: If the feed was already published
        """
        if feed.state not in (FeedState.UNINITIALIZED, FeedState.PENDING_COMPUTED):
            raise FeedStateError(f"Feed '{feed.name}' cannot be initialized in state {feed.state.value}.")
        pending, already_published = self.compute_pending(feed, candidates)
        feed.pending = pending
        feed.already_published_count = already_published
        feed.promotions = 0
        feed.state = FeedState.PENDING_COMPUTED

    def package_file(self, output_dir: str, artifact: ArtifactInstance) -> str:
        return os.path.join(output_dir, artifact.file_name(self.extension))

    def publish(self, feed: Feed, output_dir: str) -> FeedPublishResult:
        """
        Push the feed's pending packages from output_dir.

        A feed whose API key cannot be resolved is skipped, which is a
        success. Any push or promotion failure is raised.

        Raises:
            FeedStateError: If initialize() has not run
            TransportError: On push or promotion failure
        """
        if feed.state != FeedState.PENDING_COMPUTED:
            raise FeedStateError(f"Feed '{feed.name}' must be initialized before publishing (state {feed.state.value}).")
        capabilities = FEED_CAPABILITIES[feed.kind]

        api_key = None
        if not feed.is_local:
            api_key = capabilities.resolve_api_key(self.session, feed)
            if not api_key:
                message = f"Could not resolve API key. Push to '{feed.name}' => '{feed.url}' is skipped."
                logger.info(message)
                feed.state = FeedState.DONE
                return self._result(feed, PublishStatus.SKIPPED, pushed=[], message=message)

        self.session.ensure_initialized()
        logger.info(f"Pushing packages to '{feed.name}' => '{feed.url}'.")
        client = self.client_for(feed)
        pushed: List[str] = []
        for artifact in feed.pending.values():
            path = self.package_file(output_dir, artifact)
            if feed.is_local:
                client.push(path, artifact.name, artifact.version.package_string)
            else:
                client.push(path, api_key, timeout=PUSH_TIMEOUT_SECONDS)
            pushed.append(str(artifact))
        feed.state = FeedState.PUSHED

        capabilities.on_all_pushed(self, feed)
        feed.state = FeedState.DONE
        return self._result(feed, PublishStatus.SUCCESS, pushed=pushed)

    def _result(self, feed: Feed, status: PublishStatus, pushed: List[str],
                message: Optional[str] = None, error: Optional[str] = None) -> FeedPublishResult:
        return FeedPublishResult(
            feed_name=feed.name,
            url=feed.url,
            status=status,
            pushed=pushed,
            already_published=feed.already_published_count,
            promotions=feed.promotions,
            message=message,
            error=error,
        )

    def _run_one(self, feed: Feed, candidates: Mapping[str, ArtifactInstance], output_dir: str,
                 dry_run: bool, keep_going: bool) -> FeedPublishResult:
        try:
            self.initialize(feed, candidates)
            if dry_run:
                return self._result(
                    feed, PublishStatus.DRY_RUN,
                    pushed=[str(a) for a in feed.pending.values()],
                    message="Packages that would be pushed",
                )
            return self.publish(feed, output_dir)
        except CommandError as e:
            if not keep_going:
                raise
            logger.error(f"Publishing to '{feed.name}' failed: {e}")
            return self._result(feed, PublishStatus.FAILED, pushed=[], error=str(e))

    def run(
        self,
        feeds: List[Feed],
        candidates: Mapping[str, ArtifactInstance],
        output_dir: str,
        parallel: Optional[int] = None,
        dry_run: bool = False,
        keep_going: bool = False,
    ) -> PublishSummary:
        """
        Publish candidates to every feed.

        Args:
            feeds: Feeds to publish to
            candidates: All artifacts to publish, keyed by artifact key
            output_dir: Directory holding the package files
            parallel: Number of feeds processed at once (default from config)
            dry_run: Stop after computing pending packages
            keep_going: Record a failed feed and continue instead of raising

        Returns:
            PublishSummary with one detail per feed, in feed order
        """
        if parallel is None:
            parallel = self.session.publish_settings.get('max_concurrent_feeds', 1)
        parallel = max(1, int(parallel))
        summary = PublishSummary(dry_run=dry_run)

        if parallel > 1 and len(feeds) > 1:
            with ThreadPoolExecutor(max_workers=parallel) as executor:
                futures = [
                    executor.submit(self._run_one, feed, candidates, output_dir, dry_run, keep_going)
                    for feed in feeds
                ]
                results = [f.result() for f in futures]
        else:
            results = [self._run_one(feed, candidates, output_dir, dry_run, keep_going) for feed in feeds]

        for result in results:
            summary.add_detail(result)
        return summary
