"""
feedpush - Publish versioned build packages to NuGet feeds.

Quick Start:
    from feedpush import (
        ArtifactInstance, FeedPublisher, PublishSession,
        create_local_feed, create_organization_views_feed,
    )

    with PublishSession(interactive=False) as session:
        feeds = [
            create_local_feed(session, "./feed"),
            create_organization_views_feed(session, "my-org", "my-feed"),
        ]
        artifacts = [ArtifactInstance.create("MyLib", "1.2.0-ci.7")]
        summary = FeedPublisher(session).run(
            feeds, {a.key: a for a in artifacts}, "./releases"
        )

Each feed checks which packages it already has, pushes the others from the
output directory, and (for Azure DevOps feeds with views) promotes them
into the @CI/@Preview/@Latest/@Stable views matching their version.

Feed kinds:
    local               - a directory, always pushed to
    remote              - any v3 feed, API key from an environment variable
    organization        - Azure DevOps feed, token from an environment variable
    organization-views  - Azure DevOps feed with view promotion,
                          token from AZURE_FEED_<ORG>_PAT
"""

__version__ = "0.3.0"

# Domain objects
from .domain import (
    ArtifactInstance,
    PackageVersion,
    PackageQuality,
    PackageSource,
    PublishStatus,
    FeedPublishResult,
    PublishSummary,
)

# Services
from .services import (
    SourceRegistry,
    PublishSession,
    Feed,
    FeedKind,
    FeedState,
    FeedPublisher,
    secret_key_name,
    create_local_feed,
    create_remote_feed,
    create_organization_feed,
    create_organization_views_feed,
    create_feed_from_config,
)

# Configuration
from .config import load_config

__all__ = [
    "__version__",
    # Domain objects
    "ArtifactInstance",
    "PackageVersion",
    "PackageQuality",
    "PackageSource",
    "PublishStatus",
    "FeedPublishResult",
    "PublishSummary",
    # Services
    "SourceRegistry",
    "PublishSession",
    "Feed",
    "FeedKind",
    "FeedState",
    "FeedPublisher",
    "secret_key_name",
    "create_local_feed",
    "create_remote_feed",
    "create_organization_feed",
    "create_organization_views_feed",
    "create_feed_from_config",
    # Configuration
    "load_config",
]
