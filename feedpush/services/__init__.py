"""
Service layer for feedpush.

Contains business logic that orchestrates domain objects and infrastructure:
- SourceRegistry: Deduplicated package sources
- PublishSession: Per-run shared context (registry, HTTP, secrets)
- FeedPublisher: Feed lifecycle (existence check, push, promotion)

Services are the primary API for commands to use.
"""

from .source_registry import SourceRegistry
from .session import PublishSession
from .credentials import secret_key_name
from .feed_service import (
    Feed,
    FeedKind,
    FeedState,
    FeedPublisher,
    create_local_feed,
    create_remote_feed,
    create_organization_feed,
    create_organization_views_feed,
    create_feed_from_config,
)

__all__ = [
    'SourceRegistry',
    'PublishSession',
    'secret_key_name',
    'Feed',
    'FeedKind',
    'FeedState',
    'FeedPublisher',
    'create_local_feed',
    'create_remote_feed',
    'create_organization_feed',
    'create_organization_views_feed',
    'create_feed_from_config',
]
