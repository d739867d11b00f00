"""
Domain layer for feedpush.

Contains pure domain objects with no I/O or side effects:
- PackageSource: Location record backing a feed
- PackageVersion / PackageQuality: Versions and their view labels
- ArtifactInstance: A versioned artifact to publish
- FeedPublishResult / PublishSummary: Outcome of a publish run

These objects are immutable where possible and provide
serialization methods for JSONL output.
"""

from .source import PackageSource, is_remote_location
from .artifact import ArtifactInstance, PackageVersion, PackageQuality, parse_artifact_spec
from .operation import PublishStatus, FeedPublishResult, PublishSummary

__all__ = [
    'PackageSource',
    'is_remote_location',
    'ArtifactInstance',
    'PackageVersion',
    'PackageQuality',
    'parse_artifact_spec',
    'PublishStatus',
    'FeedPublishResult',
    'PublishSummary',
]
