"""
Infrastructure layer for feedpush.

Contains abstractions for external systems:
- NuGetFeedClient: NuGet v3 feed access (existence check, push)
- LocalFeedStore: Directory feeds
- AzurePackagingClient: Azure DevOps view promotion

These provide clean interfaces that can be mocked for testing.
"""

from .nuget_client import NuGetFeedClient, PUSH_TIMEOUT_SECONDS
from .local_store import LocalFeedStore
from .azure_client import AzurePackagingClient, feed_index_url

__all__ = [
    'NuGetFeedClient',
    'PUSH_TIMEOUT_SECONDS',
    'LocalFeedStore',
    'AzurePackagingClient',
    'feed_index_url',
]
