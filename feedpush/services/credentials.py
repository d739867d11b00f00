"""
Push credential resolution for feedpush.

A missing secret is not an error: it is logged as a warning and the feed
push is skipped. Organization (Azure DevOps) feeds send a constant API key
on push; their real Personal Access Token reaches the push through the
credential provider, which reads VSS_NUGET_EXTERNAL_FEED_ENDPOINTS.
"""

import json
import logging
from typing import Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .session import PublishSession

logger = logging.getLogger(__name__)

# API key expected by the Azure Artifacts credential provider
ORGANIZATION_API_KEY = "VSTS"

ENDPOINTS_ENV_VAR = "VSS_NUGET_EXTERNAL_FEED_ENDPOINTS"

# Credential plugins are started through this variable; NuGet does not
# fall back to "dotnet" when it is missing (NuGet/Home#7438).
DOTNET_HOST_PATH_ENV_VAR = "DOTNET_HOST_PATH"
DOTNET_HOST_PATH_DEFAULT = "dotnet"


def secret_key_name(organization: str) -> str:
    """
    Standard secret name for an Azure DevOps organization.

    >>> secret_key_name("my-org")
    'AZURE_FEED_MY_ORG_PAT'
    """
    return "AZURE_FEED_" + organization.upper().replace('-', '_').replace(' ', '_') + "_PAT"


def resolve_secret(session: 'PublishSession', name: str) -> Optional[str]:
    """Read a secret interactively; None (with a warning) when absent or blank."""
    value = session.interactive_env(name)
    if not value or not value.strip():
        logger.warning(f"No {name} environment variable found.")
        return None
    return value


def no_api_key(session: 'PublishSession', feed) -> Optional[str]:
    return None


def resolve_remote_api_key(session: 'PublishSession', feed) -> Optional[str]:
    """The API key is the value of the feed's secret variable."""
    if not feed.secret_key_name:
        logger.info(f"Remote feed '{feed.name}' secret key name is null or empty.")
        return None
    return resolve_secret(session, feed.secret_key_name)


def resolve_organization_api_key(session: 'PublishSession', feed) -> Optional[str]:
    """The constant organization API key, or None when the token is missing."""
    if not feed.secret_key_name:
        logger.warning(f"No secret key name for '{feed.name}'.")
        return None
    token = resolve_secret(session, feed.secret_key_name)
    return ORGANIZATION_API_KEY if token is not None else None


def build_endpoint_credentials(session: 'PublishSession', feeds) -> tuple:
    """
    Serialize credential provider endpoints for feeds whose token resolves.

    Returns:
        (json_payload, endpoint_count)
    """
    endpoints = []
    for feed in feeds:
        token = session.interactive_env(feed.secret_key_name)
        if token:
            endpoints.append({
                "endpoint": feed.url,
                "username": "Unused",
                "password": token,
            })
    return json.dumps({"endpointCredentials": endpoints}), len(endpoints)


def prepare_credential_provider_environment(session: 'PublishSession') -> int:
    """
    Export credentials of the organization feeds registered so far.

    Feeds created after this runs are not included.

    Returns:
        Number of endpoints written
    """
    session.environ.setdefault(DOTNET_HOST_PATH_ENV_VAR, DOTNET_HOST_PATH_DEFAULT)

    payload, count = build_endpoint_credentials(session, list(session.organization_feeds))
    session.environ[ENDPOINTS_ENV_VAR] = payload
    logger.info(f"Created {count} feed end point(s) in {ENDPOINTS_ENV_VAR}.")
    return count


def endpoint_credential(session: 'PublishSession', url: str) -> Optional[Tuple[str, str]]:
    """
    (username, password) exported for url in VSS_NUGET_EXTERNAL_FEED_ENDPOINTS.

    Only endpoints written by prepare_credential_provider_environment are
    found, so feeds registered after it ran get no credential.
    """
    payload = session.environ.get(ENDPOINTS_ENV_VAR)
    if not payload:
        return None
    try:
        endpoints = json.loads(payload).get("endpointCredentials", [])
    except ValueError:
        logger.warning(f"{ENDPOINTS_ENV_VAR} is not valid JSON.")
        return None
    for endpoint in endpoints:
        if endpoint.get("endpoint") == url:
            return endpoint.get("username", ""), endpoint.get("password", "")
    return None
