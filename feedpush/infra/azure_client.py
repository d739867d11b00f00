"""
Azure DevOps packaging client infrastructure for feedpush.

Promotes an already pushed package into a feed view (@CI, @Preview,
@Latest, @Stable) through the packagesBatch REST endpoint. Authentication
is a Personal Access Token sent as Basic auth with an empty user name.
"""

import base64
import logging
from typing import Dict, Any

import requests

from ..exit_codes import TransportError, NETWORK_ERROR

logger = logging.getLogger(__name__)

AZURE_PACKAGES_HOST = "dev.azure.com"

FEED_INDEX_URL = "https://pkgs.{host}/{organization}/_packaging/{feed_id}/nuget/v3/index.json"

PROMOTION_URL = (
    "https://pkgs.{host}/{organization}/_apis/packaging/feeds/{feed_id}"
    "/nuget/packagesBatch?api-version=5.0-preview.1"
)


def feed_index_url(organization: str, feed_id: str) -> str:
    return FEED_INDEX_URL.format(host=AZURE_PACKAGES_HOST, organization=organization, feed_id=feed_id)


def basic_auth_header(secret: str) -> str:
    """Authorization header value for a Personal Access Token."""
    token = base64.b64encode((":" + secret).encode('utf-8')).decode('ascii')
    return f"Basic {token}"


def promotion_body(package_id: str, version: str, view: str) -> Dict[str, Any]:
    """JSON body that moves one NuGet package into a view."""
    return {
        "data": {"viewId": view},
        "operation": 0,
        "packages": [
            {"id": package_id, "version": version, "protocolType": "NuGet"},
        ],
    }


class AzurePackagingClient:
    """
    Client for the Azure DevOps packaging API.

    Example:
        client = AzurePackagingClient(requests.Session())
        client.promote("my-org", "my-feed", pat, "MyLib", "1.0.0", "Stable")
    """

    def __init__(self, http: requests.Session, timeout: float = 30):
        self.http = http
        self.timeout = timeout

    def promote(
        self,
        organization: str,
        feed_id: str,
        secret: str,
        package_id: str,
        version: str,
        view: str,
    ) -> None:
        """
        Promote package_id at version to view.

        Raises:
            TransportError: On network failure or a non-success response,
                chained to the underlying requests exception
        """
        url = PROMOTION_URL.format(host=AZURE_PACKAGES_HOST, organization=organization, feed_id=feed_id)
        feed_name = f"{organization}-{feed_id}"
        package = f"{package_id}/{version}"

        try:
            response = self.http.post(
                url,
                json=promotion_body(package_id, version, view),
                headers={'Authorization': basic_auth_header(secret)},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Package '{package}' promotion to view '@{view}' failed.")
            raise TransportError(
                f"Promotion of {package} to @{view} failed: {e}",
                feed_name=feed_name, url=url, exit_code=NETWORK_ERROR,
            ) from e

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            logger.error(f"Package '{package}' promotion to view '@{view}' failed.")
            raise TransportError(
                f"Promotion of {package} to @{view} failed: {e}",
                feed_name=feed_name, url=url,
            ) from e

        logger.info(f"Package '{package}' promoted to view '@{view}'.")
