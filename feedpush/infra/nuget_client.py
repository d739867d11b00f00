"""
NuGet v3 feed client infrastructure for feedpush.

Talks to a remote feed through its v3 service index:
- Locates resources (PackageBaseAddress, PackagePublish) by @type
- Checks whether an exact package identity is already published
- Pushes one package file with a bounded timeout

Existence checks always bypass caches so that a re-run after a failed
publish sees what the feed really holds.
"""

import logging
import os
import threading
from typing import Optional, List, Dict, Any, Tuple

import requests
from requests.auth import HTTPBasicAuth

from ..exit_codes import TransportError, API_ERROR, NETWORK_ERROR

logger = logging.getLogger(__name__)

PUSH_TIMEOUT_SECONDS = 20

PACKAGE_BASE_ADDRESS = "PackageBaseAddress/3.0.0"
PACKAGE_PUBLISH = "PackagePublish/2.0.0"

NO_CACHE_HEADERS = {
    'Cache-Control': 'no-cache',
    'Pragma': 'no-cache',
}


class NuGetFeedClient:
    """
    Client for one NuGet v3 feed.

    The HTTP session is shared across feeds and must not carry default
    headers; every request sets what it needs.

    Example:
        client = NuGetFeedClient("https://api.nuget.org/v3/index.json", requests.Session())
        if not client.exists("Newtonsoft.Json", "13.0.1"):
            client.push("out/Newtonsoft.Json.13.0.1.nupkg", api_key="...")
    """

    def __init__(
        self,
        index_url: str,
        http: requests.Session,
        timeout: float = 30,
        feed_name: Optional[str] = None,
        auth: Optional[Tuple[str, str]] = None,
    ):
        """
        Initialize NuGetFeedClient.

        Args:
            index_url: The feed's v3/index.json url
            http: Shared requests session
            timeout: Timeout for index and existence requests, in seconds
            feed_name: Feed name used in error messages
            auth: (user, password) sent as Basic auth on every request
        """
        self.index_url = index_url
        self.http = http
        self.timeout = timeout
        self.feed_name = feed_name or index_url
        self.auth = HTTPBasicAuth(*auth) if auth else None
        self._resources: Optional[List[Dict[str, Any]]] = None
        self._lock = threading.Lock()

    def _error(self, message: str, exit_code: int = API_ERROR) -> TransportError:
        return TransportError(message, feed_name=self.feed_name, url=self.index_url, exit_code=exit_code)

    def _load_resources(self) -> List[Dict[str, Any]]:
        """Fetch the service index once per client."""
        with self._lock:
            if self._resources is None:
                try:
                    response = self.http.get(
                        self.index_url,
                        headers={'Accept': 'application/json'},
                        timeout=self.timeout,
                        auth=self.auth,
                    )
                    response.raise_for_status()
                    data = response.json()
                except ValueError as e:
                    raise self._error(f"Service index is not valid JSON: {e}") from e
                except requests.RequestException as e:
                    raise self._error(f"Unable to read service index: {e}", NETWORK_ERROR) from e
                self._resources = data.get('resources', [])
            return self._resources

    def resource_url(self, resource_type: str) -> str:
        """
        Get the @id of the first resource whose @type matches.

        Versioned and unversioned types both match, so "PackagePublish/2.0.0"
        finds a resource typed exactly that.

        Raises:
            TransportError: If the feed does not expose the resource
        """
        base_type = resource_type.split('/')[0]
        candidates = []
        for resource in self._load_resources():
            types = resource.get('@type', [])
            if isinstance(types, str):
                types = [types]
            if resource_type in types:
                return resource['@id']
            if any(t.split('/')[0] == base_type for t in types):
                candidates.append(resource['@id'])
        if candidates:
            return candidates[0]
        raise self._error(f"Feed does not expose a {resource_type} resource")

    def exists(self, package_id: str, version: str) -> bool:
        """
        Check whether package_id at version is already on the feed.

        Args:
            package_id: Package identifier (case-insensitive)
            version: Package version string without build metadata

        Returns:
            True if the exact identity is listed by the feed
        """
        base = self.resource_url(PACKAGE_BASE_ADDRESS).rstrip('/')
        lower_id = package_id.lower()
        url = f"{base}/{lower_id}/index.json"

        try:
            response = self.http.get(
                url,
                headers={'Accept': 'application/json', **NO_CACHE_HEADERS},
                timeout=self.timeout,
                auth=self.auth,
            )
        except requests.RequestException as e:
            raise self._error(f"Existence check for {package_id} {version} failed: {e}", NETWORK_ERROR) from e

        if response.status_code == 404:
            return False
        if response.status_code != 200:
            raise self._error(
                f"Existence check for {package_id} {version} returned HTTP {response.status_code}"
            )
        try:
            versions = response.json().get('versions', [])
        except ValueError as e:
            raise self._error(f"Invalid versions document for {package_id}: {e}") from e

        return version.lower() in (v.lower() for v in versions)

    def push(self, file_path: str, api_key: Optional[str], timeout: int = PUSH_TIMEOUT_SECONDS) -> None:
        """
        Upload one package file.

        No symbol package is pushed. There is no retry: any failure is
        raised to the caller.

        Args:
            file_path: Path of the package file
            api_key: Value of the X-NuGet-ApiKey header, None for no header
            timeout: Timeout in seconds

        Raises:
            TransportError: On missing file, timeout, network error or non-2xx status
        """
        url = self.resource_url(PACKAGE_PUBLISH)
        headers = {'X-NuGet-Protocol-Version': '4.1.0'}
        if api_key:
            headers['X-NuGet-ApiKey'] = api_key

        file_name = os.path.basename(file_path)
        logger.info(f"Pushing {file_name} to {url}")
        try:
            package = open(file_path, 'rb')
        except OSError as e:
            raise self._error(f"Unable to read package file {file_path}: {e}") from e

        try:
            with package:
                response = self.http.put(
                    url,
                    files={'package': (file_name, package, 'application/octet-stream')},
                    headers=headers,
                    timeout=timeout,
                    auth=self.auth,
                )
        except requests.Timeout as e:
            raise self._error(f"Push of {file_name} timed out after {timeout}s", NETWORK_ERROR) from e
        except requests.RequestException as e:
            raise self._error(f"Push of {file_name} failed: {e}", NETWORK_ERROR) from e

        if not response.ok:
            raise self._error(f"Push of {file_name} failed: HTTP {response.status_code} {response.reason}")
        logger.info(f"Pushed {file_name} (HTTP {response.status_code})")
