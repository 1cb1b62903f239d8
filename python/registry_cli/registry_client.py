"""
HTTP client for the Docker Registry v2 API.

Docker registry API:
https://docs.docker.com/registry/spec/api/

The API cannot delete a tag, only a manifest by its digest; see
removal.RemovalOrchestrator for how tags are removed safely.
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import requests

from registry_cli.error_utils import (
    ActionableError,
    create_auth_required_error,
    create_registry_request_error,
    create_registry_unreachable_error,
)
from registry_cli.logging_utils import get_logger

MANIFEST_V2_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"

logger = get_logger(__name__)


def _get_next_link(headers) -> Optional[str]:
    """Get URL from the Link header if rel is "next" and return it.
    Return None if no next link is found."""
    link_header = headers.get("Link")
    if not link_header:
        return None

    for link in link_header.split(","):
        if 'rel="next"' in link:
            match = re.search(r"<([^>]+)>", link)
            if match:
                return match.group(1)

    return None


def sort_tags(tags: List[str]) -> List[str]:
    """Longest tag first; tags of equal length keep their registry order"""
    return sorted(tags, key=len, reverse=True)


class RegistryClient:
    """Thin wrapper over the registry endpoints used by the CLI.

    Example:

        client = RegistryClient("http://localhost:5000")
        for name in client.list_repositories():
            for tag in client.list_tags(name) or []:
                print(name, tag, client.get_digest(name, tag))
    """

    def __init__(
        self,
        registry_address: str,
        session: Optional[requests.Session] = None,
        verify_tls: bool = True,
        timeout: Optional[float] = None,
    ):
        """Initialize the client.

        Args:
            registry_address: Base address including scheme, e.g. http://localhost:5000
            session: Optional requests session (tests inject a fake one)
            verify_tls: Verify HTTPS certificates
            timeout: Per-request timeout in seconds, None for no timeout
        """
        self.registry_address = registry_address.rstrip("/")
        self.registry_address_no_protocol = re.sub(r"^https?://", "", self.registry_address)
        self.session = session or requests.Session()
        self.verify_tls = verify_tls
        self.timeout = timeout
        self.registry_version: Optional[str] = None

    @classmethod
    def from_config(cls, config_manager, session: Optional[requests.Session] = None) -> "RegistryClient":
        """Create a client from ConfigManager settings"""
        return cls(
            config_manager.get_registry_address(),
            session=session,
            verify_tls=config_manager.get_registry_verify_tls(),
            timeout=config_manager.get_registry_timeout(),
        )

    # URLs
    def _catalog_url(self) -> str:
        return f"{self.registry_address}/v2/_catalog"

    def _tag_list_url(self, name: str) -> str:
        return f"{self.registry_address}/v2/{name}/tags/list"

    def _manifest_url(self, name: str, tag_or_digest: str) -> str:
        return f"{self.registry_address}/v2/{name}/manifests/{tag_or_digest}"

    # Image name helpers
    def scoped(self, tagged_image: str) -> str:
        """Prefix an image with the registry address (without scheme)"""
        return f"{self.registry_address_no_protocol}/{tagged_image}"

    def strip_address(self, image: str) -> str:
        """Remove a leading registry address from user input"""
        image = image.strip()
        for prefix in (f"{self.registry_address}/", f"{self.registry_address_no_protocol}/"):
            if image.startswith(prefix):
                return image[len(prefix):]
        return image

    # Transport
    def _request(self, method: str, url: str, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """Send a request, mapping transport failures and 401 to actionable errors"""
        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(
                method, url, headers=headers, timeout=self.timeout, verify=self.verify_tls
            )
        except requests.exceptions.RequestException as e:
            raise create_registry_unreachable_error(self.registry_address, e)

        if response.status_code == 401:
            raise create_auth_required_error(self.registry_address, response.headers.get("WWW-Authenticate", ""))

        return response

    def _json_body(self, url: str, response: requests.Response) -> Dict[str, Any]:
        """Decode a JSON object body; anything else is a failed request"""
        unreadable = "Registry returned a response that is not a JSON object"
        try:
            data = response.json()
        except ValueError:
            raise create_registry_request_error(url, response.status_code, response.text, message=unreadable)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise create_registry_request_error(url, response.status_code, response.text, message=unreadable)
        return data

    def _get_paginated(self, url: str, key: str) -> Optional[List[Any]]:
        """GET a list endpoint, following `Link: rel="next"` pages.

        Returns None when the first page has a null `key` (or a 404),
        otherwise the concatenated items.
        """
        response = self._request("GET", url)
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise create_registry_request_error(url, response.status_code, response.text)

        data = self._json_body(url, response)
        if data.get(key) is None:
            return None

        items = list(data[key])
        next_link = _get_next_link(response.headers)
        while next_link:
            page_url = urljoin(f"{self.registry_address}/", next_link)
            response = self._request("GET", page_url)
            if response.status_code != 200:
                raise create_registry_request_error(page_url, response.status_code, response.text)
            items.extend(self._json_body(page_url, response).get(key) or [])
            next_link = _get_next_link(response.headers)

        return items

    # Operations
    def check_connection(self) -> str:
        """Query /v2/ and return the Docker-Distribution-Api-Version header.

        Raises:
            RegistryUnreachable: If the registry cannot be reached
            AuthRequired: If the registry answers 401
            RegistryRequestError: For any other non-200 answer
        """
        url = f"{self.registry_address}/v2/"
        response = self._request("GET", url)
        if response.status_code != 200:
            raise create_registry_request_error(url, response.status_code, response.text)

        self.registry_version = response.headers.get("Docker-Distribution-Api-Version", "")
        return self.registry_version

    def list_repositories(self) -> List[str]:
        """Returns a list of repositories in the registry."""
        return self._get_paginated(self._catalog_url(), "repositories") or []

    def list_tags(self, name: str) -> Optional[List[str]]:
        """Get all tags for a repository, longest first.

        Returns None if the repository is unknown or has no tags.
        """
        tags = self._get_paginated(self._tag_list_url(name), "tags")
        if tags is None:
            return None
        return sort_tags(tags)

    def get_digest(self, name: str, tag: str) -> Optional[str]:
        """Return the manifest digest a tag resolves to.

        Any non-200 answer yields None; a missing tag and a failing lookup
        look the same to the caller. Transport failures still raise.
        """
        url = self._manifest_url(name, tag)
        response = self._request("GET", url, headers={"Accept": MANIFEST_V2_MEDIA_TYPE})
        if response.status_code != 200:
            logger.debug(f"No digest for {name}:{tag} (HTTP {response.status_code})")
            return None

        return response.headers.get("Docker-Content-Digest") or None

    def delete_manifest(self, name: str, digest: str) -> bool:
        """Delete the manifest for a given digest in a repository.

        Best-effort: failures are logged and False is returned, nothing is raised.
        """
        url = self._manifest_url(name, digest)
        logger.info(f"Deleting manifest {name}@{digest}")
        try:
            response = self._request("DELETE", url)
        except ActionableError as e:
            logger.warning(f"Failed to delete manifest {name}@{digest}: {e}")
            return False

        if response.status_code not in (200, 202):
            logger.warning(
                f"Failed to delete manifest {name}@{digest}: HTTP {response.status_code} {response.text.rstrip()}"
            )
            return False

        return True
