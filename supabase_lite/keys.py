"""
Project key resolution for the personal-access-token variant.

A personal access token cannot act on a project's data directly. The
project's service-role key is fetched once from the Management API and kept
in a KeyCache for the lifetime of the server.
"""
import logging
import re
from typing import Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from supabase_lite.errors import InvalidReference, MissingServiceRoleKey, UpstreamError

logger = logging.getLogger(__name__)

PROJECT_URL_PATTERN = re.compile(r"^https://([^./\s]+)\.([^/\s]+)(/.*)?$")
SERVICE_ROLE = "service_role"
ANON = "anon"


def extract_project_ref(project_url: str) -> str:
    """
    Extract the project reference from a project URL.

    Args:
        project_url (str): URL of the form https://<ref>.<host>[/path].

    Returns:
        str: The <ref> subdomain segment, exactly as written.

    Raises:
        InvalidReference: If the URL does not have that shape.
    """
    match = PROJECT_URL_PATTERN.match(project_url or "")
    if not match:
        raise InvalidReference(project_url)
    return match.group(1)


def project_origin(project_url: str) -> str:
    """
    Reduce a project URL to https://<ref>.<host>, dropping any path.

    Raises:
        InvalidReference: If the URL does not have that shape.
    """
    match = PROJECT_URL_PATTERN.match(project_url or "")
    if not match:
        raise InvalidReference(project_url)
    return f"https://{match.group(1)}.{match.group(2)}"


class ProjectKeyPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    service_role_key: str
    anon_key: Optional[str] = None


class KeyCache:
    """
    Project ref -> ProjectKeyPair, owned by one server instance.

    No eviction and no locking: entries are only ever added, and a
    concurrent duplicate write stores an equal value.
    """

    def __init__(self):
        self._entries: Dict[str, ProjectKeyPair] = {}

    def get(self, project_ref: str) -> Optional[ProjectKeyPair]:
        return self._entries.get(project_ref)

    def put(self, project_ref: str, keys: ProjectKeyPair) -> None:
        self._entries[project_ref] = keys

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, project_ref: object) -> bool:
        return project_ref in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class CredentialResolver:
    """Resolves a project URL to its API keys using a personal access token."""

    def __init__(
        self,
        access_token: str,
        cache: KeyCache,
        api_url: str = "https://api.supabase.com",
        http_client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        self._access_token = access_token
        self._cache = cache
        self._api_url = api_url.rstrip("/")
        self._owns_client = http_client is None
        if http_client is None:
            http_client = httpx.Client(timeout=timeout) if timeout else httpx.Client()
        self._http = http_client

    @property
    def cache(self) -> KeyCache:
        return self._cache

    def resolve(self, project_url: str) -> ProjectKeyPair:
        """
        Return the key pair for the project behind `project_url`.

        Raises:
            InvalidReference: If the URL is malformed.
            UpstreamError: If the Management API answers with an error status.
            MissingServiceRoleKey: If no service_role key is listed.
        """
        project_ref = extract_project_ref(project_url)

        cached = self._cache.get(project_ref)
        if cached is not None:
            logger.debug("Using cached keys for project %s", project_ref)
            return cached

        keys = self._fetch(project_ref)
        self._cache.put(project_ref, keys)
        logger.info("Keys fetched and cached for project %s", project_ref)
        return keys

    def _fetch(self, project_ref: str) -> ProjectKeyPair:
        logger.info("Fetching keys for project %s", project_ref)
        response = self._http.get(
            f"{self._api_url}/v1/projects/{project_ref}/api-keys",
            headers={
                "Authorization": f"Bearer {self._access_token}",
                "Content-Type": "application/json",
            },
        )
        if not response.is_success:
            logger.error(
                "Failed to fetch keys for project %s: %s", project_ref, response.status_code
            )
            raise UpstreamError(response.status_code, response.text)

        entries = response.json()
        if not isinstance(entries, list):
            raise MissingServiceRoleKey(project_ref)

        by_name = {
            entry.get("name"): entry.get("api_key")
            for entry in entries
            if isinstance(entry, dict)
        }
        service_role_key = by_name.get(SERVICE_ROLE)
        if not service_role_key:
            raise MissingServiceRoleKey(project_ref)
        return ProjectKeyPair(service_role_key=service_role_key, anon_key=by_name.get(ANON))

    def close(self) -> None:
        if self._owns_client:
            self._http.close()
