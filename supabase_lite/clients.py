"""
Supabase client providers.

A provider hands the dispatcher a supabase Client for the project a tool call
targets. The static provider always returns the one configured project; the
token provider resolves the project's service-role key first.
"""
import logging
from typing import Callable, Optional

from supabase import Client, ClientOptions, create_client

from supabase_lite.errors import MissingOperand
from supabase_lite.keys import CredentialResolver, project_origin

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str], Client]


def create_project_client(project_url: str, key: str) -> Client:
    """
    Create a Supabase client for one project using a service-role key.

    Sessions are neither persisted nor refreshed: every call is made with the
    key itself, which bypasses row-level security.
    """
    options = ClientOptions(
        schema="public",
        headers={"x-bypass-rls": "true"},
        auto_refresh_token=False,
        persist_session=False,
    )
    return create_client(project_url, key, options=options)


class StaticClientProvider:
    """Serves the single project configured with a URL and service key."""

    def __init__(
        self,
        project_url: str,
        service_key: str,
        client_factory: ClientFactory = create_project_client,
    ):
        self.project_url = project_url
        self._service_key = service_key
        self._client_factory = client_factory
        self._client: Optional[Client] = None

    def client_for(self, project_url: Optional[str] = None) -> Client:
        if self._client is None:
            logger.info("Creating Supabase client for %s", self.project_url)
            self._client = self._client_factory(self.project_url, self._service_key)
        return self._client


class TokenClientProvider:
    """Builds a service-role client per call from a personal access token."""

    def __init__(
        self,
        resolver: CredentialResolver,
        client_factory: ClientFactory = create_project_client,
    ):
        self.resolver = resolver
        self._client_factory = client_factory

    def client_for(self, project_url: Optional[str] = None) -> Client:
        if not project_url:
            raise MissingOperand("project lookup", "project_url")
        keys = self.resolver.resolve(project_url)
        origin = project_origin(project_url)
        logger.debug("Creating Supabase client for %s with service role key", origin)
        return self._client_factory(origin, keys.service_role_key)
