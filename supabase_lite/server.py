"""
Supabase Lite MCP Server: select, mutate, storage and auth tools for Supabase.

Two variants share the same tools:
- static: SUPABASE_URL + SUPABASE_SERVICE_KEY, tools act on that project.
- token: SUPABASE_ACCESS_TOKEN (sbp_...), every tool takes a project_url and
  the project's service role key is fetched once and cached.

With SUPABASE_ENABLE_SQL set, a `query` tool runs SQL through an RPC.
"""
import logging
from typing import Any, Dict, List, Literal, Optional

from mcp.server.fastmcp import FastMCP

from supabase_lite import __version__
from supabase_lite.clients import ClientFactory, StaticClientProvider, TokenClientProvider, create_project_client
from supabase_lite.config import (
    RuntimeSettings,
    SupabaseConfig,
    configure_logging,
    load_config,
    load_runtime_settings,
)
from supabase_lite.errors import ConfigurationError
from supabase_lite.keys import CredentialResolver, KeyCache
from supabase_lite.operations import DEFAULT_LIMIT, ToolDispatcher

logger = logging.getLogger(__name__)

SERVER_NAME = "supabase-lite"
TOOL_NAMES = ("select", "mutate", "storage", "auth")


def register_static_tools(mcp: FastMCP, dispatcher: ToolDispatcher, enable_sql: bool = False) -> None:
    """Register the tools for the single configured project."""

    @mcp.tool()
    def select(table: str, where: Optional[Dict[str, Any]] = None, limit: int = DEFAULT_LIMIT) -> str:
        """
        Select data from a table.

        Args:
            table (str): Table name.
            where (dict, optional): Equality filters, column -> value.
            limit (int): Maximum rows to return (default 100).

        Returns:
            str: JSON with `data` (rows) and `count`.
        """
        return dispatcher.select(table, where, limit)

    @mcp.tool()
    def mutate(
        action: Literal["insert", "update", "delete"],
        table: str,
        data: Any = None,
        where: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Insert, update or delete data.

        Args:
            action (str): insert, update or delete.
            table (str): Table name.
            data (Any, optional): Row(s) for insert, values for update.
            where (dict, optional): Equality filters for update/delete.
                Without filters an update or delete applies to ALL rows.

        Returns:
            str: JSON with `success` and `affected`.
        """
        return dispatcher.mutate(action, table, data, where)

    @mcp.tool()
    def storage(
        action: Literal["upload", "download", "delete", "list"],
        bucket: str,
        path: Optional[str] = None,
        data: Optional[str] = None,
    ) -> str:
        """
        Manage storage files.

        Args:
            action (str): upload, download, delete or list.
            bucket (str): Storage bucket.
            path (str, optional): File path; folder prefix for list.
            data (str, optional): File data (base64) for upload.
        """
        return dispatcher.storage(action, bucket, path, data)

    @mcp.tool()
    def auth(
        action: Literal["list", "create", "delete"],
        email: Optional[str] = None,
        password: Optional[str] = None,
        id: Optional[str] = None,
    ) -> str:
        """
        Manage users.

        Args:
            action (str): list, create or delete.
            email (str, optional): User email, for create.
            password (str, optional): User password, for create.
            id (str, optional): User ID, for delete.
        """
        return dispatcher.auth(action, email, password, id)

    if enable_sql:
        @mcp.tool()
        def query(sql: str, params: Optional[List[Any]] = None) -> str:
            """
            Run a SQL statement through the database's SQL RPC function.

            Args:
                sql (str): The SQL to execute.
                params (list, optional): Positional parameters.

            Returns:
                str: JSON rows; more than 100 rows come back as {rows, total}.
            """
            return dispatcher.query(sql, params)


def register_token_tools(mcp: FastMCP, dispatcher: ToolDispatcher, enable_sql: bool = False) -> None:
    """Register the tools that take a project_url on every call."""

    @mcp.tool()
    def select(
        project_url: str,
        table: str,
        where: Optional[Dict[str, Any]] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> str:
        """
        Select data from a table.

        Args:
            project_url (str): Supabase project URL.
            table (str): Table name.
            where (dict, optional): Equality filters, column -> value.
            limit (int): Maximum rows to return (default 100).
        """
        return dispatcher.select(table, where, limit, project_url=project_url)

    @mcp.tool()
    def mutate(
        project_url: str,
        action: Literal["insert", "update", "delete"],
        table: str,
        data: Any = None,
        where: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Insert, update or delete data.

        Args:
            project_url (str): Supabase project URL.
            action (str): insert, update or delete.
            table (str): Table name.
            data (Any, optional): Row(s) for insert, values for update.
            where (dict, optional): Equality filters for update/delete.
                Without filters an update or delete applies to ALL rows.
        """
        return dispatcher.mutate(action, table, data, where, project_url=project_url)

    @mcp.tool()
    def storage(
        project_url: str,
        action: Literal["upload", "download", "delete", "list"],
        bucket: str,
        path: Optional[str] = None,
        data: Optional[str] = None,
    ) -> str:
        """
        Manage storage files.

        Args:
            project_url (str): Supabase project URL.
            action (str): upload, download, delete or list.
            bucket (str): Storage bucket.
            path (str, optional): File path; folder prefix for list.
            data (str, optional): File data (base64) for upload.
        """
        return dispatcher.storage(action, bucket, path, data, project_url=project_url)

    @mcp.tool()
    def auth(
        project_url: str,
        action: Literal["list", "create", "delete"],
        email: Optional[str] = None,
        password: Optional[str] = None,
        id: Optional[str] = None,
    ) -> str:
        """
        Manage users.

        Args:
            project_url (str): Supabase project URL.
            action (str): list, create or delete.
            email (str, optional): User email, for create.
            password (str, optional): User password, for create.
            id (str, optional): User ID, for delete.
        """
        return dispatcher.auth(action, email, password, id, project_url=project_url)

    if enable_sql:
        @mcp.tool()
        def query(project_url: str, sql: str, params: Optional[List[Any]] = None) -> str:
            """
            Run a SQL statement through the database's SQL RPC function.

            Args:
                project_url (str): Supabase project URL.
                sql (str): The SQL to execute.
                params (list, optional): Positional parameters.
            """
            return dispatcher.query(sql, params, project_url=project_url)


class SupabaseLiteServer:
    """
    Owns the FastMCP server, the key cache and the dispatcher.

    A None config means the credentials were missing or malformed: the
    server still starts, but with no tools registered.
    """

    def __init__(
        self,
        config: Optional[SupabaseConfig],
        settings: Optional[RuntimeSettings] = None,
        client_factory: ClientFactory = create_project_client,
        resolver: Optional[CredentialResolver] = None,
    ):
        self.config = config
        self.settings = settings or RuntimeSettings()
        self.key_cache = KeyCache()
        self.resolver = resolver
        self.dispatcher: Optional[ToolDispatcher] = None
        self.mcp = FastMCP(name=SERVER_NAME, host=self.settings.host, port=self.settings.port)

        logger.info("Initializing Supabase Lite v%s", __version__)
        if config is None:
            logger.warning("Server started without tools; configure credentials and restart")
            return

        if config.uses_access_token:
            if self.resolver is None:
                self.resolver = CredentialResolver(
                    config.access_token,
                    self.key_cache,
                    api_url=config.api_url,
                    timeout=config.http_timeout,
                )
            else:
                self.key_cache = self.resolver.cache
            provider = TokenClientProvider(self.resolver, client_factory)
            register = register_token_tools
            logger.info("Personal access token configured; project keys are fetched per project")
        else:
            provider = StaticClientProvider(config.project_url, config.service_key, client_factory)
            register = register_static_tools
            logger.info("Service key configured for %s", config.project_url)

        self.dispatcher = ToolDispatcher(provider, sql_function=config.sql_function)
        register(self.mcp, self.dispatcher, enable_sql=config.enable_sql)
        names = TOOL_NAMES + (("query",) if config.enable_sql else ())
        logger.info("Registered %d tools: %s", len(names), ", ".join(names))

    @property
    def degraded(self) -> bool:
        return self.dispatcher is None

    def run(self) -> None:
        logger.info("Running server with %s transport", self.settings.transport)
        try:
            self.mcp.run(transport=self.settings.transport)
        finally:
            if self.resolver is not None:
                self.resolver.close()


def create_server(settings: Optional[RuntimeSettings] = None, env=None, **kwargs) -> SupabaseLiteServer:
    """
    Build the server from the environment.

    Credential problems do not stop the server: they are logged and the
    server comes up in degraded mode without tools.
    """
    try:
        config = load_config(env)
    except ConfigurationError as exc:
        logger.error("Supabase credentials not configured: %s", exc)
        logger.warning(
            "Provide SUPABASE_ACCESS_TOKEN (starts with sbp_) from "
            "https://supabase.com/dashboard/account/tokens, "
            "or SUPABASE_URL and SUPABASE_SERVICE_KEY"
        )
        config = None
    return SupabaseLiteServer(config, settings, **kwargs)


def main() -> None:
    try:
        settings = load_runtime_settings()
    except ConfigurationError as exc:
        raise SystemExit(f"Invalid server settings: {exc}") from exc
    configure_logging(settings.log_level)
    create_server(settings).run()


# --- Main entry ---
if __name__ == "__main__":
    main()
