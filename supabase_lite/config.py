"""
Configuration for the Supabase Lite MCP server.

Settings are read from the process environment after loading a `.env` file.
Two groups are kept apart: RuntimeSettings (transport, logging) which the
process always needs, and SupabaseConfig (credentials) which may be absent
or malformed, in which case the server starts without tools.
"""
import logging
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from supabase_lite.errors import ConfigurationError, InvalidReference
from supabase_lite.keys import project_origin

DEFAULT_API_URL = "https://api.supabase.com"
ACCESS_TOKEN_PREFIX = "sbp_"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

Transport = Literal["stdio", "sse", "streamable-http"]


@lru_cache(maxsize=1)
def load_project_env() -> None:
    """Load the `.env` file once per process, never overriding the environment."""
    env_path = Path(os.environ.get("SUPABASE_LITE_ENV_FILE", ".env"))
    if env_path.exists():
        load_dotenv(env_path, override=False)


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


# --- Pydantic models ---
class RuntimeSettings(BaseModel):
    transport: Transport = "stdio"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


class SupabaseConfig(BaseModel):
    """
    Credentials and upstream settings.

    Either `access_token` (personal access token, token variant) or both
    `project_url` and `service_key` (static variant) must be set. When a
    token is present it takes precedence.
    """

    project_url: Optional[str] = None
    service_key: Optional[str] = None
    access_token: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    enable_sql: bool = False
    sql_function: str = "execute_sql"
    http_timeout: Optional[float] = None

    @field_validator("project_url", "service_key", "access_token", "http_timeout", mode="before")
    @classmethod
    def blank_is_unset(cls, v):
        return _blank_to_none(v)

    @field_validator("access_token")
    @classmethod
    def validate_access_token(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(ACCESS_TOKEN_PREFIX):
            raise ValueError(
                "Access token should start with sbp_. "
                "Get it from https://supabase.com/dashboard/account/tokens"
            )
        return v

    @field_validator("api_url")
    @classmethod
    def strip_api_url(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @model_validator(mode="after")
    def require_credentials(self) -> "SupabaseConfig":
        if self.access_token is None and not (self.project_url and self.service_key):
            raise ValueError(
                "Set SUPABASE_ACCESS_TOKEN, or both SUPABASE_URL and SUPABASE_SERVICE_KEY."
            )
        if self.access_token is None:
            # The URL is only used by the static variant.
            try:
                self.project_url = project_origin(self.project_url)
            except InvalidReference as exc:
                raise ValueError(str(exc)) from exc
        return self

    @property
    def uses_access_token(self) -> bool:
        return self.access_token is not None


def _describe(exc: ValidationError) -> str:
    # Input values are left out; they may be credentials.
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "config"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def _environ(env: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    if env is None:
        load_project_env()
        return os.environ
    return env


def _pick(env: Mapping[str, str], mapping: dict) -> dict:
    # Blank variables count as unset so the field keeps its default.
    return {
        field: env[name]
        for field, name in mapping.items()
        if name in env and env[name].strip()
    }


def load_runtime_settings(env: Optional[Mapping[str, str]] = None) -> RuntimeSettings:
    """
    Read transport and logging settings.

    Raises:
        ConfigurationError: If a value is present but invalid.
    """
    values = _pick(_environ(env), {
        "transport": "MCP_TRANSPORT",
        "host": "MCP_HOST",
        "port": "MCP_PORT",
        "log_level": "MCP_LOG_LEVEL",
    })
    try:
        return RuntimeSettings(**values)
    except ValidationError as exc:
        raise ConfigurationError(_describe(exc)) from exc


def load_config(env: Optional[Mapping[str, str]] = None) -> SupabaseConfig:
    """
    Read Supabase credentials and upstream settings.

    Args:
        env (Mapping[str, str], optional): Variables to read instead of the
            process environment (the `.env` file is not loaded then).

    Returns:
        SupabaseConfig: The validated configuration.

    Raises:
        ConfigurationError: If credentials are missing or malformed.
    """
    env = _environ(env)
    values = _pick(env, {
        "project_url": "SUPABASE_URL",
        "access_token": "SUPABASE_ACCESS_TOKEN",
        "api_url": "SUPABASE_API_URL",
        "enable_sql": "SUPABASE_ENABLE_SQL",
        "sql_function": "SUPABASE_SQL_FUNCTION",
        "http_timeout": "SUPABASE_HTTP_TIMEOUT",
    })
    service_key = env.get("SUPABASE_SERVICE_KEY", "").strip() or env.get("SUPABASE_KEY", "").strip()
    if service_key:
        values["service_key"] = service_key
    try:
        return SupabaseConfig(**values)
    except ValidationError as exc:
        raise ConfigurationError(_describe(exc)) from exc


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr; stdout carries the stdio transport."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
