"""
Error types raised by the Supabase Lite MCP server.

Every error that crosses a module boundary is a SupabaseLiteError. Tool
handlers only ever surface OperationFailed to MCP callers.
"""
from typing import Any, Optional


class SupabaseLiteError(Exception):
    """Base class for all Supabase Lite errors."""


class ConfigurationError(SupabaseLiteError):
    """Raised when the server configuration cannot be validated."""


class InvalidReference(SupabaseLiteError):
    """Raised when a project URL does not look like https://<ref>.<host>."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid Supabase project URL: {value!r}")


class MissingServiceRoleKey(SupabaseLiteError):
    """Raised when the api-keys response has no service_role entry."""

    def __init__(self, project_ref: str):
        self.project_ref = project_ref
        super().__init__(f"Service role key not found in project keys for {project_ref}")


class UpstreamError(SupabaseLiteError):
    """Raised on a non-success HTTP status from the Management API."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"Failed to fetch project keys: {status} {body}")


class MissingOperand(SupabaseLiteError):
    """Raised when an action is missing an argument it needs."""

    def __init__(self, operation: str, operand: str, message: Optional[str] = None):
        self.operation = operation
        self.operand = operand
        super().__init__(message or f"{operand} required for {operation}")


class OperationFailed(SupabaseLiteError):
    """
    Boundary error for a failed tool call.

    Carries the upstream message and, when the upstream provided them, its
    details, hint, status and code fields verbatim.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[str] = None,
        hint: Optional[str] = None,
        status: Any = None,
        code: Any = None,
    ):
        self.operation = operation
        self.message = message
        self.details = details
        self.hint = hint
        self.status = status
        self.code = code
        super().__init__(self._format())

    def _format(self) -> str:
        text = f"{self.operation.capitalize()} failed: {self.message}"
        if self.details:
            text += f" - Details: {self.details}"
        if self.hint:
            text += f" - Hint: {self.hint}"
        if self.status:
            text += f" (Status: {self.status})"
        if self.code:
            text += f" [Code: {self.code}]"
        return text
