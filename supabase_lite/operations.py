"""
Tool dispatcher: one upstream Supabase call per tool invocation.

Raw tool arguments are first turned into an operation model (one model per
action, carrying only the fields that action needs). Building the model is
where presence checks happen, so a missing operand never reaches the
network. The operation then runs against a supabase Client and its result
is shaped and rendered as JSON text.
"""
import base64
import binascii
import json
import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, ClassVar, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from supabase import Client

from supabase_lite.errors import MissingOperand, OperationFailed

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
MAX_LISTED = 100

Filters = Tuple[Tuple[str, Any], ...]


# --- Operation models ---
class Operation(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: ClassVar[str]


class SelectRows(Operation):
    action: ClassVar[str] = "select"

    table: str
    filters: Filters = ()
    limit: int = Field(DEFAULT_LIMIT, ge=0)


class InsertRows(Operation):
    action: ClassVar[str] = "insert"

    table: str
    data: Any


class UpdateRows(Operation):
    action: ClassVar[str] = "update"

    table: str
    data: Any
    filters: Filters = ()


class DeleteRows(Operation):
    action: ClassVar[str] = "delete"

    table: str
    filters: Filters = ()


class UploadFile(Operation):
    action: ClassVar[str] = "upload"

    bucket: str
    path: str
    content: bytes


class DownloadFile(Operation):
    action: ClassVar[str] = "download"

    bucket: str
    path: str


class RemoveFile(Operation):
    action: ClassVar[str] = "delete"

    bucket: str
    path: str


class ListFiles(Operation):
    action: ClassVar[str] = "list"

    bucket: str
    prefix: str = ""


class ListUsers(Operation):
    action: ClassVar[str] = "list"


class CreateUser(Operation):
    action: ClassVar[str] = "create"

    email: str
    password: str


class DeleteUser(Operation):
    action: ClassVar[str] = "delete"

    user_id: str


class RunQuery(Operation):
    action: ClassVar[str] = "query"

    sql: str
    params: Tuple[Any, ...] = ()


Mutation = Union[InsertRows, UpdateRows, DeleteRows]
StorageOperation = Union[UploadFile, DownloadFile, RemoveFile, ListFiles]
AuthOperation = Union[ListUsers, CreateUser, DeleteUser]


# --- Builders ---
def equality_filters(where: Optional[Mapping[str, Any]]) -> Filters:
    """
    Turn a `where` mapping into ordered (column, value) equality constraints.

    Raises:
        MissingOperand: If a column name is empty or not a string.
    """
    filters = []
    for column, value in (where or {}).items():
        if not isinstance(column, str) or not column.strip():
            raise MissingOperand("filter", "column", "Filter column names must be non-empty strings")
        filters.append((column, value))
    return tuple(filters)


def _require(operation: str, name: str, value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingOperand(operation, name)
    return value


def build_select(table: str, where: Optional[Mapping[str, Any]] = None,
                 limit: Optional[int] = DEFAULT_LIMIT) -> SelectRows:
    _require("select", "table", table)
    if limit is None:
        limit = DEFAULT_LIMIT
    if limit < 0:
        raise MissingOperand("select", "limit", "Limit must be zero or greater")
    return SelectRows(table=table, filters=equality_filters(where), limit=limit)


def build_mutation(action: str, table: str, data: Any = None,
                   where: Optional[Mapping[str, Any]] = None) -> Mutation:
    _require("mutate", "table", table)
    if action == "insert":
        if data is None:
            raise MissingOperand("insert", "data", "Data required for insert")
        return InsertRows(table=table, data=data)
    if action == "update":
        if data is None:
            raise MissingOperand("update", "data", "Data required for update")
        return UpdateRows(table=table, data=data, filters=equality_filters(where))
    if action == "delete":
        return DeleteRows(table=table, filters=equality_filters(where))
    raise MissingOperand("mutate", "action", f"Unknown mutate action: {action!r}")


def build_storage_operation(action: str, bucket: str, path: Optional[str] = None,
                            data: Optional[str] = None) -> StorageOperation:
    _require("storage", "bucket", bucket)
    if action == "upload":
        if not path or not data:
            raise MissingOperand("upload", "path", "Path and data required")
        try:
            content = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MissingOperand("upload", "data", "File data must be base64 encoded") from exc
        return UploadFile(bucket=bucket, path=path, content=content)
    if action in ("download", "delete"):
        if not path:
            raise MissingOperand(action, "path", "Path required")
        if action == "download":
            return DownloadFile(bucket=bucket, path=path)
        return RemoveFile(bucket=bucket, path=path)
    if action == "list":
        return ListFiles(bucket=bucket, prefix=path or "")
    raise MissingOperand("storage", "action", f"Unknown storage action: {action!r}")


def build_auth_operation(action: str, email: Optional[str] = None, password: Optional[str] = None,
                         user_id: Optional[str] = None) -> AuthOperation:
    if action == "list":
        return ListUsers()
    if action == "create":
        if not email or not password:
            raise MissingOperand("create", "email", "Email and password required")
        return CreateUser(email=email, password=password)
    if action == "delete":
        if not user_id:
            raise MissingOperand("delete", "id", "User ID required")
        return DeleteUser(user_id=user_id)
    raise MissingOperand("auth", "action", f"Unknown auth action: {action!r}")


def build_query(sql: str, params: Optional[Sequence[Any]] = None) -> RunQuery:
    _require("query", "sql", sql)
    return RunQuery(sql=sql, params=tuple(params or ()))


# --- Upstream calls ---
def _apply_filters(query, filters: Filters):
    for column, value in filters:
        query = query.eq(column, value)
    return query


def run_select(client: Client, operation: SelectRows) -> Dict[str, Any]:
    query = _apply_filters(client.table(operation.table).select("*"), operation.filters)
    response = query.limit(operation.limit).execute()
    rows = list(response.data or [])[:operation.limit]
    logger.info("Select on %s returned %d rows", operation.table, len(rows))
    return {"data": rows, "count": len(rows)}


def run_mutation(client: Client, operation: Mutation) -> Dict[str, Any]:
    table = client.table(operation.table)
    if isinstance(operation, InsertRows):
        query = table.insert(operation.data)
    elif isinstance(operation, UpdateRows):
        if not operation.filters:
            logger.warning("Update without WHERE clause on %s - will update ALL rows", operation.table)
        query = _apply_filters(table.update(operation.data), operation.filters)
    else:
        if not operation.filters:
            logger.warning("Delete without WHERE clause on %s - will delete ALL rows", operation.table)
        query = _apply_filters(table.delete(), operation.filters)

    response = query.execute()
    affected = getattr(response, "count", None)
    if affected is None:
        affected = len(response.data or [])
    logger.info("%s on %s affected %d rows", operation.action.capitalize(), operation.table, affected)
    return {"success": True, "affected": affected}


def run_storage(client: Client, operation: StorageOperation) -> Union[str, List[Any]]:
    bucket = client.storage.from_(operation.bucket)
    if isinstance(operation, UploadFile):
        bucket.upload(operation.path, operation.content)
        logger.info("Uploaded %s/%s (%d bytes)", operation.bucket, operation.path, len(operation.content))
        return f"Uploaded: {operation.path}"
    if isinstance(operation, DownloadFile):
        content = bucket.download(operation.path)
        logger.info("Downloaded %s/%s (%d bytes)", operation.bucket, operation.path, len(content or b""))
        return (content or b"").decode("utf-8", errors="replace")
    if isinstance(operation, RemoveFile):
        bucket.remove([operation.path])
        logger.info("Deleted %s/%s", operation.bucket, operation.path)
        return f"Deleted: {operation.path}"

    files = list(bucket.list(operation.prefix) or [])
    if len(files) > MAX_LISTED:
        logger.info("Returning first %d of %d files", MAX_LISTED, len(files))
    return files[:MAX_LISTED]


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def summarize_user(user: Any) -> Dict[str, Any]:
    """Reduce a user record to exactly {id, email, created}."""
    created = _field(user, "created_at")
    if isinstance(created, (datetime, date)):
        created = created.isoformat()
    return {"id": _field(user, "id"), "email": _field(user, "email"), "created": created}


def run_auth(client: Client, operation: AuthOperation) -> Union[str, List[Dict[str, Any]]]:
    admin = client.auth.admin
    if isinstance(operation, ListUsers):
        result = admin.list_users()
        users = result if isinstance(result, list) else list(getattr(result, "users", None) or [])
        if len(users) > MAX_LISTED:
            logger.info("Returning first %d of %d users", MAX_LISTED, len(users))
        return [summarize_user(user) for user in users[:MAX_LISTED]]
    if isinstance(operation, CreateUser):
        response = admin.create_user({
            "email": operation.email,
            "password": operation.password,
            "email_confirm": True,
        })
        user_id = _field(_field(response, "user"), "id")
        logger.info("Created user %s", user_id)
        return f"Created user: {user_id}"

    admin.delete_user(operation.user_id)
    logger.info("Deleted user %s", operation.user_id)
    return f"Deleted user: {operation.user_id}"


def run_query(client: Client, operation: RunQuery, function: str = "execute_sql") -> Any:
    payload: Dict[str, Any] = {"sql": operation.sql}
    if operation.params:
        payload["params"] = list(operation.params)
    data = client.rpc(function, payload).execute().data
    if isinstance(data, list) and len(data) > MAX_LISTED:
        logger.info("Returning first %d of %d rows", MAX_LISTED, len(data))
        return {"rows": data[:MAX_LISTED], "total": len(data)}
    return data


# --- Boundary ---
def describe_error(exc: BaseException) -> Dict[str, Any]:
    """
    Collect message, details, hint, status and code from an upstream error.

    PostgREST errors carry them as attributes, storage errors as a dict in
    the first argument, auth errors as message/status/code attributes.
    """
    has_payload = bool(exc.args) and isinstance(exc.args[0], Mapping)
    payload = exc.args[0] if has_payload else {}

    def pick(*names: str) -> Any:
        for name in names:
            value = getattr(exc, name, None)
            if value is None:
                value = payload.get(name)
            if value not in (None, ""):
                return value
        return None

    message = pick("message") or (None if has_payload else str(exc)) or type(exc).__name__
    return {
        "message": str(message),
        "details": pick("details"),
        "hint": pick("hint"),
        "status": pick("status", "statusCode"),
        "code": pick("code"),
    }


@contextmanager
def operation_boundary(operation: str) -> Iterator[None]:
    """Wrap any failure inside the block as OperationFailed for `operation`."""
    try:
        yield
    except OperationFailed:
        raise
    except Exception as exc:
        fields = describe_error(exc)
        logger.error("%s failed: %s", operation.capitalize(), fields)
        raise OperationFailed(operation, **fields) from exc


def render(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, indent=2, default=str)


class ToolDispatcher:
    """
    Runs tool calls against the client a provider hands out.

    Every method validates its arguments, makes exactly one upstream call and
    returns the rendered text block. Failures surface as OperationFailed.
    """

    def __init__(self, provider, sql_function: str = "execute_sql"):
        self.provider = provider
        self.sql_function = sql_function

    def select(self, table: str, where: Optional[Mapping[str, Any]] = None,
               limit: Optional[int] = DEFAULT_LIMIT, project_url: Optional[str] = None) -> str:
        with operation_boundary("select"):
            operation = build_select(table, where, limit)
            logger.info("Select from %s with %d filters, limit %d",
                        operation.table, len(operation.filters), operation.limit)
            client = self.provider.client_for(project_url)
            return render(run_select(client, operation))

    def mutate(self, action: str, table: str, data: Any = None,
               where: Optional[Mapping[str, Any]] = None, project_url: Optional[str] = None) -> str:
        with operation_boundary("mutate"):
            operation = build_mutation(action, table, data, where)
            logger.info("Mutate %s on %s", operation.action, operation.table)
            client = self.provider.client_for(project_url)
            return render(run_mutation(client, operation))

    def storage(self, action: str, bucket: str, path: Optional[str] = None,
                data: Optional[str] = None, project_url: Optional[str] = None) -> str:
        with operation_boundary("storage"):
            operation = build_storage_operation(action, bucket, path, data)
            logger.info("Storage %s on bucket %s", operation.action, operation.bucket)
            client = self.provider.client_for(project_url)
            return render(run_storage(client, operation))

    def auth(self, action: str, email: Optional[str] = None, password: Optional[str] = None,
             id: Optional[str] = None, project_url: Optional[str] = None) -> str:
        with operation_boundary("auth"):
            operation = build_auth_operation(action, email, password, id)
            logger.info("Auth %s", operation.action)
            client = self.provider.client_for(project_url)
            return render(run_auth(client, operation))

    def query(self, sql: str, params: Optional[Sequence[Any]] = None,
              project_url: Optional[str] = None) -> str:
        with operation_boundary("query"):
            operation = build_query(sql, params)
            logger.info("Query with %d params via %s", len(operation.params), self.sql_function)
            client = self.provider.client_for(project_url)
            return render(run_query(client, operation, self.sql_function))
