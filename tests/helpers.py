"""Fakes for the parts of supabase.Client the tools touch."""
from types import SimpleNamespace
from typing import Any, Dict, List, Optional


class FakeResponse:
    def __init__(self, data=None, count=None):
        self.data = data
        self.count = count


class _FakeQuery:
    """Chained PostgREST builder that records every call on the client."""

    def __init__(self, client: "FakeSupabase", table: str, method: str, payload: Any = None):
        self._client = client
        self._table = table
        self.method = method
        self.payload = payload
        self.filters: List[tuple] = []
        self.limit_value: Optional[int] = None

    def eq(self, column: str, value: Any):
        self.filters.append((column, value))
        return self

    def limit(self, value: int):
        self.limit_value = value
        return self

    def execute(self):
        self._client.calls.append(
            (self.method, self._table, self.payload, tuple(self.filters), self.limit_value)
        )
        if self._client.error is not None:
            raise self._client.error
        rows = [
            row for row in self._client.rows.get(self._table, [])
            if all(row.get(column) == value for column, value in self.filters)
        ]
        if self.method == "select":
            # Ignores the limit on purpose, like an upstream with a larger page size.
            return FakeResponse(rows)
        if self.method == "insert":
            inserted = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResponse(inserted)
        return FakeResponse(rows)


class _FakeTable:
    def __init__(self, client: "FakeSupabase", name: str):
        self._client = client
        self._name = name

    def select(self, columns: str = "*"):
        return _FakeQuery(self._client, self._name, "select", columns)

    def insert(self, payload):
        return _FakeQuery(self._client, self._name, "insert", payload)

    def update(self, payload):
        return _FakeQuery(self._client, self._name, "update", payload)

    def delete(self):
        return _FakeQuery(self._client, self._name, "delete")


class _FakeBucket:
    def __init__(self, client: "FakeSupabase", name: str):
        self._client = client
        self._name = name

    def _record(self, *call):
        self._client.calls.append(("storage", self._name) + call)
        if self._client.error is not None:
            raise self._client.error

    def upload(self, path: str, content: bytes):
        self._record("upload", path, content)
        self._client.files[path] = content
        return SimpleNamespace(path=path)

    def download(self, path: str) -> bytes:
        self._record("download", path)
        return self._client.files[path]

    def remove(self, paths: List[str]):
        self._record("remove", tuple(paths))
        return [{"name": path} for path in paths]

    def list(self, path: Optional[str] = None):
        self._record("list", path)
        return self._client.listing


class _FakeAdmin:
    def __init__(self, client: "FakeSupabase"):
        self._client = client

    def _record(self, *call):
        self._client.calls.append(("auth",) + call)
        if self._client.error is not None:
            raise self._client.error

    def list_users(self):
        self._record("list_users")
        return self._client.users

    def create_user(self, attributes: Dict[str, Any]):
        self._record("create_user", attributes)
        return SimpleNamespace(user=SimpleNamespace(id="new-user-id", email=attributes["email"]))

    def delete_user(self, user_id: str):
        self._record("delete_user", user_id)


class _FakeRpc:
    def __init__(self, client: "FakeSupabase", function: str, params: Dict[str, Any]):
        self._client = client
        self._function = function
        self._params = params

    def execute(self):
        self._client.calls.append(("rpc", self._function, self._params))
        if self._client.error is not None:
            raise self._client.error
        return FakeResponse(self._client.rpc_result)


class FakeSupabase:
    """Stands in for supabase.Client."""

    def __init__(self, rows: Optional[Dict[str, List[dict]]] = None):
        self.rows = rows or {}
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None
        self.files: Dict[str, bytes] = {}
        self.listing: List[dict] = []
        self.users: List[Any] = []
        self.rpc_result: Any = None
        self.storage = SimpleNamespace(from_=lambda bucket: _FakeBucket(self, bucket))
        self.auth = SimpleNamespace(admin=_FakeAdmin(self))

    def table(self, name: str):
        return _FakeTable(self, name)

    def rpc(self, function: str, params: Dict[str, Any]):
        return _FakeRpc(self, function, params)


class FakeProvider:
    """Client provider that always hands out the same fake client."""

    def __init__(self, client: FakeSupabase):
        self.client = client
        self.requested: List[Optional[str]] = []

    def client_for(self, project_url: Optional[str] = None):
        self.requested.append(project_url)
        return self.client


