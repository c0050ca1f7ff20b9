import httpx
import pytest

from supabase_lite.clients import StaticClientProvider, TokenClientProvider
from supabase_lite.errors import InvalidReference, MissingOperand
from supabase_lite.keys import CredentialResolver, KeyCache


class _RecordingFactory:
    def __init__(self):
        self.created = []

    def __call__(self, url, key):
        client = object()
        self.created.append((url, key, client))
        return client


def _token_provider(factory):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=[
            {"name": "anon", "api_key": "anon-key"},
            {"name": "service_role", "api_key": "service-role-key"},
        ])

    resolver = CredentialResolver(
        "sbp_token", KeyCache(), http_client=httpx.Client(transport=httpx.MockTransport(handler))
    )
    return TokenClientProvider(resolver, factory), requests


def test_static_provider_builds_one_client_lazily():
    factory = _RecordingFactory()
    provider = StaticClientProvider("https://abc123.example.co", "service-key", factory)

    assert factory.created == []
    first = provider.client_for()
    second = provider.client_for("https://ignored.example.co")

    assert first is second
    assert [(url, key) for url, key, _ in factory.created] == [("https://abc123.example.co", "service-key")]


def test_token_provider_uses_service_role_key():
    factory = _RecordingFactory()
    provider, requests = _token_provider(factory)

    provider.client_for("https://abc123.supabase.co/")
    provider.client_for("https://abc123.supabase.co")

    assert [(url, key) for url, key, _ in factory.created] == [
        ("https://abc123.supabase.co", "service-role-key"),
        ("https://abc123.supabase.co", "service-role-key"),
    ]
    assert len(requests) == 1


def test_token_provider_requires_project_url():
    provider, requests = _token_provider(_RecordingFactory())

    with pytest.raises(MissingOperand):
        provider.client_for(None)
    assert requests == []


def test_token_provider_rejects_malformed_url():
    factory = _RecordingFactory()
    provider, requests = _token_provider(factory)

    with pytest.raises(InvalidReference):
        provider.client_for("abc123")
    assert requests == []
    assert factory.created == []


def test_token_provider_passes_only_the_origin():
    factory = _RecordingFactory()
    provider, _ = _token_provider(factory)

    provider.client_for("https://abc123.supabase.co/rest/v1")

    assert [url for url, _, _ in factory.created] == ["https://abc123.supabase.co"]
