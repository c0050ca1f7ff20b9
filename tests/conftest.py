"""Shared fixtures."""
from typing import Dict

import pytest

from tests.helpers import FakeSupabase


@pytest.fixture
def fake_client() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def static_env() -> Dict[str, str]:
    return {
        "SUPABASE_URL": "https://abc123.example.co",
        "SUPABASE_SERVICE_KEY": "service-key",
    }


@pytest.fixture
def token_env() -> Dict[str, str]:
    return {"SUPABASE_ACCESS_TOKEN": "sbp_0123456789abcdef"}
