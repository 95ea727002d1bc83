"""Pytest configuration and fixtures."""

import os
import secrets
from unittest.mock import MagicMock

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault("CHAT_RATE_LIMIT", "1000/minute")

from app.database import get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from app.services import get_generation_client  # noqa: E402
from fakes import MockSupabase, make_token  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402


@pytest.fixture(autouse=True)
def clean_app_state():
    """Reset overrides, cached clients and rate limits around each test."""
    limiter.reset()
    yield
    app.dependency_overrides.clear()
    for attr in ("supabase", "generator"):
        if hasattr(app.state, attr):
            delattr(app.state, attr)
    limiter.reset()


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Auth headers carrying a valid token for the test user."""
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def fake_db():
    """MockSupabase wired in place of the real client."""
    db = MockSupabase()
    app.dependency_overrides[get_db] = lambda: db
    return db


@pytest.fixture
def fake_generator():
    """Generation client double returning a fixed reply."""
    generator = MagicMock()
    generator.model_id = "test-model"
    generator.generate.return_value = "Try some gentle stretching today."
    app.dependency_overrides[get_generation_client] = lambda: generator
    return generator
