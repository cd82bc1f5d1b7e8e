"""Shared fixtures for the login gateway tests."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from login_gateway.config import Settings, load_settings
from login_gateway.main import create_app
from login_gateway.models import IdentityAssertion


TEST_JWT_SECRET = "test-jwt-secret-1234567890123456"


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings built without reading the environment or a .env file"""
    return load_settings(
        _env_file=None,
        GOOGLE_CLIENT_ID="test-client-id.apps.googleusercontent.com",
        GOOGLE_CLIENT_SECRET="test-client-secret",
        JWT_SECRET=TEST_JWT_SECRET,
        STATIC_DIR=str(tmp_path / "no-static"),
    )


@pytest.fixture
def ada() -> IdentityAssertion:
    return IdentityAssertion(
        subject_id="g-123",
        display_name="Ada Lovelace",
        emails=["ada@example.com", "ada@alt.com"],
    )


@pytest.fixture
def mock_http_client():
    """Stand-in for the shared httpx.AsyncClient"""
    return AsyncMock()


@pytest.fixture
def app(test_settings, mock_http_client):
    app = create_app(test_settings)
    app.state.http_client = mock_http_client
    return app


@pytest.fixture
def client(app):
    return TestClient(app)
