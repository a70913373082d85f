"""Shared test fixtures for the esspec test suite."""

import asyncio
import json
import socket
from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

SAMPLE_CLIENT_ID = "1234-abc.apps.googleusercontent.com"
SAMPLE_CLIENT_SECRET = "GOCSPX-test-secret"
SAMPLE_REDIRECT_URI = "http://localhost"


# ============================================================================
# Mock Data
# ============================================================================

MOCK_CREDENTIALS = {
    "installed": {
        "client_id": SAMPLE_CLIENT_ID,
        "project_id": "esspec-test",
        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
        "token_uri": "https://oauth2.googleapis.com/token",
        "client_secret": SAMPLE_CLIENT_SECRET,
        "redirect_uris": [SAMPLE_REDIRECT_URI],
    }
}

MOCK_TOKEN_RESPONSE = {
    "access_token": "ya29.new_access_token",
    "refresh_token": "1//new_refresh_token",
    "expires_in": 3599,
    "scope": "https://www.googleapis.com/auth/youtube.force-ssl",
    "token_type": "Bearer",
}

MOCK_REFRESH_RESPONSE = {
    "access_token": "ya29.refreshed_access_token",
    "expires_in": 3599,
    "scope": "https://www.googleapis.com/auth/youtube.force-ssl",
    "token_type": "Bearer",
}


def now_ms(offset_seconds: float = 0) -> int:
    """Current time in milliseconds, shifted by ``offset_seconds``."""
    return int((datetime.now().timestamp() + offset_seconds) * 1000)


async def http_get(host: str, port: int, target: str) -> tuple[int, str]:
    """Minimal raw HTTP GET, independent of any patched httpx."""
    reader, writer = await asyncio.open_connection(host, port)
    try:
        writer.write(f"GET {target} HTTP/1.1\r\nHost: {host}:{port}\r\n\r\n".encode())
        await writer.drain()
        raw = await reader.read()
    finally:
        writer.close()
    head, _, body = raw.decode("utf-8").partition("\r\n\r\n")
    status = int(head.split()[1])
    return status, body


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Point the global settings at a temporary config directory."""
    from esspec.config import settings

    path = tmp_path / "esspec"
    monkeypatch.setattr(settings, "config_dir", path)
    return path


@pytest.fixture
def store(config_dir):
    """CredentialStore on the temporary config directory."""
    from esspec.oauth.storage import CredentialStore

    return CredentialStore(config_dir=config_dir)


@pytest.fixture
def write_credentials(config_dir):
    """Factory fixture writing credentials.json."""
    def _write(data: Any = None) -> None:
        config_dir.mkdir(parents=True, exist_ok=True)
        (config_dir / "credentials.json").write_text(
            json.dumps(MOCK_CREDENTIALS if data is None else data)
        )
    return _write


@pytest.fixture
def free_port():
    """A TCP port that is free on 127.0.0.1 right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def no_headless(monkeypatch):
    """Pretend a desktop browser is available."""
    monkeypatch.setattr("esspec.auth.manager.is_headless_environment", lambda: False)
    monkeypatch.setattr("esspec.oauth.flow.is_headless_environment", lambda: False)


@pytest.fixture
def mock_response():
    """Factory fixture to create mock HTTP responses."""
    def _create_response(data: dict[str, Any], status_code: int = 200):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = data
        response.content = json.dumps(data).encode()
        response.text = json.dumps(data)
        return response
    return _create_response


@pytest.fixture
def patch_token_endpoint(monkeypatch):
    """Patch httpx.AsyncClient so token endpoint POSTs return ``response``.

    Returns the mocked client so tests can inspect ``post.call_args``.
    """
    def _patch(response=None, side_effect=None):
        mock_client = AsyncMock()
        mock_client.post = AsyncMock(return_value=response, side_effect=side_effect)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)
        monkeypatch.setattr("httpx.AsyncClient", MagicMock(return_value=mock_client))
        return mock_client
    return _patch


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner."""
    from typer.testing import CliRunner
    return CliRunner()
