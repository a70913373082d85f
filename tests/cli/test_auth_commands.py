"""Tests for the auth CLI commands."""

from unittest.mock import AsyncMock, patch

import pytest
from rich.console import Console

from esspec.cli import app
from esspec.oauth.errors import PortInUseError, TokenRefreshFailedError, TokenStorageError
from esspec.oauth.storage import TokenSet
from tests.conftest import now_ms


@pytest.fixture(autouse=True)
def isolated_config(config_dir, monkeypatch):
    """Every CLI test runs against a temporary config dir and a wide console."""
    monkeypatch.setattr("esspec.cli.console", Console(width=200))
    return config_dir


class TestAuthStatus:
    def test_not_configured(self, cli_runner):
        result = cli_runner.invoke(app, ["auth", "status"])

        assert result.exit_code == 0
        assert "Not found" in result.output
        assert "Not authenticated" in result.output

    def test_with_tokens(self, cli_runner, store, write_credentials):
        write_credentials()
        store.save_token_set(
            TokenSet(access_token="ya29.secret", refresh_token="r", expiry_date=now_ms(3600))
        )

        result = cli_runner.invoke(app, ["auth", "status"])

        assert result.exit_code == 0
        assert "Valid for" in result.output
        assert "Stored" in result.output
        assert "ya29.secret" not in result.output


class TestAuthPaths:
    def test_shows_paths(self, cli_runner, config_dir):
        result = cli_runner.invoke(app, ["auth", "paths"])

        assert result.exit_code == 0
        assert "credentials.json" in result.output
        assert "tokens.json" in result.output


class TestAuthToken:
    def test_prints_valid_token(self, cli_runner, store, write_credentials):
        write_credentials()
        store.save_token_set(
            TokenSet(access_token="ya29.printed", refresh_token="r", expiry_date=now_ms(3600))
        )

        result = cli_runner.invoke(app, ["auth", "token"])

        assert result.exit_code == 0
        assert result.output.strip().splitlines()[-1] == "ya29.printed"

    def test_not_authenticated(self, cli_runner, write_credentials):
        write_credentials()

        result = cli_runner.invoke(app, ["auth", "token"])

        assert result.exit_code == 1
        assert "not_authenticated" in result.output
        assert "esspec auth login" in result.output

    def test_refresh_failure_shows_hint(self, cli_runner, store, write_credentials):
        write_credentials()
        store.save_token_set(
            TokenSet(access_token="ya29.old", refresh_token="r", expiry_date=now_ms(-60))
        )

        with patch("esspec.auth.manager.OAuthClient") as MockClient:
            MockClient.from_identity.return_value.refresh_tokens = AsyncMock(
                side_effect=TokenRefreshFailedError("revoked", error_code="invalid_grant")
            )
            result = cli_runner.invoke(app, ["auth", "token"])

        assert result.exit_code == 1
        assert "invalid_grant" in result.output
        assert "esspec auth login" in result.output


class TestAuthLogin:
    def test_success(self, cli_runner):
        tokens = TokenSet(access_token="ya29.new", refresh_token="1//r", expiry_date=now_ms(3600))

        with patch(
            "esspec.oauth.flow.AuthorizationFlow.authenticate", AsyncMock(return_value=tokens)
        ):
            result = cli_runner.invoke(app, ["auth", "login", "--port", "4567", "--no-browser"])

        assert result.exit_code == 0
        assert "Authentication completed successfully" in result.output
        assert "ya29.new" not in result.output

    def test_options_reach_flow(self, cli_runner):
        with patch("esspec.oauth.flow.AuthorizationFlow") as MockFlow:
            MockFlow.return_value.authenticate = AsyncMock(
                return_value=TokenSet(access_token="a", refresh_token="r")
            )
            cli_runner.invoke(app, ["auth", "login", "--port", "4567", "--no-browser"])

        kwargs = MockFlow.call_args.kwargs
        assert kwargs["port"] == 4567
        assert kwargs["open_browser"] is False

    def test_missing_credentials(self, cli_runner, config_dir):
        result = cli_runner.invoke(app, ["auth", "login"])

        assert result.exit_code == 1
        assert "credentials_not_found" in result.output
        assert "console.cloud.google.com" in result.output

    def test_port_in_use(self, cli_runner):
        with patch(
            "esspec.oauth.flow.AuthorizationFlow.authenticate",
            AsyncMock(side_effect=PortInUseError(3000)),
        ):
            result = cli_runner.invoke(app, ["auth", "login"])

        assert result.exit_code == 1
        assert "port_in_use" in result.output

    def test_pinned_redirect_port_conflicts_with_option(self, cli_runner, write_credentials):
        write_credentials(
            {
                "installed": {
                    "client_id": "cid",
                    "client_secret": "secret",
                    "redirect_uris": ["http://localhost:3000/"],
                }
            }
        )

        result = cli_runner.invoke(app, ["auth", "login", "--port", "4567", "--no-browser"])

        assert result.exit_code == 1
        assert "redirect_port_mismatch" in result.output
        assert "Drop --port" in result.output

    def test_token_save_failure(self, cli_runner):
        with patch(
            "esspec.oauth.flow.AuthorizationFlow.authenticate",
            AsyncMock(side_effect=TokenStorageError("Could not save tokens")),
        ):
            result = cli_runner.invoke(app, ["auth", "login"])

        assert result.exit_code == 1
        assert "token_storage_failed" in result.output
        assert "writable" in result.output
