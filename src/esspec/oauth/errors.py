"""Error taxonomy for the OAuth credential and token lifecycle.

Every error carries a stable ``error_code`` and a human-readable ``hint``
telling the user what to do next. None of them are retried automatically.
"""

from __future__ import annotations

from typing import Any

LOGIN_HINT = "Run 'esspec auth login' to re-run interactive setup."


class OAuthError(Exception):
    """OAuth-related error."""

    default_code = "oauth_error"
    default_hint: str | None = None

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        self.hint = hint if hint is not None else self.default_hint


class CredentialsNotFoundError(OAuthError):
    """The OAuth client credentials file does not exist."""

    default_code = "credentials_not_found"

    def __init__(self, path: Any, message: str | None = None):
        hint = (
            "Please follow these steps:\n"
            "1. Go to https://console.cloud.google.com/apis/credentials\n"
            "2. Create OAuth 2.0 Client ID (Application type: Desktop app)\n"
            "3. Download the credentials JSON file\n"
            f"4. Save it to: {path}"
        )
        super().__init__(
            message or f"Credentials file not found: {path}",
            details={"path": str(path)},
            hint=hint,
        )
        self.path = path


class CredentialsMalformedError(OAuthError):
    """The credentials file exists but lacks required fields."""

    default_code = "credentials_malformed"
    default_hint = (
        "Download the OAuth client JSON again from "
        "https://console.cloud.google.com/apis/credentials"
    )


class PortInUseError(OAuthError):
    """The local callback port is already bound by another process."""

    default_code = "port_in_use"

    def __init__(self, port: int):
        super().__init__(
            f"Port {port} is already in use.",
            details={"port": port},
            hint="Close other applications using this port and try again.",
        )
        self.port = port


class RedirectPortMismatchError(OAuthError):
    """The registered loopback redirect URI names a different port than the listener."""

    default_code = "redirect_port_mismatch"

    def __init__(self, redirect_uri: str, registered_port: int, port: int):
        super().__init__(
            f"Redirect URI {redirect_uri} points at port {registered_port}, "
            f"but the callback listener would use port {port}.",
            details={"redirect_uri": redirect_uri, "registered_port": registered_port, "port": port},
            hint=(
                f"Drop --port to listen on {registered_port}, or register "
                f"http://localhost:{port}/ (or plain http://localhost) for the OAuth client."
            ),
        )
        self.registered_port = registered_port
        self.port = port


class AuthorizationTimeoutError(OAuthError):
    default_code = "authorization_timeout"
    default_hint = "Authorization was not completed in time. Please try again."


class ProviderDeniedError(OAuthError):
    """The user declined consent or the provider rejected the request."""

    default_code = "provider_denied"
    default_hint = "Consent was not granted. Re-run 'esspec auth login' to try again."


class CodeExchangeFailedError(OAuthError):
    default_code = "code_exchange_failed"
    default_hint = "Check the terminal output for the provider error and try again."


class TokenRefreshFailedError(OAuthError):
    """The refresh token is missing, invalid, revoked or expired."""

    default_code = "token_refresh_failed"
    default_hint = LOGIN_HINT


class TokenStorageError(OAuthError):
    """The token file could not be written."""

    default_code = "token_storage_failed"
    default_hint = "Check that the esspec config directory is writable, then run 'esspec auth login'."


class NotAuthenticatedError(OAuthError):
    default_code = "not_authenticated"
    default_hint = LOGIN_HINT


class AuthorizationInProgressError(OAuthError):
    """Another authorization flow is already running in this process."""

    default_code = "authorization_in_progress"
    default_hint = "Finish the authorization already open in your browser."
