"""OAuth 2.0 client for the Google authorization server.

Handles the provider side of the Authorization Code flow:
1. Generate the consent URL (offline access, forced consent)
2. Exchange the authorization code for a token set
3. Refresh the access token with the stored refresh token
"""

from __future__ import annotations

import logging
import secrets
from typing import Any
from urllib.parse import urlencode

import httpx

from ..config import settings
from .errors import CodeExchangeFailedError, OAuthError, TokenRefreshFailedError
from .storage import ClientIdentity, TokenSet

log = logging.getLogger(__name__)


def _error_payload(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json() if response.content else {}
    except ValueError:
        data = {"raw_response": response.text[:500]}
    return data if isinstance(data, dict) else {"raw_response": str(data)[:500]}


class OAuthClient:
    """OAuth 2.0 client for an installed (desktop) application.

    Usage:
        client = OAuthClient.from_identity(store.load_client_identity())

        state = client.generate_state()
        auth_url = client.get_authorization_url(state=state)

        # Browser redirects to redirect_uri with ?code=xxx&state=xxx
        tokens = await client.exchange_code(code, state)

        # Later, when the access token is about to expire
        refreshed = await client.refresh_tokens(tokens.refresh_token)
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: list[str] | None = None,
        auth_url: str | None = None,
        token_url: str | None = None,
        timeout: float | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes if scopes is not None else list(settings.scopes)
        self.auth_url = auth_url or settings.auth_url
        self.token_url = token_url or settings.token_url
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds

        self._state: str | None = None

    @classmethod
    def from_identity(
        cls,
        identity: ClientIdentity,
        redirect_uri: str | None = None,
        scopes: list[str] | None = None,
    ) -> "OAuthClient":
        """Create client from a loaded ClientIdentity.

        Args:
            identity: Registered client from credentials.json
            redirect_uri: Override the registered redirect URI
            scopes: Override the configured scopes
        """
        return cls(
            client_id=identity.client_id,
            client_secret=identity.client_secret,
            redirect_uri=redirect_uri or identity.redirect_uri,
            scopes=scopes,
        )

    def generate_state(self) -> str:
        """Generate a random state value for CSRF protection."""
        self._state = secrets.token_urlsafe(32)
        return self._state

    def get_authorization_url(self, state: str | None = None) -> str:
        """Generate the consent URL.

        Offline access is requested so a refresh token is issued, and consent
        is forced so a refresh token is reissued even for a user who already
        granted access.
        """
        if state:
            self._state = state
        elif not self._state:
            self.generate_state()

        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "access_type": "offline",
            "prompt": "consent",
            "state": self._state,
        }
        return f"{self.auth_url}?{urlencode(params)}"

    def verify_state(self, state: str) -> bool:
        """Verify the state parameter from callback matches."""
        if not self._state or not state:
            return False
        return secrets.compare_digest(self._state, state)

    async def exchange_code(
        self,
        code: str,
        state: str | None = None,
        verify_state: bool = True,
    ) -> TokenSet:
        """Exchange authorization code for a token set.

        Raises:
            CodeExchangeFailedError: On state mismatch, transport or provider failure
        """
        if verify_state and not self.verify_state(state or ""):
            raise CodeExchangeFailedError(
                "State mismatch - possible CSRF attack",
                error_code="state_mismatch",
            )

        log.info("Exchanging authorization code for tokens...")
        data = await self._post_token_request(
            {
                "grant_type": "authorization_code",
                "code": code.strip(),
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
            },
            error_cls=CodeExchangeFailedError,
            action="Token exchange",
        )
        return self._parse_token_response(data, CodeExchangeFailedError)

    async def refresh_tokens(self, refresh_token: str) -> TokenSet:
        """Refresh the access token.

        The returned token set usually has no refresh token of its own; merging
        it with the stored one is up to the caller.

        Raises:
            TokenRefreshFailedError: If the refresh token is rejected or the call fails
        """
        log.info("Refreshing access token...")
        data = await self._post_token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            error_cls=TokenRefreshFailedError,
            action="Token refresh",
        )
        return self._parse_token_response(data, TokenRefreshFailedError)

    async def _post_token_request(
        self,
        form: dict[str, str],
        error_cls: type[OAuthError],
        action: str,
    ) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.token_url,
                    data=form,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise error_cls(
                f"{action} failed: {e}",
                details={"exception": type(e).__name__},
            ) from e

        if response.status_code != 200:
            error_data = _error_payload(response)
            description = error_data.get("error_description") or error_data.get("error")
            message = f"{action} failed: {response.status_code}"
            if description:
                message = f"{message} ({description})"
            raise error_cls(
                message,
                error_code=error_data.get("error"),
                details=error_data,
            )

        try:
            return response.json()
        except ValueError as e:
            raise error_cls(
                f"{action} failed: response is not JSON",
                details={"raw_response": response.text[:500]},
            ) from e

    def _parse_token_response(
        self, data: dict[str, Any], error_cls: type[OAuthError]
    ) -> TokenSet:
        try:
            return TokenSet.from_token_response(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            keys = list(data.keys()) if isinstance(data, dict) else []
            raise error_cls(
                f"Invalid token response: missing {e}",
                error_code="invalid_response",
                details={"missing_field": str(e), "response_keys": keys},
            ) from e
