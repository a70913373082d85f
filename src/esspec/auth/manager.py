"""Token lifecycle manager for YouTube API access.

Decides whether the persisted token set can be used as-is, needs a refresh,
or (when refresh is impossible) needs the interactive consent flow again.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from ..api.client import AuthenticatedClient
from ..config import settings
from ..oauth.browser import is_headless_environment
from ..oauth.client import OAuthClient
from ..oauth.errors import NotAuthenticatedError, TokenRefreshFailedError
from ..oauth.flow import AuthorizationFlow
from ..oauth.storage import ClientIdentity, CredentialStore, TokenSet, merge_token_sets

log = logging.getLogger(__name__)


class TokenManager:
    """Single entry point for getting a usable, authenticated client.

    Handles:
    - Loading the client identity and persisted tokens
    - Refreshing tokens inside the expiry buffer (default 5 minutes)
    - Optional fallback to the browser consent flow

    Usage:
        manager = TokenManager()

        # Fails with NotAuthenticatedError / TokenRefreshFailedError instead of
        # opening a browser
        client = await manager.get_authenticated_client()

        # Interactive use: run the consent flow when needed
        client = await manager.get_authenticated_client(auto_reauthenticate=True)
    """

    def __init__(
        self,
        store: CredentialStore | None = None,
        flow: AuthorizationFlow | None = None,
        refresh_buffer_seconds: float | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """Initialize token manager.

        Args:
            store: CredentialStore instance (uses default if not provided)
            flow: AuthorizationFlow used for re-authentication
            refresh_buffer_seconds: Refresh tokens expiring within this window
            clock: Returns the current Unix time (for tests)
        """
        self.store = store or CredentialStore()
        self.flow = flow or AuthorizationFlow(self.store)
        self.refresh_buffer_seconds = (
            settings.refresh_buffer_seconds
            if refresh_buffer_seconds is None
            else refresh_buffer_seconds
        )
        self._clock = clock or (lambda: datetime.now().timestamp())

    def _reauth_allowed(self, auto_reauthenticate: bool | None) -> bool:
        allowed = (
            settings.auto_reauthenticate if auto_reauthenticate is None else auto_reauthenticate
        )
        if allowed and not settings.allow_headless_reauth and is_headless_environment():
            log.warning(
                "Automatic re-authentication skipped: no browser available in this environment"
            )
            return False
        return allowed

    async def get_authenticated_client(
        self, auto_reauthenticate: bool | None = None
    ) -> AuthenticatedClient:
        """Get an API client bound to a currently valid token set.

        Args:
            auto_reauthenticate: Run the browser consent flow when tokens are
                missing or cannot be refreshed (default: settings.auto_reauthenticate)

        Raises:
            CredentialsNotFoundError / CredentialsMalformedError: No usable client identity
            NotAuthenticatedError: No tokens and re-authentication not allowed
            TokenRefreshFailedError: Refresh failed and re-authentication not allowed
        """
        token_set = await self.get_token_set(auto_reauthenticate)
        return AuthenticatedClient(token_set)

    async def get_token_set(self, auto_reauthenticate: bool | None = None) -> TokenSet:
        """Get a token set that is valid for at least the refresh buffer."""
        identity = self.store.load_client_identity()

        token_set = self.store.load_token_set()
        if token_set is None:
            if self._reauth_allowed(auto_reauthenticate):
                log.info("No tokens found. Starting authentication...")
                return await self.flow.authenticate()
            raise NotAuthenticatedError(
                f"No tokens found at {self.store.get_token_path()}"
            )

        if not token_set.needs_refresh(self.refresh_buffer_seconds, now=self._clock()):
            return token_set

        try:
            return await self.refresh(token_set, identity)
        except TokenRefreshFailedError as e:
            log.error("Failed to refresh token: %s", e)
            if self._reauth_allowed(auto_reauthenticate):
                log.info("Attempting automatic re-authentication...")
                return await self.flow.authenticate()
            raise TokenRefreshFailedError(
                f"Token refresh failed: {e.message}",
                error_code=e.error_code,
                details=e.details,
            ) from e

    async def get_access_token(self, auto_reauthenticate: bool | None = None) -> str:
        token_set = await self.get_token_set(auto_reauthenticate)
        return token_set.access_token

    async def refresh(
        self, token_set: TokenSet, identity: ClientIdentity | None = None
    ) -> TokenSet:
        """Refresh the access token and persist the merged token set.

        The stored refresh token is kept when the response omits one.

        Raises:
            TokenRefreshFailedError: No refresh token, or the provider rejected it
        """
        if not token_set.refresh_token:
            raise TokenRefreshFailedError(
                "No refresh token stored",
                error_code="missing_refresh_token",
            )

        identity = identity or self.store.load_client_identity()
        client = OAuthClient.from_identity(identity)

        refreshed = await client.refresh_tokens(token_set.refresh_token)
        merged = merge_token_sets(token_set, refreshed)
        self.store.save_token_set(merged)
        log.info("Access token refreshed")
        return merged

    def get_status(self) -> dict[str, Any]:
        """Get detailed credential and token status."""
        return self.store.get_status(now=self._clock())
