"""OAuth module for YouTube Data API authentication.

Provides the OAuth 2.0 Authorization Code flow for an installed (desktop)
Google OAuth client, with a local redirect listener.

Usage:
    from esspec.oauth import AuthorizationFlow, CredentialStore

    store = CredentialStore()          # ~/.local/esspec
    flow = AuthorizationFlow(store)

    # Opens the browser, waits for the redirect, saves tokens.json
    tokens = await flow.authenticate()

Most callers should not use this directly but go through
``esspec.auth.TokenManager``, which also handles refresh.
"""

from .client import OAuthClient
from .errors import (
    OAuthError,
    CredentialsNotFoundError,
    CredentialsMalformedError,
    PortInUseError,
    AuthorizationTimeoutError,
    ProviderDeniedError,
    CodeExchangeFailedError,
    TokenRefreshFailedError,
    NotAuthenticatedError,
    AuthorizationInProgressError,
    RedirectPortMismatchError,
    TokenStorageError,
)
from .flow import AuthorizationFlow, AuthSession, FlowState
from .server import CallbackListener, CallbackOutcome, CallbackResult, wait_for_code
from .storage import ClientIdentity, CredentialStore, TokenSet, merge_token_sets

__all__ = [
    "OAuthClient",
    "OAuthError",
    "CredentialsNotFoundError",
    "CredentialsMalformedError",
    "PortInUseError",
    "AuthorizationTimeoutError",
    "ProviderDeniedError",
    "CodeExchangeFailedError",
    "TokenRefreshFailedError",
    "NotAuthenticatedError",
    "AuthorizationInProgressError",
    "RedirectPortMismatchError",
    "TokenStorageError",
    "AuthorizationFlow",
    "AuthSession",
    "FlowState",
    "CallbackListener",
    "CallbackOutcome",
    "CallbackResult",
    "wait_for_code",
    "ClientIdentity",
    "CredentialStore",
    "TokenSet",
    "merge_token_sets",
]
