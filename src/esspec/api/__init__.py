"""Authenticated API access for collaborators."""

from .client import AuthenticatedClient, ApiError, ApiAuthError, ApiRateLimitError

__all__ = [
    "AuthenticatedClient",
    "ApiError",
    "ApiAuthError",
    "ApiRateLimitError",
]
