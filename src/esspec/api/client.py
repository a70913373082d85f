"""Bearer-token client for the YouTube Data API."""

from typing import Any

import httpx

from ..config import settings
from ..oauth.storage import TokenSet


class ApiError(Exception):
    """Base exception for YouTube API errors."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class ApiAuthError(ApiError):
    """Authentication error."""

    pass


class ApiRateLimitError(ApiError):
    """Rate limit or quota exceeded."""

    pass


class AuthenticatedClient:
    """HTTP client bound to a valid token set.

    Obtain one from ``TokenManager.get_authenticated_client()``; it does not
    refresh on its own.

    Usage:
        async with await manager.get_authenticated_client() as client:
            captions = await client.get("/captions", params={"part": "snippet", "videoId": vid})
    """

    def __init__(
        self,
        token_set: TokenSet,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token_set = token_set
        self.base_url = base_url or settings.api_base_url

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"{token_set.token_type or 'Bearer'} {token_set.access_token}"},
            timeout=settings.http_timeout_seconds if timeout is None else timeout,
            transport=transport,
        )

    @property
    def access_token(self) -> str:
        return self.token_set.access_token

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def get(self, path: str, params: dict | None = None) -> dict[str, Any]:
        return await self._request("GET", path, params=params)

    async def post(
        self, path: str, params: dict | None = None, json: dict | None = None
    ) -> dict[str, Any]:
        return await self._request("POST", path, params=params, json=json)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict[str, Any]:
        """Make an API request with error handling."""
        response = await self._client.request(method=method, url=path, params=params, json=json)

        if response.status_code == 401:
            raise ApiAuthError("Access token rejected. Run 'esspec auth login'", 401)

        if response.status_code == 429:
            raise ApiRateLimitError(
                "Rate limit exceeded. Wait and retry.",
                429,
                _json_or_none(response),
            )

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ApiError(
                f"API error: {e.response.status_code}",
                e.response.status_code,
                _json_or_none(e.response),
            ) from e

        return response.json() if response.content else {}


def _json_or_none(response: httpx.Response) -> dict | None:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
