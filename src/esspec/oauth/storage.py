"""Credential and token storage.

Stores the OAuth client identity and the current token set in
~/.local/esspec/ with restrictive file permissions.

Note: Tokens are stored in plaintext and protected by file permissions (0o600).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config import settings
from .errors import CredentialsMalformedError, CredentialsNotFoundError, TokenStorageError

log = logging.getLogger(__name__)

TOKEN_FILE_MODE = 0o600
CONFIG_DIR_MODE = 0o700


def _now() -> float:
    return datetime.now().timestamp()


@dataclass(frozen=True)
class ClientIdentity:
    """Registered OAuth client (from the downloaded credentials.json)."""

    client_id: str
    client_secret: str
    redirect_uri: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientIdentity":
        """Parse the Google client secrets layout.

        Raises:
            CredentialsMalformedError: If the ``installed``/``web`` section or
                a required field is missing
        """
        if not isinstance(data, dict):
            raise CredentialsMalformedError("Credentials file must contain a JSON object")

        section = data.get("installed") or data.get("web")
        if not isinstance(section, dict):
            raise CredentialsMalformedError(
                "Credentials file has no 'installed' or 'web' section",
                details={"keys": list(data.keys())},
            )

        missing = [
            key for key in ("client_id", "client_secret", "redirect_uris") if not section.get(key)
        ]
        if missing:
            raise CredentialsMalformedError(
                f"Credentials file is missing: {', '.join(missing)}",
                details={"missing_fields": missing},
            )

        redirect_uris = section["redirect_uris"]
        if not isinstance(redirect_uris, list) or not redirect_uris:
            raise CredentialsMalformedError(
                "Credentials file 'redirect_uris' must be a non-empty list",
                details={"missing_fields": ["redirect_uris"]},
            )

        return cls(
            client_id=section["client_id"],
            client_secret=section["client_secret"],
            redirect_uri=redirect_uris[0],
        )


@dataclass
class TokenSet:
    """OAuth token set as persisted in tokens.json.

    ``expiry_date`` is a Unix timestamp in milliseconds. ``None`` means the
    provider never told us, in which case the token is used as-is.
    """

    access_token: str
    refresh_token: str | None = None
    scope: str = ""
    token_type: str = "Bearer"
    expiry_date: int | None = None

    def remaining_seconds(self, now: float | None = None) -> float | None:
        """Seconds until the access token expires (negative once expired)."""
        if self.expiry_date is None:
            return None
        now = _now() if now is None else now
        return self.expiry_date / 1000 - now

    def needs_refresh(self, buffer_seconds: float, now: float | None = None) -> bool:
        """Whether the token is expired or expires within ``buffer_seconds``."""
        remaining = self.remaining_seconds(now)
        if remaining is None:
            return False
        return remaining < buffer_seconds

    @property
    def expires_at(self) -> datetime | None:
        if self.expiry_date is None:
            return None
        return datetime.fromtimestamp(self.expiry_date / 1000)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the tokens.json layout."""
        data = asdict(self)
        if not self.refresh_token:
            data.pop("refresh_token")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenSet":
        expiry = data.get("expiry_date")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            scope=data.get("scope", ""),
            token_type=data.get("token_type", "Bearer"),
            expiry_date=int(expiry) if expiry is not None else None,
        )

    @classmethod
    def from_token_response(cls, data: dict[str, Any], now: float | None = None) -> "TokenSet":
        """Build a token set from a token endpoint response.

        ``expires_in`` (seconds) is converted to an absolute ``expiry_date``.

        Raises:
            KeyError: If ``access_token`` is missing
        """
        now = _now() if now is None else now
        expiry_date = data.get("expiry_date")
        if expiry_date is None and data.get("expires_in") is not None:
            expiry_date = int((now + float(data["expires_in"])) * 1000)

        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            scope=data.get("scope", ""),
            token_type=data.get("token_type", "Bearer"),
            expiry_date=int(expiry_date) if expiry_date is not None else None,
        )


def merge_token_sets(old: TokenSet, new: TokenSet) -> TokenSet:
    """Merge a refreshed token set into the previous one.

    Every field of ``new`` wins, except ``refresh_token``: providers usually
    omit it from refresh responses, so the previously stored one is kept
    whenever ``new`` carries none.
    """
    return replace(new, refresh_token=new.refresh_token or old.refresh_token)


class CredentialStore:
    """Owner of credentials.json and tokens.json.

    Usage:
        store = CredentialStore()

        identity = store.load_client_identity()
        tokens = store.load_token_set()  # None when not authenticated yet
        store.save_token_set(tokens)
    """

    def __init__(self, config_dir: Path | str | None = None):
        """Initialize the store.

        Args:
            config_dir: Directory for credential files (default: ~/.local/esspec)
        """
        self.config_dir = Path(config_dir) if config_dir else settings.config_dir
        self.credentials_file = self.config_dir / settings.credentials_filename
        self.tokens_file = self.config_dir / settings.tokens_filename

    def get_client_identity_path(self) -> Path:
        return self.credentials_file

    def get_token_path(self) -> Path:
        return self.tokens_file

    def ensure_config_dir(self) -> None:
        if not self.config_dir.exists():
            log.info("Creating credentials directory: %s", self.config_dir)
            self.config_dir.mkdir(parents=True, exist_ok=True, mode=CONFIG_DIR_MODE)

    # Client identity

    def has_client_identity(self) -> bool:
        return self.credentials_file.exists()

    def load_client_identity(self) -> ClientIdentity:
        """Load the registered OAuth client.

        Raises:
            CredentialsNotFoundError: If credentials.json does not exist
            CredentialsMalformedError: If it is not valid JSON or lacks fields
        """
        if not self.credentials_file.exists():
            raise CredentialsNotFoundError(self.credentials_file)

        try:
            with open(self.credentials_file, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise CredentialsMalformedError(
                f"Credentials file is not valid JSON: {e}",
                details={"path": str(self.credentials_file)},
            ) from e

        return ClientIdentity.from_dict(data)

    # Token set

    def has_token_set(self) -> bool:
        return self.tokens_file.exists()

    def load_token_set(self) -> TokenSet | None:
        """Load the persisted token set, or None if there is none."""
        if not self.tokens_file.exists():
            return None

        try:
            with open(self.tokens_file, encoding="utf-8") as f:
                data = json.load(f)
            return TokenSet.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            log.warning("Could not load tokens from %s: %s", self.tokens_file, e)
            return None

    def save_token_set(self, token_set: TokenSet) -> None:
        """Overwrite tokens.json, readable and writable by the owner only.

        Raises:
            TokenStorageError: If the directory or file cannot be written
        """
        content = json.dumps(token_set.to_dict(), indent=2)

        try:
            self.ensure_config_dir()
            fd = os.open(self.tokens_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, TOKEN_FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)

            # O_CREAT's mode is ignored for a file that already existed
            os.chmod(self.tokens_file, TOKEN_FILE_MODE)
        except OSError as e:
            raise TokenStorageError(
                f"Could not save tokens to {self.tokens_file}: {e.strerror or e}",
                details={"path": str(self.tokens_file), "errno": e.errno},
            ) from e
        log.info("Tokens saved to: %s", self.tokens_file)

    def get_status(self, now: float | None = None) -> dict[str, Any]:
        """Get credential and token status summary (never includes secrets)."""
        token_set = self.load_token_set()

        status: dict[str, Any] = {
            "config_dir": str(self.config_dir),
            "credentials_path": str(self.credentials_file),
            "tokens_path": str(self.tokens_file),
            "credentials_present": self.has_client_identity(),
            "token": None,
        }

        if token_set:
            remaining = token_set.remaining_seconds(now)
            status["token"] = {
                "valid": remaining is None or remaining > 0,
                "expires_in_seconds": None if remaining is None else max(0, int(remaining)),
                "has_refresh_token": bool(token_set.refresh_token),
                "scope": token_set.scope,
            }

        return status
