"""esspec configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

YOUTUBE_SCOPES = ["https://www.googleapis.com/auth/youtube.force-ssl"]


class AuthSettings(BaseSettings):
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".local" / "esspec")
    credentials_filename: str = "credentials.json"
    tokens_filename: str = "tokens.json"

    # Local redirect listener
    callback_host: str = "localhost"
    callback_port: int = 3000
    auth_timeout_seconds: float = 300

    # Tokens inside this window before expiry are refreshed
    refresh_buffer_seconds: int = 300

    scopes: list[str] = Field(default_factory=lambda: list(YOUTUBE_SCOPES))
    auth_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url: str = "https://oauth2.googleapis.com/token"
    api_base_url: str = "https://www.googleapis.com/youtube/v3"
    http_timeout_seconds: float = 30.0

    # Falling back to the browser flow is opt-in, and never happens headless
    # unless explicitly allowed.
    auto_reauthenticate: bool = False
    allow_headless_reauth: bool = False
    open_browser: bool = True

    model_config = {"env_prefix": "ESSPEC_", "env_file": ".env", "extra": "ignore"}

    @property
    def credentials_path(self) -> Path:
        return self.config_dir / self.credentials_filename

    @property
    def tokens_path(self) -> Path:
        return self.config_dir / self.tokens_filename


settings = AuthSettings()
