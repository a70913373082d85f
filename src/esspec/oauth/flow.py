"""Interactive OAuth consent flow.

1. Load the registered client from credentials.json
2. Start the local callback listener
3. Show the consent URL and open the browser
4. Wait for the redirect (or time out)
5. Exchange the code for tokens and save them
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse, urlunparse

from rich.console import Console
from rich.markup import escape as rich_escape
from rich.panel import Panel

from ..config import settings
from .browser import is_headless_environment, launch_browser
from .client import OAuthClient
from .errors import (
    AuthorizationInProgressError,
    AuthorizationTimeoutError,
    PortInUseError,
    ProviderDeniedError,
    RedirectPortMismatchError,
)
from .server import CallbackListener, CallbackOutcome, CallbackResult
from .storage import CredentialStore, TokenSet

log = logging.getLogger(__name__)

console = Console(stderr=True)

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


class FlowState(str, Enum):
    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AuthSession:
    """In-memory state of one authorization attempt. Never persisted."""

    state: str
    port: int
    authorization_url: str
    flow_state: FlowState = FlowState.AWAITING_CALLBACK
    result: CallbackResult | None = None


# One authorization per process: the callback port is shared by every flow
_active_session: AuthSession | None = None


def resolve_redirect_uri(redirect_uri: str, port: int) -> str:
    """Pin a port-less loopback redirect URI to the listener port.

    Desktop clients are registered with ``http://localhost``, for which the
    provider accepts any port.

    Raises:
        RedirectPortMismatchError: If a loopback redirect URI already names
            a port other than ``port``; the redirect could never reach the listener
    """
    parsed = urlparse(redirect_uri)
    if parsed.hostname not in LOOPBACK_HOSTS:
        return redirect_uri
    if parsed.port is None:
        return urlunparse(parsed._replace(netloc=f"{parsed.netloc}:{port}", path=parsed.path or "/"))
    if parsed.port != port:
        raise RedirectPortMismatchError(redirect_uri, parsed.port, port)
    return redirect_uri


class AuthorizationFlow:
    """Drives one browser-based authorization at a time.

    Usage:
        flow = AuthorizationFlow(CredentialStore())
        tokens = await flow.authenticate()

    The listener port is an explicit argument (default: settings.callback_port)
    so tests can use a free port.
    """

    def __init__(
        self,
        store: CredentialStore | None = None,
        port: int | None = None,
        host: str | None = None,
        timeout: float | None = None,
        open_browser: bool | None = None,
    ):
        self.store = store or CredentialStore()
        self.port = settings.callback_port if port is None else port
        self.host = host or settings.callback_host
        self.timeout = settings.auth_timeout_seconds if timeout is None else timeout
        self.open_browser = settings.open_browser if open_browser is None else open_browser

        self.state = FlowState.IDLE
        self.session: AuthSession | None = None
        self.authorization_url: str | None = None

    @property
    def in_progress(self) -> bool:
        return self.session is not None

    async def authenticate(self) -> TokenSet:
        """Run the complete consent flow and persist the resulting tokens.

        Returns:
            The new TokenSet (already saved)

        Raises:
            CredentialsNotFoundError / CredentialsMalformedError: No usable client
            AuthorizationInProgressError: Another flow is already running in this process
            RedirectPortMismatchError: The registered redirect URI pins another port
            PortInUseError: The callback port is taken
            ProviderDeniedError: The user declined consent
            AuthorizationTimeoutError: No redirect arrived in time
            CodeExchangeFailedError: The token endpoint rejected the code
            TokenStorageError: The tokens could not be saved
        """
        global _active_session
        if _active_session is not None:
            raise AuthorizationInProgressError(
                f"An authorization flow is already in progress on port {_active_session.port}"
            )

        identity = self.store.load_client_identity()

        client = OAuthClient.from_identity(
            identity, redirect_uri=resolve_redirect_uri(identity.redirect_uri, self.port)
        )
        state = client.generate_state()
        session = AuthSession(
            state=state,
            port=self.port,
            authorization_url=client.get_authorization_url(state=state),
        )
        self.session = session
        _active_session = session
        self.authorization_url = session.authorization_url

        try:
            self._transition(FlowState.AWAITING_CALLBACK)
            listener = CallbackListener(port=self.port, host=self.host)
            result = await listener.wait_for_code(
                self.timeout,
                on_listening=lambda url: self._prompt_user(session.authorization_url),
            )
            session.result = result

            if result.outcome is CallbackOutcome.PORT_IN_USE:
                raise PortInUseError(self.port)
            if result.outcome is CallbackOutcome.TIMED_OUT:
                raise AuthorizationTimeoutError(
                    f"Authentication timed out after {self.timeout:g} seconds. Please try again."
                )
            if result.outcome is CallbackOutcome.PROVIDER_ERROR:
                raise ProviderDeniedError(
                    result.error_description or f"Authorization denied: {result.error}",
                    error_code=result.error,
                )

            self._transition(FlowState.EXCHANGING)
            token_set = await client.exchange_code(result.code, state=result.state)
            self.store.save_token_set(token_set)
            self._transition(FlowState.COMPLETED)
            log.info("Authentication completed successfully")
            return token_set
        except Exception:
            self._transition(FlowState.FAILED)
            raise
        except BaseException:
            # Cancelled or interrupted, not failed
            log.info("Authorization cancelled")
            self._transition(FlowState.IDLE)
            raise
        finally:
            self.session = None
            _active_session = None

    def _transition(self, new_state: FlowState) -> None:
        log.debug("Authorization flow: %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        if self.session is not None:
            self.session.flow_state = new_state

    def _prompt_user(self, auth_url: str) -> None:
        """Surface the consent URL and try to open it in a browser."""
        headless = is_headless_environment()
        if headless or not self.open_browser:
            text = (
                "Open the URL below in a browser to authorize esspec.\n"
                f"The redirect must reach http://localhost:{self.port}/ on this machine."
            )
        else:
            text = (
                "1. Your browser will now open to log in and authorize esspec.\n"
                "2. If it doesn't open automatically, please open the URL below manually."
            )

        console.print(Panel(text, title="YouTube OAuth Setup", style="bold blue"))
        console.print(f"[bold]URL:[/bold] [link={auth_url}]{rich_escape(auth_url)}[/link]\n")

        if self.open_browser and not headless:
            launch_browser(auth_url)

        console.print(
            f"[dim]Waiting for authorization (timeout {self.timeout:g}s)...[/dim]"
        )
