"""esspec CLI - Main entry point."""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import settings
from .oauth.errors import OAuthError

app = typer.Typer(
    name="esspec",
    help="ES spec reading-session tooling - YouTube authentication",
    no_args_is_help=True,
)
console = Console()

auth_app = typer.Typer(help="Authentication commands")
app.add_typer(auth_app, name="auth")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """ES spec reading-session tooling."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _fail(error: OAuthError) -> None:
    body = f"[red]{error.message}[/red]"
    if error.hint:
        body += f"\n\n{error.hint}"
    console.print(Panel(body, title=f"Error: {error.error_code}", border_style="red"))
    raise typer.Exit(1)


# ============================================================================
# Auth Commands
# ============================================================================


@auth_app.command("login")
def auth_login(
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Local callback port (default: 3000)"),
    no_browser: bool = typer.Option(False, "--no-browser", help="Only print the consent URL"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds to wait for consent"),
):
    """Authorize esspec with YouTube via the browser consent flow."""
    from .oauth.flow import AuthorizationFlow
    from .oauth.storage import CredentialStore

    store = CredentialStore()
    flow = AuthorizationFlow(
        store,
        port=port,
        timeout=timeout,
        open_browser=False if no_browser else None,
    )

    try:
        token_set = asyncio.run(flow.authenticate())
    except OAuthError as e:
        _fail(e)

    console.print(
        Panel(
            "[green]Authentication completed successfully![/green]\n\n"
            f"Tokens saved to: {store.get_token_path()}\n"
            f"Refresh token: {'stored' if token_set.refresh_token else '[yellow]not issued[/yellow]'}",
            title="YouTube OAuth",
        )
    )


@auth_app.command("status")
def auth_status():
    """Check current authentication status."""
    from .auth.manager import TokenManager

    status = TokenManager().get_status()

    table = Table(title="esspec Authentication Status")
    table.add_column("Setting", style="cyan")
    table.add_column("Status", style="green")

    table.add_row(
        "Credentials",
        status["credentials_path"] if status["credentials_present"] else "[red]Not found[/red]",
    )

    token = status["token"]
    if token is None:
        table.add_row("Tokens", "[red]Not authenticated[/red]")
    else:
        table.add_row("Tokens", status["tokens_path"])
        if token["expires_in_seconds"] is None:
            table.add_row("Access token", "Expiry unknown")
        elif token["valid"]:
            table.add_row("Access token", f"Valid for {token['expires_in_seconds'] // 60} min")
        else:
            table.add_row("Access token", "[yellow]Expired (refreshed on next use)[/yellow]")
        table.add_row(
            "Refresh token", "Stored" if token["has_refresh_token"] else "[red]Missing[/red]"
        )
        table.add_row("Scope", token["scope"] or "-")

    console.print(table)


@auth_app.command("token")
def auth_token(
    reauth: bool = typer.Option(
        False, "--reauth", help="Run the browser flow if tokens are missing or cannot be refreshed"
    ),
):
    """Print a valid access token, refreshing it if needed."""
    from .auth.manager import TokenManager

    try:
        access_token = asyncio.run(TokenManager().get_access_token(auto_reauthenticate=reauth))
    except OAuthError as e:
        _fail(e)

    typer.echo(access_token)


@auth_app.command("paths")
def auth_paths():
    """Show where credentials and tokens are stored."""
    from .oauth.storage import CredentialStore

    store = CredentialStore()
    console.print(f"Config directory: {store.config_dir}")
    console.print(f"Credentials:      {store.get_client_identity_path()}")
    console.print(f"Tokens:           {store.get_token_path()}")
    if not store.has_client_identity():
        console.print(
            f"\n[dim]Download an OAuth client (Desktop app) from "
            f"https://console.cloud.google.com/apis/credentials and save it as "
            f"{settings.credentials_filename}.[/dim]"
        )


if __name__ == "__main__":
    app()
