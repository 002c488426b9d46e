"""Authorization commands for the Mediagraph MCP CLI."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mediagraph_mcp.context import AuthContext
from mediagraph_mcp.core.config import Config, ConfigError, validate_all
from mediagraph_mcp.core.oauth import AuthStatus, LogoutResult, OAuthError

T = TypeVar("T")


def _config_error_panel(console: Console, problems: list[str]) -> None:
    listing = "\n".join(f"- {escape(problem)}" for problem in problems)
    console.print(
        Panel(
            f"[red]Invalid configuration.[/red]\n\n{listing}",
            title="Configuration Error",
            border_style="red",
        )
    )


def load_config(console: Console) -> Config:
    """Load settings or exit listing every invalid variable."""
    errors = validate_all()
    if errors:
        _config_error_panel(console, [str(error) for error in errors])
        raise typer.Exit(1)

    try:
        config = Config.load()
        config.oauth_config()
    except (ConfigError, OAuthError) as e:
        _config_error_panel(console, [str(e)])
        raise typer.Exit(1) from None
    return config


def run_with_context(
    config: Config,
    action: Callable[[AuthContext], Awaitable[T]],
    on_authorization_url: Callable[[str], None] | None = None,
) -> T:
    """Run ``action`` on a fresh AuthContext and close it afterwards."""

    async def _run() -> T:
        context = AuthContext.create(config, on_authorization_url=on_authorization_url)
        try:
            return await action(context)
        finally:
            await context.aclose()

    return asyncio.run(_run())


def _format_expiry(status: AuthStatus) -> str:
    if status.expires_at is None:
        return "Unknown"
    if status.expired:
        return "[red]Expired[/red]"
    minutes = round((status.expires_in_seconds or 0) / 60)
    expires_at = datetime.fromtimestamp(status.expires_at / 1000).strftime("%Y-%m-%d %H:%M:%S")
    return f"Valid (expires in {minutes} minutes, at {expires_at})"


def authorize() -> None:
    """Authorize with Mediagraph via OAuth.

    Opens a browser window for you to log in. After a successful login
    the tokens are stored encrypted in ~/.mediagraph/tokens.enc.

    Example:
        mediagraph-mcp authorize
    """
    console = Console()
    config = load_config(console)

    def show_url(url: str) -> None:
        console.print("[yellow]Opening browser for authorization...[/yellow]")
        console.print("If the browser does not open, please visit:\n")
        console.print(url, soft_wrap=True, highlight=False)
        console.print("\n[cyan]Waiting for authorization callback...[/cyan]")

    async def _authorize(context: AuthContext) -> tuple[bool, AuthStatus, str | None]:
        success = await context.flow.run_authorization()
        return success, context.flow.get_status(), context.flow.last_error

    console.print("[cyan]Starting Mediagraph OAuth authorization...[/cyan]")
    try:
        success, status, error = run_with_context(config, _authorize, show_url)
    except Exception as e:
        console.print(
            Panel(
                f"[red]An error occurred during OAuth authentication.[/red]\n\nError: {e}",
                title="Authentication Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    if not success:
        console.print(
            Panel(
                f"[red]Authorization failed or was cancelled.[/red]\n\nError: {error or 'Unknown'}",
                title="Authorization Failed",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    console.print(
        Panel(
            f"[green]Successfully authorized![/green]\n\n"
            f"Organization: {status.organization_name or 'Unknown'}"
            f"{f' ({status.organization_slug})' if status.organization_slug else ''}\n"
            f"User: {status.user_email or 'Unknown'}\n\n"
            "You can now use the Mediagraph MCP server.",
            title="OAuth Login Success",
            border_style="green",
        )
    )


def logout() -> None:
    """Log out: revoke the access token and delete stored tokens.

    Example:
        mediagraph-mcp logout
    """
    console = Console()
    config = load_config(console)

    async def _logout(context: AuthContext) -> LogoutResult:
        return await context.flow.logout()

    try:
        result = run_with_context(config, _logout)
    except Exception as e:
        console.print(
            Panel(
                f"[red]An error occurred during logout.[/red]\n\nError: {e}",
                title="Logout Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    if result.revoked:
        console.print("[green]Token revoked successfully.[/green]")
    else:
        console.print("[yellow]Warning: token was not revoked on the server.[/yellow]")

    if not result.cleared:
        console.print(
            Panel(
                "[red]Stored tokens could not be removed.[/red]",
                title="Logout Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    console.print(
        Panel(
            "[green]Logged out. Stored tokens have been cleared.[/green]",
            title="Logout Success",
            border_style="green",
        )
    )


def status() -> None:
    """Show current authentication status.

    Example:
        mediagraph-mcp status
    """
    console = Console()
    config = load_config(console)

    async def _status(context: AuthContext) -> AuthStatus:
        return context.flow.get_status()

    current = run_with_context(config, _status)

    if not current.authenticated:
        console.print(
            Panel(
                "[yellow]Status: Not authenticated[/yellow]\n\n"
                "Run 'mediagraph-mcp authorize' to authenticate.",
                title="Not Authenticated",
                border_style="yellow",
            )
        )
        return

    table = Table(title="Mediagraph Authentication")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Status", "[green]Authenticated[/green]")
    table.add_row("Organization", current.organization_name or "Unknown")
    table.add_row("User", current.user_email or "Unknown")
    table.add_row("Token Status", _format_expiry(current))
    table.add_row("Refresh Token", "Available" if current.has_refresh_token else "Not available")
    table.add_row("Token File", str(config.token_path or "~/.mediagraph/tokens.enc"))

    console.print(table)
