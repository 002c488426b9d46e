"""Main CLI entry point for mediagraph-mcp."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from mediagraph_mcp.cli.commands import auth
from mediagraph_mcp.core.config import ConfigSchema
from mediagraph_mcp.core.logging import configure_root_logging

app = typer.Typer(
    name="mediagraph-mcp",
    help="Mediagraph MCP Server - OAuth-authenticated access to Mediagraph for MCP clients",
    rich_markup_mode="rich",
    add_completion=False,
)

# Commands and their aliases
app.command("authorize")(auth.authorize)
app.command("auth", hidden=True)(auth.authorize)
app.command("login", hidden=True)(auth.authorize)
app.command("logout")(auth.logout)
app.command("revoke", hidden=True)(auth.logout)
app.command("status")(auth.status)
app.command("whoami", hidden=True)(auth.status)


def _serve(verbose: bool = False) -> None:
    from mediagraph_mcp.server import run_server_async

    console = Console(stderr=True)
    config = auth.load_config(console)
    configure_root_logging("DEBUG" if verbose else config.log_level)
    try:
        asyncio.run(run_server_async(config))
    except KeyboardInterrupt:
        pass


@app.command()
def serve(ctx: typer.Context) -> None:
    """Start the MCP server on stdio (the default when no command is given)."""
    _serve(verbose=bool(ctx.obj))


@app.command("help")
def show_help() -> None:
    """Show commands and environment variables."""
    console = Console()
    console.print("[bold cyan]Mediagraph MCP Server[/bold cyan]\n")
    console.print("Usage: mediagraph-mcp [command]\n")

    commands = Table(title="Commands", show_header=False)
    commands.add_column("Command", style="cyan")
    commands.add_column("Description")
    commands.add_row("(no command)", "Start the MCP server (for Claude Desktop and other clients)")
    commands.add_row("authorize", "Authorize with Mediagraph via OAuth (aliases: auth, login)")
    commands.add_row("logout", "Log out and revoke tokens (alias: revoke)")
    commands.add_row("status", "Show current authentication status (alias: whoami)")
    commands.add_row("help", "Show this help message")
    console.print(commands)

    variables = Table(title="Environment Variables (all optional)")
    variables.add_column("Variable", style="cyan")
    variables.add_column("Default", style="green")
    variables.add_column("Description")
    for name, spec in sorted(ConfigSchema.all_specs().items()):
        variables.add_row(name, spec.display_default, spec.description)
    console.print(variables)


@app.command()
def version() -> None:
    """Show version information."""
    from mediagraph_mcp import __version__

    console = Console()
    console.print(f"[bold cyan]mediagraph-mcp[/bold cyan] version [green]{__version__}[/green]")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Mediagraph MCP CLI."""
    ctx.obj = verbose
    configure_root_logging("DEBUG" if verbose else "WARNING")
    if ctx.invoked_subcommand is None:
        _serve(verbose)


if __name__ == "__main__":
    app()
