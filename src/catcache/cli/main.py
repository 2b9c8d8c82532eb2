"""
CLI for the cache service.

Commands:
    catcache serve -h HOST -p PORT -c CACHE_DIR - Run the HTTP server
    catcache config - Show current configuration
    catcache version - Print version
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Optional

import typer
import uvicorn
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from catcache import __version__
from catcache.config import Settings, clear_settings_cache, get_settings
from catcache.exceptions import ConfigurationError
from catcache.logging import setup_logging

app = typer.Typer(
    name="catcache",
    help="Read-through cache for HTTP status-code images",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValidationError:
        return None


def prepare_cache_dir(settings: Settings) -> Path:
    """Create the cache root if absent.

    Raises:
        ConfigurationError: If the directory cannot be created.
    """
    try:
        settings.ensure_directories()
    except OSError as e:
        raise ConfigurationError(
            f"Cannot create cache directory: {e}",
            context={"path": str(settings.CACHE_DIR)},
        ) from e
    return settings.CACHE_DIR


@app.command()
def serve(
    host: Annotated[
        Optional[str],
        typer.Option("--host", "-h", help="Host address"),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port number"),
    ] = None,
    cache: Annotated[
        Optional[Path],
        typer.Option("--cache", "-c", help="Cache directory path"),
    ] = None,
    upstream: Annotated[
        Optional[str],
        typer.Option("--upstream", "-u", help="Upstream base URL"),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", "-l", help="Logging level"),
    ] = None,
) -> None:
    """Run the cache server.

    Creates the cache directory if it does not exist. Options override
    the HOST, PORT, CACHE_DIR, UPSTREAM_BASE_URL and LOG_LEVEL settings.
    """
    overrides: dict[str, Any] = {
        "HOST": host,
        "PORT": port,
        "CACHE_DIR": cache,
        "UPSTREAM_BASE_URL": upstream,
        "LOG_LEVEL": log_level.upper() if log_level else None,
    }
    try:
        settings = Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        error_console.print(f"[red]Error:[/red] Invalid configuration\n{e}")
        raise typer.Exit(1)

    setup_logging(settings.LOG_LEVEL, log_file=settings.LOG_FILE)

    try:
        cache_dir = prepare_cache_dir(settings)
    except ConfigurationError as e:
        error_console.print(f"[red]Error starting server:[/red] {e}")
        raise typer.Exit(1)

    # Imported late so `catcache config` works without touching the app
    from catcache.api.server import create_app

    console.print(
        Panel(
            f"[bold]Listening:[/bold] http://{settings.HOST}:{settings.PORT}/\n"
            f"[bold]Cache:[/bold] {cache_dir}\n"
            f"[bold]Upstream:[/bold] {settings.UPSTREAM_BASE_URL}",
            title="[bold cyan]catcache[/bold cyan]",
            border_style="cyan",
        )
    )

    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]catcache Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print("Check the environment variables or the .env file.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"catcache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
