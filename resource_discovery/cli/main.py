"""Resource Discovery CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.logging import RichHandler

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

from resource_discovery.cli.discover import discover_app  # noqa: E402

app = typer.Typer(
    name="resource-discovery",
    help="Resource Discovery - find, deduplicate and score community food resources",
    add_completion=False,
)
app.add_typer(discover_app, name="discover")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
    )


def _check_geocoder_config() -> None:
    """Display geocoding configuration status."""
    if os.environ.get("MAPBOX_SERVER_TOKEN") or os.environ.get("MAPBOX_TOKEN"):
        typer.echo("  Geocoding: Mapbox (configured)")
    else:
        typer.echo("  Geocoding: Not configured (candidates without coordinates keep 0,0)")
        typer.echo("  Tip: Set MAPBOX_TOKEN in .env file to enable the geocoding fallback")


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from resource_discovery.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def version() -> None:
    """Show the Resource Discovery version."""
    typer.echo("Resource Discovery v0.1.0")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    from resource_discovery.db.engine import get_database_url
    from resource_discovery.discovery.settings import get_default_settings

    typer.echo("Resource Discovery Configuration")
    typer.echo("=" * 40)

    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    settings = get_default_settings()
    if settings.config_path:
        typer.echo(f"  Pipeline config: {settings.config_path}")
    else:
        typer.echo("  Pipeline config: Not found (using defaults)")

    global_config = settings.global_config
    typer.echo(f"  Default provider: {global_config.default_provider}")
    typer.echo(f"  Scan timeout: {global_config.scan_timeout_seconds:g}s")
    typer.echo(f"  Cooldown: {settings.eligibility.cooldown}")
    typer.echo(f"  Auto-approve threshold: {settings.approval.threshold}")

    admins = settings.admin_user_ids
    typer.echo(f"  Admin users: {', '.join(sorted(admins)) if admins else 'None (force disabled)'}")

    _check_geocoder_config()
    typer.echo(f"  Database: {get_database_url()}")


if __name__ == "__main__":
    app()
