"""Manga Sync CLI using Typer."""

from pathlib import Path

import typer
from dotenv import load_dotenv

from manga_sync import __version__
from manga_sync.cli.sync import sync_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="manga-sync",
    help="Manga Sync - Catalog ingestion and review queue for a manga library",
    add_completion=False,
)
app.add_typer(sync_app, name="sync")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
) -> None:
    """Start the admin API server with the sync scheduler."""
    import uvicorn

    typer.echo(f"Starting Manga Sync on http://{host}:{port}")
    typer.echo("Press Ctrl+C to stop the server")
    typer.echo("")

    uvicorn.run(
        "manga_sync.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def init_db(
    migrate: bool = typer.Option(
        False, "--migrate", "-m", help="Run Alembic migrations instead of creating tables"
    ),
) -> None:
    """Initialize the database."""
    from manga_sync.db.engine import init_db as db_init
    from manga_sync.db.engine import run_migrations

    typer.echo("Initializing database...")
    if migrate:
        run_migrations()
    else:
        db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def version() -> None:
    """Show the Manga Sync version."""
    typer.echo(f"Manga Sync v{__version__}")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    import os

    from manga_sync.db.engine import get_database_url

    typer.echo("Manga Sync Configuration")
    typer.echo("=" * 40)

    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    typer.echo(f"  Database: {get_database_url()}")
    typer.echo(f"  Sources config: {os.environ.get('SOURCES_CONFIG_PATH', 'config/sources.yaml')}")
    typer.echo(
        f"  Redis: {os.environ.get('REDIS_HOST', 'localhost')}:{os.environ.get('REDIS_PORT', '6379')}"
    )


if __name__ == "__main__":
    app()
