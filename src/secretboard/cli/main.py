"""Secretboard CLI — run the server and prepare the database.

Usage:
    secretboard serve                 # Run the web app (uvicorn)
    secretboard serve --reload        # ...with auto-reload for development
    secretboard init-db               # Create tables without Alembic (dev only)
"""

from __future__ import annotations

import asyncio
from typing import Optional

import click
import uvicorn

from secretboard.config import Settings
from secretboard.db.engine import build_engine, create_tables


@click.group()
def cli() -> None:
    """Secretboard — share a secret anonymously."""


@cli.command()
@click.option("--host", default=None, help="Bind address (default: SECRETBOARD_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: SECRETBOARD_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool) -> None:
    """Run the web server."""
    settings = Settings()
    uvicorn.run(
        "secretboard.main:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@cli.command("init-db")
def init_db() -> None:
    """Create the users table if it doesn't exist."""
    settings = Settings()

    async def _create() -> None:
        engine = build_engine(settings)
        try:
            await create_tables(engine)
        finally:
            await engine.dispose()

    asyncio.run(_create())
    click.secho("Tables created.", fg="green")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
