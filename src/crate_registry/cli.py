# SPDX-License-Identifier: MIT
"""Operator CLI for the crate registry."""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import click

from .checksum import ChecksumMismatchError, compute_sha256_stream
from .config import APIConfig, ConfigError
from .log import configure_logging
from .storage import StorageError


class Context:
    """CLI context object passed to commands."""

    def __init__(self) -> None:
        self.config: Optional[APIConfig] = None
        self.verbose: bool = False

    def load_config(self) -> APIConfig:
        """Load configuration from the environment, caching the result."""
        if self.config is None:
            self.config = APIConfig.from_env()
        return self.config


pass_context = click.make_pass_decorator(Context, ensure=True)


def echo_error(message: str) -> None:
    """Print an error message to stderr."""
    click.secho(f"Error: {message}", fg="red", err=True)


def echo_success(message: str) -> None:
    """Print a success message."""
    click.secho(message, fg="green")


def echo_info(message: str) -> None:
    """Print an info message."""
    click.echo(message)


def echo_warning(message: str) -> None:
    """Print a warning message."""
    click.secho(f"Warning: {message}", fg="yellow", err=True)


@click.group()
@click.version_option(package_name="crate-registry")
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Enable debug logging.",
)
@pass_context
def cli(ctx: Context, verbose: bool) -> None:
    """Self-hosted Cargo registry.

    Configuration is read from CRATE_REGISTRY_* environment variables.

    \b
    Examples:
        crate-registry init-db
        crate-registry create-token alice --name laptop
        crate-registry serve --port 8080
        crate-registry verify acme-widgets 1.0.0
    """
    ctx.verbose = verbose


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind.")
@click.option("--port", default=8080, show_default=True, type=int, help="Port to listen on.")
@click.option("--reload", is_flag=True, help="Restart on code changes (development only).")
@pass_context
def serve(ctx: Context, host: str, port: int, reload: bool) -> None:
    """Run the registry HTTP server."""
    import uvicorn

    config = ctx.load_config()
    level = "DEBUG" if ctx.verbose else config.log_level
    configure_logging(level)
    uvicorn.run(
        "crate_registry.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=level.lower(),
    )


@cli.command("init-db")
@pass_context
def init_db_command(ctx: Context) -> None:
    """Create the catalog tables if they do not exist."""
    config = ctx.load_config()

    async def run() -> None:
        from .db import close_db, init_db

        await init_db(config.database)
        await close_db()

    asyncio.run(run())
    echo_success(f"Catalog ready at {config.database.url}")


@cli.command("create-token")
@click.argument("user_id")
@click.option("--name", help="Label to remember the token by.")
@click.option(
    "--scope",
    "scopes",
    multiple=True,
    type=click.Choice(["publish", "yank", "*"]),
    help="Scope to grant; repeatable. Defaults to publish and yank.",
)
@pass_context
def create_token(ctx: Context, user_id: str, name: Optional[str], scopes: tuple[str, ...]) -> None:
    """Issue an API token for USER_ID and print it once."""
    config = ctx.load_config()

    async def run() -> str:
        from .auth import issue_api_token
        from .db import close_db, get_session_factory, init_db

        await init_db(config.database)
        try:
            async with get_session_factory()() as session:
                return await issue_api_token(
                    session,
                    user_id,
                    name=name,
                    scopes=list(scopes) or None,
                    prefix=config.auth.token_prefix,
                )
        finally:
            await close_db()

    token = asyncio.run(run())
    echo_success(f"Created token for {user_id}")
    echo_info(token)
    echo_warning("Store this token now; it cannot be shown again.")


@cli.command()
@click.argument("name")
@click.argument("version")
@pass_context
def verify(ctx: Context, name: str, version: str) -> None:
    """Re-hash a stored archive and compare it with the catalog checksum."""
    config = ctx.load_config()

    async def run() -> str:
        from .db import close_db, get_catalog, init_db
        from .storage import create_blob_store

        await init_db(config.database)
        try:
            row = await get_catalog().get_version(name, version)
            if row is None:
                raise click.ClickException(f"{name} {version} is not in the catalog")
            blob_store = create_blob_store(config.storage)
            await blob_store.check_connection()
            actual = await compute_sha256_stream(blob_store.stream(name, version))
            if actual != row.checksum:
                raise ChecksumMismatchError(row.checksum, actual)
            return actual
        finally:
            await close_db()

    try:
        checksum = asyncio.run(run())
    except ChecksumMismatchError as e:
        echo_error(f"{name} {version}: {e}")
        sys.exit(1)
    except StorageError as e:
        echo_error(f"Could not read archive for {name} {version}: {e}")
        sys.exit(1)
    echo_success(f"{name} {version} OK (sha256 {checksum})")


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli()
    except ConfigError as e:
        echo_error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
