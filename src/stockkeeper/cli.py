"""Command line entry point for maintenance, export and import."""
from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from functools import wraps
from pathlib import Path
from typing import Any, TypeVar

import click

from .config import get_settings
from .exceptions import InventoryError
from .log_config import configure_logging
from .service import InventoryService

T = TypeVar("T")


def coro(func: Callable[..., Awaitable[T]]) -> Callable[..., T]:
    """Run an async click command to completion."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


async def _with_service(action: Callable[[InventoryService], Awaitable[T]]) -> T:
    service = InventoryService(get_settings())
    try:
        await service.init_database()
        return await action(service)
    finally:
        await service.dispose()


@click.group()
@click.version_option(package_name="stockkeeper", prog_name="stockkeeper")
def cli() -> None:
    """Stockkeeper inventory maintenance commands."""

    configure_logging()


@cli.command(name="init-db")
@coro
async def init_db() -> None:
    """Create the database tables."""

    service = InventoryService(get_settings())
    try:
        await service.init_database()
    finally:
        await service.dispose()
    click.secho("Database ready.", fg="green")


@cli.command()
@coro
async def seed() -> None:
    """Insert the default categories and locations."""

    created = await _with_service(lambda service: service.seed_defaults())
    click.echo(f"Seeded {created} rows.")


@cli.command(name="export")
@click.argument("destination", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--include-deleted", is_flag=True, help="Also export items in the recycle bin.")
@coro
async def export_cmd(destination: Path, include_deleted: bool) -> None:
    """Export the whole inventory to a ZIP archive."""

    ok = await _with_service(
        lambda service: service.export(destination, include_deleted=include_deleted or None)
    )
    if not ok:
        click.secho(f"Export to {destination} failed, see the log for details.", fg="red", err=True)
        sys.exit(1)
    click.secho(f"Exported to {destination}.", fg="green")


@cli.command(name="import")
@click.argument("archive", type=click.Path(dir_okay=False, path_type=Path))
@coro
async def import_cmd(archive: Path) -> None:
    """Merge an exported archive into the inventory."""

    try:
        result = await _with_service(lambda service: service.import_archive(archive))
    except InventoryError as exc:
        click.secho(f"{exc.kind.value}: {exc.message}", fg="red", err=True)
        sys.exit(1)
    click.echo(result.message)


@cli.command()
@coro
async def reconcile() -> None:
    """Drop recycle records whose item is no longer in the bin."""

    removed = await _with_service(lambda service: service.reconcile())
    click.echo(f"Removed {removed} orphan recycle records.")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the HTTP API."""

    from .main import run

    run(host=host, port=port)


if __name__ == "__main__":
    cli()
