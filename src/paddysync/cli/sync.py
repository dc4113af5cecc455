"""Sync and lookup commands for the PaddySync CLI.

Commands:
- sync: Run one batch now
- resolve: Resolve a coordinate to its location code
- stats: Show record counts by sync status
"""

from __future__ import annotations

import asyncio
import sys

import click

from paddysync.cli.config import load_config
from paddysync.core.errors import PaddySyncError
from paddysync.locations.resolver import LocationInfo
from paddysync.server.database import Database
from paddysync.service import new_service
from paddysync.sync.engine import SyncSummary


@click.command()
@click.option(
    "--batch-size",
    "-n",
    type=click.IntRange(min=1),
    default=None,
    help="Records to process (default: PADDYSYNC_SYNC_BATCH_SIZE or 10).",
)
@click.option(
    "--record",
    "record_ids",
    multiple=True,
    help="Sync these record IDs instead of the next pending batch.",
)
@click.pass_context
def sync(ctx: click.Context, batch_size: int | None, record_ids: tuple[str, ...]) -> None:
    """Synchronize pending survey records to the document store.

    Examples:

        # Sync the next batch
        paddysync sync

        # Sync up to 50 records
        paddysync sync --batch-size 50

        # Retry specific records
        paddysync sync --record 3f2c... --record 9a1b...
    """
    config = load_config(ctx)

    async def run() -> SyncSummary:
        service = new_service(config)
        try:
            if record_ids:
                return await service.sync_batch(list(record_ids))
            return await service.sync_pending(batch_size)
        finally:
            service.close()

    try:
        summary = asyncio.run(run())
    except PaddySyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if summary.total == 0:
        click.echo("No records synced.")
    else:
        click.echo(f"Synced {summary.succeeded} record(s), {summary.failed} failed.")
    if summary.failed:
        sys.exit(2)


@click.command(context_settings={"ignore_unknown_options": True})
@click.argument("latitude", type=float)
@click.argument("longitude", type=float)
@click.pass_context
def resolve(ctx: click.Context, latitude: float, longitude: float) -> None:
    """Resolve LATITUDE LONGITUDE to a location code."""
    config = load_config(ctx)

    async def run() -> LocationInfo:
        service = new_service(config)
        try:
            return await service.resolve(latitude, longitude)
        finally:
            service.close()

    try:
        location = asyncio.run(run())
    except PaddySyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(location.location_code)
    click.echo(f"  Province: {location.province_name}")
    click.echo(f"  District: {location.district_name}")
    click.echo(f"  Commune:  {location.commune_name}")


@click.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show survey record counts by sync status."""
    config = load_config(ctx)

    try:
        db = Database(config.database.url)
    except PaddySyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        counts = db.count_by_status()
    except PaddySyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()

    for status_name, count in counts.items():
        click.echo(f"{status_name:<8} {count}")
    click.echo(f"{'total':<8} {sum(counts.values())}")
