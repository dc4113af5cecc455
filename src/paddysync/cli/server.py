"""Server commands for the PaddySync CLI.

Commands:
- serve: Run the HTTP API (with the cron scheduler)
- schedule: Run only the cron scheduler in the foreground
- import-areas: Load administrative boundaries into the geometry database
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click

from paddysync.cli.config import load_config
from paddysync.core.errors import PaddySyncError
from paddysync.core.types import AreaLevel
from paddysync.server.scheduler import SyncScheduler
from paddysync.server.spatial import SpatialStore
from paddysync.service import new_service


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", "-p", type=int, default=8000, show_default=True, help="Bind port.")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Run the HTTP API server."""
    import uvicorn

    config = load_config(ctx)
    uvicorn.run(
        "paddysync.server.app:app_factory",
        factory=True,
        host=host,
        port=port,
        log_level=config.log_level.lower(),
    )


@click.command()
@click.option(
    "--run-now",
    is_flag=True,
    help="Run one batch immediately after starting.",
)
@click.pass_context
def schedule(ctx: click.Context, run_now: bool) -> None:
    """Run the batch sync scheduler in the foreground (Ctrl+C to stop)."""
    config = load_config(ctx)

    async def run() -> None:
        service = new_service(config)
        try:
            scheduler = SyncScheduler(
                service.engine,
                schedule=config.scheduler.schedule,
                timezone=config.scheduler.timezone,
                run_on_start=run_now or config.scheduler.run_on_start,
                batch_size=config.sync.batch_size,
            )
        except ValueError:
            service.close()
            raise
        service.start()
        scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            scheduler.stop()
            await service.stop()

    click.echo(f"Scheduler running ({config.scheduler.schedule}), press Ctrl+C to stop.")
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("Scheduler stopped.")
    except (PaddySyncError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _read_features(path: Path) -> list[dict[str, Any]]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if data.get("type") == "FeatureCollection":
        return list(data.get("features") or [])
    if data.get("type") == "Feature":
        return [data]
    raise ValueError(f"Not a GeoJSON Feature or FeatureCollection: {path}")


@click.command("import-areas")
@click.argument("level", type=click.Choice([level.value for level in AreaLevel]))
@click.argument("geojson", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_areas(ctx: click.Context, level: str, geojson: Path) -> None:
    """Import LEVEL boundaries (province, district or commune) from a GEOJSON file.

    Districts reference their province and communes their district by
    English name, so import provinces first, then districts, then communes.

    Examples:

        paddysync import-areas province provinces.geojson
        paddysync import-areas district districts.geojson
        paddysync import-areas commune communes.geojson
    """
    config = load_config(ctx)

    try:
        features = _read_features(geojson)
    except (ValueError, AttributeError) as e:
        click.echo(f"Error: invalid GeoJSON: {e}", err=True)
        sys.exit(1)

    try:
        store = SpatialStore(config.database.geometry_url)
    except PaddySyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        count = store.load_boundaries(AreaLevel(level), features)
    except (PaddySyncError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        store.close()

    click.echo(f"Imported {count} {level} area(s) from {geojson.name}.")
