"""Command-line interface for PaddySync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- serve: Run the HTTP API server
- sync: Run one batch sync now
- resolve: Resolve a coordinate to its location code
- schedule: Run the batch sync scheduler in the foreground
- import-areas: Load administrative boundaries
- stats: Show record counts by sync status
"""

from __future__ import annotations

import click

from paddysync.cli.server import import_areas, schedule, serve
from paddysync.cli.sync import resolve, stats, sync


@click.group()
@click.version_option(package_name="paddysync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """PaddySync - field survey location resolution and batch sync."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# Server commands
cli.add_command(serve)
cli.add_command(schedule)
cli.add_command(import_areas)

# Sync commands
cli.add_command(sync)
cli.add_command(resolve)
cli.add_command(stats)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
]
