"""Configuration helpers shared by CLI commands."""

from __future__ import annotations

import click

from paddysync.core.config import ServiceConfig
from paddysync.core.logs import setup_logging


def load_config(ctx: click.Context) -> ServiceConfig:
    """Read the service configuration and set up logging once per invocation.

    Args:
        ctx: Click context; ``ctx.obj["verbose"]`` raises the level to DEBUG.

    Returns:
        ServiceConfig read from ``PADDYSYNC_*`` environment variables.
    """
    root = ctx.find_root()
    root.ensure_object(dict)
    config: ServiceConfig | None = root.obj.get("config")
    if config is None:
        config = ServiceConfig.from_env()
        level = "DEBUG" if root.obj.get("verbose") else config.log_level
        setup_logging(config.log_path, level)
        root.obj["config"] = config
    return config
