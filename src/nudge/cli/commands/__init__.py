"""CLI command modules."""

from nudge.cli.commands import config, schedule, serve

__all__ = [
    "config",
    "schedule",
    "serve",
]
