"""CLI command groups."""

from netkeeper.cli.commands.classify import classify_cmd
from netkeeper.cli.commands.probe import probe_cmd
from netkeeper.cli.commands.queue import queue_group

__all__ = [
    "classify_cmd",
    "probe_cmd",
    "queue_group",
]
