"""Per-invocation CLI context."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click

from netkeeper.config import ClientConfig


@dataclass
class CliContext:
    """State shared by all commands of one invocation."""

    config: ClientConfig

    @property
    def queue_path(self) -> Optional[Path]:
        path = self.config.queue.storage_path
        return Path(path).expanduser() if path else None


def get_context(ctx: click.Context) -> CliContext:
    """Return the CliContext stored on the root click context."""
    obj = ctx.find_object(CliContext)
    if obj is None:
        raise click.UsageError("CLI context not initialized")
    return obj
