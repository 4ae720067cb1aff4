"""netkeeper queue: inspect and maintain the persisted offline queue."""

import asyncio
import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

import click

from netkeeper.cli.output import emit_error, emit_response_dict, emit_success
from netkeeper.cli.registry import CliContext, get_context
from netkeeper.core.errors import QueueStoreError, error_to_response
from netkeeper.core.network.client import ResilientClient
from netkeeper.core.network.queue import OfflineQueue
from netkeeper.core.network.storage import FileQueueStore

logger = logging.getLogger(__name__)


def _require_path(cli_ctx: CliContext) -> str:
    path = cli_ctx.queue_path
    if path is None:
        emit_error(
            "No offline queue storage configured",
            code="VALIDATION_ERROR",
            error_type="validation",
            remediation="Pass --path, set NETKEEPER_QUEUE_PATH or [queue].storage_path",
        )
    return str(path)


def _open_queue(cli_ctx: CliContext) -> OfflineQueue:
    path = _require_path(cli_ctx)
    try:
        return OfflineQueue(store=FileQueueStore(path), max_items=cli_ctx.config.queue.max_items)
    except QueueStoreError as e:
        emit_response_dict(error_to_response(e) or {})


@click.group("queue")
@click.option("--path", "path", type=click.Path(dir_okay=False), default=None, help="Queue file to operate on.")
@click.pass_context
def queue_group(ctx: click.Context, path: Optional[str]) -> None:
    """Offline queue maintenance."""
    if path:
        get_context(ctx).config.queue.storage_path = path


@queue_group.command("list")
@click.pass_context
def queue_list(ctx: click.Context) -> None:
    """List pending operations in replay order."""
    queue = _open_queue(get_context(ctx))
    operations = [op.model_dump(mode="json") for op in queue.list()]
    emit_success({"count": len(operations), "operations": operations})


@queue_group.command("cancel")
@click.argument("operation_id")
@click.pass_context
def queue_cancel(ctx: click.Context, operation_id: str) -> None:
    """Remove OPERATION_ID from the queue."""
    queue = _open_queue(get_context(ctx))
    if not queue.cancel(operation_id):
        emit_error(
            f"Queued operation not found: {operation_id}",
            code="NOT_FOUND",
            error_type="not_found",
            details={"operation_id": operation_id},
        )
    emit_success({"operation_id": operation_id, "cancelled": True, "remaining": queue.size()})


@queue_group.command("clear")
@click.confirmation_option(prompt="Discard every queued operation?")
@click.pass_context
def queue_clear(ctx: click.Context) -> None:
    """Discard every pending operation."""
    queue = _open_queue(get_context(ctx))
    removed = queue.clear()
    emit_success({"removed": removed, "remaining": queue.size()})


async def _flush(cli_ctx: CliContext) -> Dict[str, Any]:
    client = ResilientClient.from_config(cli_ctx.config)
    try:
        online = await client.monitor.check_now()
        if not online:
            return {"online": False, "queue_depth": client.queue.size()}
        result = await client.flush_queue()
        return {"online": True, **asdict(result)}
    finally:
        await client.aclose()


@queue_group.command("flush")
@click.pass_context
def queue_flush(ctx: click.Context) -> None:
    """Probe connectivity, then replay the queue if online."""
    cli_ctx = get_context(ctx)
    _require_path(cli_ctx)

    try:
        data = asyncio.run(_flush(cli_ctx))
    except QueueStoreError as e:
        emit_response_dict(error_to_response(e) or {})
    except ValueError as e:
        emit_error(str(e), code="VALIDATION_ERROR", error_type="validation")

    if not data["online"]:
        emit_error(
            "Server unreachable; queue left untouched",
            code="UNAVAILABLE",
            error_type="unavailable",
            details=data,
        )
    emit_success(data)
