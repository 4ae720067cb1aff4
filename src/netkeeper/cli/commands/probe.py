"""netkeeper probe: run one heartbeat and report connectivity."""

import asyncio
import logging
from typing import Any, Dict, Tuple

import click

from netkeeper.cli.output import emit_error, emit_success
from netkeeper.cli.registry import get_context
from netkeeper.core.network.connectivity import ConnectivityMonitor
from netkeeper.core.network.heartbeat import HttpHeartbeat

logger = logging.getLogger(__name__)


async def _run_probe(endpoints: Tuple[str, ...], method: str, timeout: float) -> Dict[str, Any]:
    probe = HttpHeartbeat(endpoints, method=method, timeout=timeout)
    monitor = ConnectivityMonitor(probe, initial_online=True, heartbeat_timeout=timeout)
    try:
        await monitor.check_now()
        return monitor.get_diagnostics()
    finally:
        await probe.aclose()


@click.command("probe")
@click.option("--url", "urls", multiple=True, help="Endpoint to probe (repeatable, tried in order).")
@click.option("--timeout", type=float, default=None, help="Heartbeat timeout in seconds.")
@click.pass_context
def probe_cmd(ctx: click.Context, urls: Tuple[str, ...], timeout: float) -> None:
    """Run a single heartbeat against the configured endpoints."""
    cli_ctx = get_context(ctx)
    heartbeat = cli_ctx.config.heartbeat
    endpoints = tuple(urls) or tuple(heartbeat.resolve_endpoints(cli_ctx.config.base_url))

    if not endpoints:
        emit_error(
            "No heartbeat endpoints configured",
            code="VALIDATION_ERROR",
            error_type="validation",
            remediation="Pass --url, set NETKEEPER_BASE_URL or NETKEEPER_HEARTBEAT_ENDPOINTS",
        )

    diagnostics = asyncio.run(_run_probe(endpoints, heartbeat.method, timeout or heartbeat.timeout))
    data = {"endpoints": list(endpoints), **diagnostics}

    if not diagnostics["online"]:
        emit_error(
            "Server unreachable",
            code="UNAVAILABLE",
            error_type="unavailable",
            remediation="Check the network connection and the configured endpoints",
            details=data,
        )

    emit_success(data)
