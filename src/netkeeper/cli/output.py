"""JSON output helpers for CLI commands.

Every command prints exactly one response envelope to stdout. Errors exit
with status 1 so shell scripts can branch on the exit code alone.
"""

import json
import sys
from dataclasses import asdict
from typing import Any, Mapping, NoReturn, Optional

import click

from netkeeper.core.responses import Response, error_response, success_response


def _emit(response: Response) -> None:
    click.echo(json.dumps(asdict(response), default=str))


def emit_success(data: Optional[Mapping[str, Any]] = None) -> None:
    """Print a success envelope."""
    _emit(success_response(data))


def emit_error(
    message: str,
    *,
    code: str = "INTERNAL_ERROR",
    error_type: str = "internal",
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
) -> NoReturn:
    """Print an error envelope and exit with status 1."""
    _emit(
        error_response(
            message,
            error_code=code,
            error_type=error_type,
            remediation=remediation,
            details=details,
        )
    )
    sys.exit(1)


def emit_response_dict(payload: Mapping[str, Any]) -> NoReturn:
    """Print a pre-built error envelope (from ``error_to_response``) and exit 1."""
    click.echo(json.dumps(dict(payload), default=str))
    sys.exit(1)
