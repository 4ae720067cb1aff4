"""netkeeper classify: show how a failure would be treated."""

from typing import Optional

import click

from netkeeper.cli.output import emit_error, emit_success
from netkeeper.core.errors.network import HttpStatusError
from netkeeper.core.network.classifier import classify


@click.command("classify")
@click.option("--status", type=int, default=None, help="HTTP status code of the failed response.")
@click.option("--retry-after", type=str, default=None, help="Retry-After header value.")
@click.option("--message", type=str, default=None, help="Error message of a transport failure.")
def classify_cmd(status: Optional[int], retry_after: Optional[str], message: Optional[str]) -> None:
    """Classify a failure by HTTP status or error message."""
    if status is None and not message:
        emit_error(
            "Provide --status or --message",
            code="VALIDATION_ERROR",
            error_type="validation",
        )

    if status is not None:
        headers = {"Retry-After": retry_after} if retry_after is not None else {}
        error: Exception = HttpStatusError(status, headers=headers, body=message or "")
    else:
        error = RuntimeError(message)

    result = classify(error)
    emit_success(
        {
            "kind": result.kind.value,
            "retryable": result.retryable,
            "user_message": result.user_message,
            "retry_delay_hint": result.retry_delay_hint,
        }
    )
