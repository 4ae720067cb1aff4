"""Request-scoped context for network operations.

Holds the correlation id of the operation currently being executed so that
log records and audit events emitted deep inside the retry/queue machinery
can be tied back to the caller's request.

Example:
    from netkeeper.core.context import correlation_scope

    with correlation_scope():
        await client.execute(op)
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Get the correlation id of the current operation ("" if unset)."""
    return correlation_id.get()


def new_correlation_id() -> str:
    """Generate a fresh correlation id."""
    return f"op-{uuid.uuid4().hex[:12]}"


@contextmanager
def correlation_scope(value: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id for the duration of the block.

    An id already bound by an outer scope is reused unless ``value`` is
    given explicitly.

    Args:
        value: Correlation id to bind (generated if omitted)

    Yields:
        The bound correlation id
    """
    current = correlation_id.get()
    cid = value or current or new_correlation_id()
    token = correlation_id.set(cid)
    try:
        yield cid
    finally:
        correlation_id.reset(token)
