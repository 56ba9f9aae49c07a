# backend/folio_tracker/utils/context.py
"""
Run context for holdings computations.

Each holdings computation (compute_holdings, a recalculation, a transfer
issue report) runs under its own correlation ID so that every log line it
produces can be grouped, even when several computations interleave.

Uses Python's contextvars, so the ID follows threads and async tasks
without being passed around explicitly.

Usage:
    from folio_tracker.utils.context import correlation_scope, get_correlation_id

    with correlation_scope() as run_id:
        logger.info("Replaying ledger")   # tagged with run_id
"""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

# =============================================================================
# CONTEXT VARIABLES
# =============================================================================

# Correlation ID of the current computation
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


# =============================================================================
# CORRELATION ID
# =============================================================================

def get_correlation_id() -> str | None:
    """
    Get the current computation's correlation ID.

    Returns:
        The correlation ID, or None if no computation is running.
    """
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the correlation ID for the current context.

    Prefer correlation_scope(), which also restores the previous value.
    """
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID."""
    _correlation_id_var.set(None)


def new_correlation_id() -> str:
    """Short random ID for one computation."""
    return uuid.uuid4().hex[:12]


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """
    Run a block under a correlation ID.

    An ID already set by the caller is reused, so nested service calls
    share the outer computation's ID.

    Args:
        correlation_id: Explicit ID (defaults to the current one, or a new one)

    Yields:
        The active correlation ID
    """
    active = correlation_id or get_correlation_id() or new_correlation_id()
    token = _correlation_id_var.set(active)
    try:
        yield active
    finally:
        _correlation_id_var.reset(token)
