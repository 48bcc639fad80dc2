"""Optimistic mutation with compensating rollback."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from .errors import PersistenceFailure
from .telemetry import emit_event

logger = logging.getLogger(__name__)

T = TypeVar("T")


def optimistic_update(
    operation: str,
    read: Callable[[], T],
    assign: Callable[[T], None],
    new_value: T,
    write: Callable[[T], Any],
    **context: Any,
) -> T:
    """Assign ``new_value`` locally, persist it, and restore the prior value if the write fails.

    Store errors surface as :class:`PersistenceFailure`; the caller sees either the
    new value committed both locally and in the store, or the old value in both.
    """
    previous = read()
    assign(new_value)
    try:
        write(new_value)
    except Exception as exc:  # noqa: BLE001
        assign(previous)
        logger.warning("Rolling back %s after store failure: %s", operation, exc)
        emit_event(
            "optimistic_rollback",
            operation=operation,
            error=str(exc),
            exception_type=exc.__class__.__name__,
            **context,
        )
        if isinstance(exc, PersistenceFailure):
            raise
        raise PersistenceFailure(operation, str(exc)) from exc
    return new_value


__all__ = ["optimistic_update"]
