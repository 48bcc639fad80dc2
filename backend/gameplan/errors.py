"""Error taxonomy for the game plan scheduling engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import OrderLock


class SchedulingError(Exception):
    """Base class for recoverable scheduling failures."""


class PersistenceFailure(SchedulingError):
    """A store write failed; in-memory state was rolled back and the action may be retried."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class ValidationFailure(SchedulingError, ValueError):
    """Input rejected before any state was touched."""


class OrderLockedError(SchedulingError):
    """An order mutation was refused because an order lock is active today."""

    def __init__(self, lock: Optional["OrderLock"] = None, detail: str = "Order is locked") -> None:
        if lock is not None:
            detail = f"Order is locked ({lock.kind}) until {lock.expires_at.isoformat()}"
        super().__init__(detail)
        self.lock = lock


__all__ = [
    "OrderLockedError",
    "PersistenceFailure",
    "SchedulingError",
    "ValidationFailure",
]
