"""Day and week order locks, evaluated against the clock on every read."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from .cycle_clock import day_lock_expiry, local_weekday, week_lock_expiry
from .errors import OrderLockedError, ValidationFailure
from .models import WEEKDAYS, LockState, OrderLock
from .optimistic import optimistic_update
from .store import SchedulingStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)


class LockController:
    def __init__(
        self,
        user_id: str,
        store: SchedulingStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._user_id = user_id
        self._store = store
        self._clock = clock
        self._lock: Optional[OrderLock] = None
        self._loaded = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def stored_lock(self) -> Optional[OrderLock]:
        """The persisted lock record, whether or not it is active right now."""
        if not self._loaded:
            self._lock = self._store.load_lock(self._user_id)
            self._loaded = True
        return self._lock

    def active_lock(self, now: Optional[datetime] = None) -> Optional[OrderLock]:
        lock = self.stored_lock
        if lock is None:
            return None
        moment = now or self._clock()
        if moment >= lock.expires_at:
            return None
        if lock.kind == "week" and local_weekday(moment.date()) not in lock.applicable_weekdays:
            return None
        return lock

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return self.active_lock(now) is not None

    def state(self, now: Optional[datetime] = None) -> LockState:
        lock = self.active_lock(now)
        if lock is None:
            return "unlocked"
        return "locked_day" if lock.kind == "day" else "locked_week"

    def ensure_unlocked(self, operation: str, **context: Any) -> None:
        """Raise :class:`OrderLockedError` when an active lock blocks ``operation``."""
        lock = self.active_lock()
        if lock is None:
            return
        logger.info("Blocked %s for %s: order locked until %s", operation, self._user_id, lock.expires_at)
        emit_event(
            "order_reorder_blocked",
            user_id=self._user_id,
            operation=operation,
            lock_kind=lock.kind,
            expires_at=lock.expires_at,
            **context,
        )
        raise OrderLockedError(lock)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def lock_day(self) -> OrderLock:
        now = self._clock()
        lock = OrderLock(kind="day", expires_at=day_lock_expiry(now), locked_at=now)
        return self._set(lock)

    def lock_week(self, weekdays: Iterable[int]) -> OrderLock:
        chosen = set(weekdays)
        if not chosen:
            raise ValidationFailure("Select at least one weekday to lock the week.")
        invalid = sorted(day for day in chosen if day not in WEEKDAYS)
        if invalid:
            raise ValidationFailure(f"Weekdays must be within 0..6 (Sunday=0); got {invalid}.")
        now = self._clock()
        lock = OrderLock(
            kind="week",
            expires_at=week_lock_expiry(now, chosen),
            applicable_weekdays=chosen,
            locked_at=now,
        )
        return self._set(lock)

    def unlock(self) -> None:
        previous = self.stored_lock
        if previous is None:
            return
        optimistic_update(
            "order_lock_clear",
            read=lambda: self.stored_lock,
            assign=self._assign,
            new_value=None,
            write=lambda value: self._store.save_lock(self._user_id, value),
            user_id=self._user_id,
        )
        emit_event("order_lock_cleared", user_id=self._user_id, kind=previous.kind)

    def update_weekdays(self, unlock: Iterable[int] = (), lock: Iterable[int] = ()) -> Optional[OrderLock]:
        """Drop ``unlock`` weekdays from the lock and add ``lock`` weekdays.

        A day lock that is still running counts as a lock on today's weekday. The
        record is removed once no weekday is left.
        """
        released = set(unlock)
        added = set(lock)
        invalid = sorted(day for day in released | added if day not in WEEKDAYS)
        if invalid:
            raise ValidationFailure(f"Weekdays must be within 0..6 (Sunday=0); got {invalid}.")

        now = self._clock()
        current = self.stored_lock
        locked_days: set[int] = set()
        if current is not None and now < current.expires_at:
            if current.kind == "week":
                locked_days = set(current.applicable_weekdays)
            else:
                locked_days = {local_weekday(now.date())}

        remaining = (locked_days - released) | added
        if not remaining:
            self.unlock()
            return None
        if current is not None and current.kind == "week" and remaining == locked_days:
            return current
        updated = OrderLock(
            kind="week",
            expires_at=week_lock_expiry(now, remaining),
            applicable_weekdays=remaining,
            locked_at=current.locked_at if current is not None and current.locked_at else now,
        )
        return self._set(updated)

    def _set(self, lock: OrderLock) -> OrderLock:
        optimistic_update(
            "order_lock_set",
            read=lambda: self.stored_lock,
            assign=self._assign,
            new_value=lock,
            write=lambda value: self._store.save_lock(self._user_id, value),
            user_id=self._user_id,
            kind=lock.kind,
        )
        emit_event(
            "order_lock_set",
            user_id=self._user_id,
            kind=lock.kind,
            expires_at=lock.expires_at,
            applicable_weekdays=lock.applicable_weekdays,
        )
        return lock

    def _assign(self, lock: Optional[OrderLock]) -> None:
        self._lock = lock
        self._loaded = True


__all__ = ["LockController"]
