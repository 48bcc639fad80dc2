"""Per-context order lists and sort-mode strategies."""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, get_args

from .errors import OrderLockedError, ValidationFailure
from .locks import LockController
from .models import TIMELINE_CONTEXT, DayOrder, ScheduledItem, SortMode, is_order_context
from .optimistic import optimistic_update
from .store import SchedulingStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)

SORT_MODES: tuple[str, ...] = get_args(SortMode)


def reconcile(stored: Iterable[str], live: Iterable[str]) -> List[str]:
    """Merge a stored order with the live id set.

    Surviving stored ids keep their relative order, ids that are no longer live are
    dropped, and new live ids are appended in arrival order.
    """
    live_ids = list(dict.fromkeys(live))
    live_set = set(live_ids)
    merged: List[str] = []
    seen: set[str] = set()
    for item_id in stored:
        if item_id in live_set and item_id not in seen:
            merged.append(item_id)
            seen.add(item_id)
    merged.extend(item_id for item_id in live_ids if item_id not in seen)
    return merged


def stale_ids(stored: Iterable[str], live: Iterable[str]) -> List[str]:
    live_set = set(live)
    return [item_id for item_id in dict.fromkeys(stored) if item_id not in live_set]


def completed_last(items: Sequence[ScheduledItem]) -> List[ScheduledItem]:
    """Stable partition: incomplete items first, completed items after."""
    return [item for item in items if not item.completed] + [item for item in items if item.completed]


def arrange(items: Sequence[ScheduledItem], ordered_ids: Sequence[str]) -> List[ScheduledItem]:
    by_id = {item.item_id: item for item in items}
    return [by_id[item_id] for item_id in ordered_ids if item_id in by_id]


def permute(
    context: str,
    ordered_ids: Sequence[str],
    current: Sequence[str],
    visible_ids: Sequence[str],
) -> List[str]:
    """Put ``ordered_ids`` first and keep the hidden ids of ``current`` after them in their old order."""
    requested = list(ordered_ids)
    if len(requested) != len(set(requested)) or set(requested) != set(visible_ids):
        raise ValidationFailure(
            f"Reorder for '{context}' must be a permutation of the {len(visible_ids)} visible item ids."
        )
    visible_set = set(visible_ids)
    return requested + [item_id for item_id in current if item_id not in visible_set]


def require_order_context(context: str) -> str:
    if not is_order_context(context):
        raise ValidationFailure(f"Unknown order context '{context}'.")
    return context


class OrderStore:
    """Explicit ordered id lists keyed by context for one user.

    The in-memory copy is loaded lazily from the store and every mutation is
    applied optimistically, so a failed write leaves it exactly as it was.
    """

    def __init__(self, user_id: str, store: SchedulingStore, locks: LockController) -> None:
        self._user_id = user_id
        self._store = store
        self._locks = locks
        self._orders: Dict[str, List[str]] = {}

    def stored(self, context: str) -> List[str]:
        if context not in self._orders:
            self._orders[context] = list(self._store.load_order(self._user_id, context))
        return list(self._orders[context])

    def snapshot(self, context: str) -> Optional[List[str]]:
        current = self._orders.get(context)
        return list(current) if current is not None else None

    def assign(self, context: str, ordered_ids: Optional[List[str]]) -> None:
        if ordered_ids is None:
            self._orders.pop(context, None)
        else:
            self._orders[context] = list(ordered_ids)

    def ordered_ids(self, context: str, live_ids: Iterable[str]) -> List[str]:
        return reconcile(self.stored(context), live_ids)

    def reorder(
        self,
        context: str,
        ordered_ids: Sequence[str],
        live_ids: Sequence[str],
        visible_ids: Sequence[str],
    ) -> List[str]:
        """Replace the order of the visible ids; hidden live ids keep their relative order after them."""
        require_order_context(context)
        self._locks.ensure_unlocked("order_reorder", context=context)

        stored = self.stored(context)
        new_order = permute(context, ordered_ids, reconcile(stored, live_ids), visible_ids)

        optimistic_update(
            "order_reorder",
            read=lambda: self.snapshot(context),
            assign=lambda value: self.assign(context, value),
            new_value=new_order,
            write=lambda value: self._store.save_order(self._user_id, context, value),
            user_id=self._user_id,
            context=context,
        )
        emit_event(
            "order_reorder",
            user_id=self._user_id,
            context=context,
            count=len(new_order),
            dropped_ids=len(stale_ids(stored, live_ids)),
        )
        return list(new_order)

    def repartition(self, context: str, items: Sequence[ScheduledItem]) -> List[str]:
        """Move completed items below incomplete ones once, keeping relative order within each group."""
        current = self.ordered_ids(context, [item.item_id for item in items])
        if self._locks.is_active():
            logger.debug("Skipping %s repartition for %s while the order is locked", context, self._user_id)
            return current

        new_order = [item.item_id for item in completed_last(arrange(items, current))]
        if new_order == self.stored(context):
            return new_order

        optimistic_update(
            "order_repartition",
            read=lambda: self.snapshot(context),
            assign=lambda value: self.assign(context, value),
            new_value=new_order,
            write=lambda value: self._store.save_order(self._user_id, context, value),
            user_id=self._user_id,
            context=context,
        )
        emit_event("order_repartition", user_id=self._user_id, context=context, count=len(new_order))
        return list(new_order)


class DayOrderBook:
    """Orders pinned to a single calendar date.

    A pinned order wins over the stored timeline order on its date. While its
    ``locked`` flag is set it can only be unlocked, never overwritten.
    """

    def __init__(self, user_id: str, store: SchedulingStore, locks: LockController) -> None:
        self._user_id = user_id
        self._store = store
        self._locks = locks
        self._orders: Dict[date, Optional[DayOrder]] = {}

    def get(self, day: date) -> Optional[DayOrder]:
        if day not in self._orders:
            self._orders[day] = self._store.load_day_order(self._user_id, day)
        return self._orders[day]

    def is_locked(self, day: date) -> bool:
        order = self.get(day)
        return bool(order and order.locked)

    def save(self, day: date, ordered_ids: Sequence[str], locked: bool = False) -> DayOrder:
        self._locks.ensure_unlocked("day_order_save", event_date=day)
        if self.is_locked(day):
            emit_event("order_reorder_blocked", user_id=self._user_id, operation="day_order_save", event_date=day)
            raise OrderLockedError(detail=f"Order for {day.isoformat()} is locked; unlock the date first.")

        order = DayOrder(event_date=day, ordered_ids=list(ordered_ids), locked=locked)
        self._write("day_order_saved", day, order)
        return order

    def unlock(self, day: date) -> Optional[DayOrder]:
        current = self.get(day)
        if current is None or not current.locked:
            return current
        order = current.model_copy(update={"locked": False})
        self._write("day_order_unlocked", day, order)
        return order

    def _write(self, operation: str, day: date, order: DayOrder) -> None:
        def _assign(value: Optional[DayOrder]) -> None:
            self._orders[day] = value

        optimistic_update(
            operation,
            read=lambda: self.get(day),
            assign=_assign,
            new_value=order,
            write=lambda value: self._store.save_day_order(self._user_id, value),
            user_id=self._user_id,
            event_date=day,
        )
        emit_event(
            operation,
            user_id=self._user_id,
            event_date=day,
            count=len(order.ordered_ids),
            locked=order.locked,
        )


class SortModeController:
    """Chooses how each context is ordered for one user."""

    def __init__(self, user_id: str, store: SchedulingStore, default_mode: SortMode = "auto") -> None:
        self._user_id = user_id
        self._store = store
        self._default_mode = default_mode
        self._mode: Optional[SortMode] = None

    @property
    def mode(self) -> SortMode:
        if self._mode is None:
            self._mode = self._store.load_sort_mode(self._user_id) or self._default_mode
        return self._mode

    def set_mode(self, mode: str) -> SortMode:
        if mode not in SORT_MODES:
            raise ValidationFailure(f"Unknown sort mode '{mode}'; expected one of {', '.join(SORT_MODES)}.")
        previous = self.mode
        if mode == previous:
            return previous

        def _assign(value: SortMode) -> None:
            self._mode = value

        optimistic_update(
            "sort_mode_change",
            read=lambda: self.mode,
            assign=_assign,
            new_value=mode,  # type: ignore[arg-type]
            write=lambda value: self._store.save_sort_mode(self._user_id, value),
            user_id=self._user_id,
        )
        emit_event("sort_mode_change", user_id=self._user_id, previous=previous, mode=mode)
        return self.mode

    def order(
        self,
        context: str,
        live_items: Sequence[ScheduledItem],
        visible_items: Sequence[ScheduledItem],
        orders: OrderStore,
        day_order: Optional[DayOrder] = None,
    ) -> List[ScheduledItem]:
        """Order ``visible_items``; a pinned ``day_order`` replaces the stored timeline order."""
        live_ids = [item.item_id for item in live_items]
        if context == TIMELINE_CONTEXT and day_order is not None and day_order.ordered_ids:
            return arrange(visible_items, reconcile(day_order.ordered_ids, live_ids))
        if context != TIMELINE_CONTEXT and self.mode == "auto":
            return completed_last(visible_items)
        ordered_ids = orders.ordered_ids(context, live_ids)
        return arrange(visible_items, ordered_ids)


__all__ = [
    "DayOrderBook",
    "OrderStore",
    "SORT_MODES",
    "SortModeController",
    "arrange",
    "completed_last",
    "permute",
    "reconcile",
    "require_order_context",
    "stale_ids",
]
