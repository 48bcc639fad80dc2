from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List

import pytest

from gameplan.errors import OrderLockedError, PersistenceFailure, ValidationFailure
from gameplan.locks import LockController
from gameplan.models import ScheduledItem
from gameplan.ordering import OrderStore, SortModeController, completed_last, reconcile
from gameplan.store import JsonSchedulingStore
from gameplan.telemetry import TelemetryEvent, clear_listeners, register_listener

USER = "athlete-1"


class _FailingStore(JsonSchedulingStore):
    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.fail_writes = False

    def save_order(self, user_id, context, ordered_ids) -> None:
        if self.fail_writes:
            raise RuntimeError("store offline")
        super().save_order(user_id, context, ordered_ids)

    def save_sort_mode(self, user_id, mode) -> None:
        if self.fail_writes:
            raise RuntimeError("store offline")
        super().save_sort_mode(user_id, mode)


def _clock(now: datetime):
    return lambda: now


def _orders(store: JsonSchedulingStore, now: datetime = datetime(2024, 1, 2, 9)) -> OrderStore:
    return OrderStore(USER, store, LockController(USER, store, _clock(now)))


def _items(*ids: str, completed: tuple[str, ...] = ()) -> List[ScheduledItem]:
    return [ScheduledItem(item_id=item_id, completed=item_id in completed) for item_id in ids]


def _collect_events() -> List[TelemetryEvent]:
    events: List[TelemetryEvent] = []
    clear_listeners()
    register_listener(events.append)
    return events


def test_reconcile_drops_stale_and_appends_new() -> None:
    assert reconcile(["c", "gone", "a"], ["a", "b", "c", "d"]) == ["c", "a", "b", "d"]


def test_reconcile_preserves_relative_order_of_survivors() -> None:
    stored = ["e", "b", "x", "a", "d"]
    live = ["a", "b", "c", "d"]
    merged = reconcile(stored, live)
    survivors = [item_id for item_id in stored if item_id in live]
    assert [item_id for item_id in merged if item_id in survivors] == survivors
    assert sorted(merged) == sorted(live)


def test_reconcile_keeps_first_duplicate() -> None:
    assert reconcile(["b", "a", "b"], ["a", "b"]) == ["b", "a"]


def test_completed_last_is_stable_and_idempotent() -> None:
    items = _items("a", "b", "c", "d", completed=("a", "c"))
    once = completed_last(items)
    assert [item.item_id for item in once] == ["b", "d", "a", "c"]
    assert completed_last(once) == once


def test_reorder_persists_permutation_with_hidden_ids_after(tmp_path: Path) -> None:
    store = JsonSchedulingStore(tmp_path / "state.json")
    store.save_order(USER, "training", ["h", "a", "b", "c"])
    orders = _orders(store)

    result = orders.reorder("training", ["c", "a", "b"], ["a", "b", "c", "h"], ["a", "b", "c"])

    assert result == ["c", "a", "b", "h"]
    assert store.load_order(USER, "training") == ["c", "a", "b", "h"]


def test_reorder_rejects_non_permutation(tmp_path: Path) -> None:
    store = JsonSchedulingStore(tmp_path / "state.json")
    orders = _orders(store)

    with pytest.raises(ValidationFailure):
        orders.reorder("training", ["a", "a"], ["a", "b"], ["a", "b"])
    with pytest.raises(ValidationFailure):
        orders.reorder("training", ["a"], ["a", "b"], ["a", "b"])
    assert store.load_order(USER, "training") == []


def test_reorder_blocked_while_locked_leaves_store_unchanged(tmp_path: Path) -> None:
    store = JsonSchedulingStore(tmp_path / "state.json")
    store.save_order(USER, "checkin", ["b", "a"])
    now = datetime(2024, 1, 2, 9)
    locks = LockController(USER, store, _clock(now))
    locks.lock_day()
    orders = OrderStore(USER, store, locks)
    before = (tmp_path / "state.json").read_bytes()
    events = _collect_events()

    with pytest.raises(OrderLockedError):
        orders.reorder("checkin", ["a", "b"], ["a", "b"], ["a", "b"])

    assert (tmp_path / "state.json").read_bytes() == before
    assert orders.stored("checkin") == ["b", "a"]
    assert [event.name for event in events] == ["order_reorder_blocked"]
    clear_listeners()


def test_reorder_rolls_back_on_store_failure(tmp_path: Path) -> None:
    store = _FailingStore(tmp_path / "state.json")
    store.save_order(USER, "custom", ["a", "b"])
    orders = _orders(store)
    assert orders.stored("custom") == ["a", "b"]
    events = _collect_events()
    store.fail_writes = True

    with pytest.raises(PersistenceFailure) as excinfo:
        orders.reorder("custom", ["b", "a"], ["a", "b"], ["a", "b"])

    assert excinfo.value.operation == "order_reorder"
    assert orders.stored("custom") == ["a", "b"]
    assert store.load_order(USER, "custom") == ["a", "b"]
    assert [event.name for event in events] == ["optimistic_rollback"]
    clear_listeners()


def test_repartition_moves_completed_to_bottom_once(tmp_path: Path) -> None:
    store = JsonSchedulingStore(tmp_path / "state.json")
    store.save_order(USER, "timeline", ["a", "b", "c", "d"])
    orders = _orders(store)

    result = orders.repartition("timeline", _items("a", "b", "c", "d", completed=("b",)))

    assert result == ["a", "c", "d", "b"]
    assert store.load_order(USER, "timeline") == ["a", "c", "d", "b"]


def test_repartition_suppressed_while_locked(tmp_path: Path) -> None:
    store = JsonSchedulingStore(tmp_path / "state.json")
    store.save_order(USER, "timeline", ["a", "b"])
    locks = LockController(USER, store, _clock(datetime(2024, 1, 2, 9)))
    locks.lock_day()
    orders = OrderStore(USER, store, locks)

    assert orders.repartition("timeline", _items("a", "b", completed=("a",))) == ["a", "b"]
    assert store.load_order(USER, "timeline") == ["a", "b"]


def test_sort_mode_defaults_and_persists(tmp_path: Path) -> None:
    store = JsonSchedulingStore(tmp_path / "state.json")
    controller = SortModeController(USER, store, "auto")
    assert controller.mode == "auto"

    assert controller.set_mode("manual") == "manual"
    assert SortModeController(USER, store, "auto").mode == "manual"

    with pytest.raises(ValidationFailure):
        controller.set_mode("alphabetical")


def test_sort_mode_rolls_back_on_failure(tmp_path: Path) -> None:
    store = _FailingStore(tmp_path / "state.json")
    controller = SortModeController(USER, store, "auto")
    store.fail_writes = True

    with pytest.raises(PersistenceFailure):
        controller.set_mode("timeline")
    assert controller.mode == "auto"


def test_sort_mode_strategies(tmp_path: Path) -> None:
    store = JsonSchedulingStore(tmp_path / "state.json")
    store.save_order(USER, "training", ["c", "a", "b"])
    orders = _orders(store)
    items = _items("a", "b", "c", completed=("a",))
    controller = SortModeController(USER, store, "auto")

    auto = controller.order("training", items, items, orders)
    assert [item.item_id for item in auto] == ["b", "c", "a"]

    controller.set_mode("manual")
    manual = controller.order("training", items, items, orders)
    assert [item.item_id for item in manual] == ["c", "a", "b"]

    # Stored order is applied to visible items only.
    visible = [item for item in items if item.item_id != "a"]
    assert [item.item_id for item in controller.order("training", items, visible, orders)] == ["c", "b"]
