"""End-to-end behaviour of the per-user game plan engine."""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import List

import pytest

from gameplan.engine import GamePlanEngine, context_items
from gameplan.errors import OrderLockedError, ValidationFailure
from gameplan.models import CycleProgram, ScheduledItem
from gameplan.store import JsonSchedulingStore
from gameplan.telemetry import TelemetryEvent, clear_listeners, register_listener

USER = "athlete-engine"


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _engine(tmp_path: Path, clock: _Clock, program: CycleProgram | None = None, mode: str = "auto") -> GamePlanEngine:
    return GamePlanEngine(
        USER,
        JsonSchedulingStore(tmp_path / "state.json"),
        program=program,
        clock=clock,
        default_sort_mode=mode,
        max_templates=10,
    )


def _plan() -> List[ScheduledItem]:
    return [
        ScheduledItem(item_id="weigh-in", context="checkin"),
        ScheduledItem(item_id="mobility", context="training", weekdays={1, 3, 5}),
        ScheduledItem(item_id="intervals", context="training"),
        ScheduledItem(item_id="long-run", context="training", cycle_week=2),
        ScheduledItem(item_id="tempo", context="training", cycle_week=1),
        ScheduledItem(item_id="sleep", context="tracking"),
    ]


def test_view_filters_and_orders_training_context(tmp_path: Path) -> None:
    program = CycleProgram(start_date=date(2024, 1, 1), length_weeks=3, cycle_type="rotating")
    engine = _engine(tmp_path, _Clock(datetime(2024, 1, 2, 6)), program)  # Tuesday, week 1

    view = engine.view(_plan(), "training")

    assert view.cycle_week == 1
    assert view.lock_state == "unlocked"
    assert view.sort_mode == "auto"
    assert view.ordered_ids == ["intervals", "tempo"]
    assert [item.item_id for item in view.hidden_schedule_excluded] == ["mobility", "long-run"]
    assert view.hidden_manual_skip == []


def test_skip_precedence_and_restore(tmp_path: Path) -> None:
    engine = _engine(tmp_path, _Clock(datetime(2024, 1, 2, 6)))
    engine.skip("mobility")
    engine.skip("intervals")

    view = engine.view(_plan(), "training")
    assert [item.item_id for item in view.hidden_manual_skip] == ["mobility", "intervals"]

    engine.restore("mobility")
    engine.restore("intervals")
    view = engine.view(_plan(), "training")
    assert "intervals" in view.ordered_ids
    assert [item.item_id for item in view.hidden_schedule_excluded] == ["mobility"]
    assert engine.skips.skipped_ids() == frozenset()


def test_weekday_exclusion_hides_item(tmp_path: Path) -> None:
    engine = _engine(tmp_path, _Clock(datetime(2024, 1, 2, 6)))
    engine.set_weekday_exclusion("sleep", {2})

    assert [item.item_id for item in engine.view(_plan(), "tracking").hidden_schedule_excluded] == ["sleep"]

    engine.set_weekday_exclusion("sleep", set())
    assert engine.view(_plan(), "tracking").ordered_ids == ["sleep"]

    with pytest.raises(ValidationFailure):
        engine.set_weekday_exclusion("sleep", {7})


def test_manual_reorder_round_trips_through_store(tmp_path: Path) -> None:
    clock = _Clock(datetime(2024, 1, 3, 6))  # Wednesday: mobility visible
    engine = _engine(tmp_path, clock, mode="manual")
    items = [item for item in _plan() if item.cycle_week is None]

    view = engine.reorder("training", ["intervals", "mobility"], items)
    assert view.ordered_ids == ["intervals", "mobility"]

    fresh = _engine(tmp_path, clock, mode="manual")
    assert fresh.view(items, "training").ordered_ids == ["intervals", "mobility"]


def test_reorder_blocked_by_active_week_lock(tmp_path: Path) -> None:
    clock = _Clock(datetime(2024, 1, 6, 10))  # Saturday
    engine = _engine(tmp_path, clock, mode="manual")
    items = [ScheduledItem(item_id=item_id, context="custom") for item_id in ("a", "b", "c")]
    engine.lock_week({1, 2, 3, 4, 5})

    # Dormant on Saturday: reorder is allowed.
    assert engine.reorder("custom", ["c", "b", "a"], items).ordered_ids == ["c", "b", "a"]

    clock.now = datetime(2024, 1, 8, 7)  # Monday
    assert engine.lock_state() == "locked_week"
    with pytest.raises(OrderLockedError):
        engine.reorder("custom", ["a", "b", "c"], items)
    assert engine.view(items, "custom").ordered_ids == ["c", "b", "a"]

    engine.unlock()
    assert engine.reorder("custom", ["a", "b", "c"], items).ordered_ids == ["a", "b", "c"]


def test_rotation_boundary_recomputed_on_read(tmp_path: Path) -> None:
    program = CycleProgram(start_date=date(2024, 1, 1), length_weeks=3, cycle_type="rotating")
    clock = _Clock(datetime(2024, 1, 7, 23, 59))
    engine = _engine(tmp_path, clock, program)

    assert "tempo" in engine.view(_plan(), "training").ordered_ids
    clock.now = datetime(2024, 1, 8, 0, 1)
    view = engine.view(_plan(), "training")
    assert view.cycle_week == 2
    assert "long-run" in view.ordered_ids
    assert "tempo" not in view.ordered_ids


def test_timeline_completion_repartitions_once(tmp_path: Path) -> None:
    engine = _engine(tmp_path, _Clock(datetime(2024, 1, 3, 6)), mode="timeline")
    items = [ScheduledItem(item_id=item_id) for item_id in ("a", "b", "c")]
    engine.reorder("timeline", ["a", "b", "c"], items)
    events: List[TelemetryEvent] = []
    clear_listeners()
    register_listener(events.append)

    view = engine.toggle_completion(items, "a", True)

    assert view.ordered_ids == ["b", "c", "a"]
    assert [event.name for event in events] == ["order_repartition"]

    # Moving a completed item back up sticks until the next flip.
    completed = [item.model_copy(update={"completed": item.item_id == "a"}) for item in items]
    assert engine.reorder("timeline", ["a", "b", "c"], completed).ordered_ids == ["a", "b", "c"]
    assert engine.view(completed, "timeline").ordered_ids == ["a", "b", "c"]
    clear_listeners()


def test_toggle_completion_unknown_item(tmp_path: Path) -> None:
    engine = _engine(tmp_path, _Clock(datetime(2024, 1, 3, 6)))
    with pytest.raises(LookupError):
        engine.toggle_completion([], "ghost", True)


def test_template_capture_and_apply(tmp_path: Path) -> None:
    engine = _engine(tmp_path, _Clock(datetime(2024, 1, 3, 6)), mode="timeline")
    items = [ScheduledItem(item_id=item_id) for item_id in ("x", "y", "z")]
    engine.reorder("timeline", ["z", "y", "x"], items)
    engine.set_item_timing("x", "06:00", 15)
    engine.capture_template("Morning", items, is_default=True)

    engine.reorder("timeline", ["x", "y", "z"], items)
    engine.set_item_timing("x", "09:00", None)

    live = [item for item in items if item.item_id != "y"] + [ScheduledItem(item_id="new")]
    view = engine.apply_template("Morning", live)

    assert view.ordered_ids == ["z", "x", "new"]
    assert engine.timings.get("x").start_time == "06:00"
    assert engine.timings.get("x").reminder_minutes == 15
    assert [template.name for template in engine.list_templates()] == ["Morning"]
    assert engine.templates.default_template().name == "Morning"
    assert engine.delete_template("Morning") is True


def test_context_items_filters_grouping_contexts() -> None:
    plan = _plan()
    assert [item.item_id for item in context_items(plan, "checkin")] == ["weigh-in"]
    assert len(context_items(plan, "timeline")) == len(plan)
