from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path

import pytest

from gameplan.config import get_settings
from gameplan.errors import PersistenceFailure
from gameplan.models import DayOrder, ItemTiming, OrderLock, ScheduleTemplate, TemplateEntry
from gameplan.store import DatabaseSchedulingStore, JsonSchedulingStore, get_scheduling_store


@pytest.fixture()
def reset_store_cache():
    get_settings.cache_clear()
    get_scheduling_store.cache_clear()
    yield
    get_settings.cache_clear()
    get_scheduling_store.cache_clear()


def test_json_store_round_trips_state(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "state.json"
    store = JsonSchedulingStore(path)

    store.save_order("Coach-1", "checkin", ["a", "b"])
    store.save_sort_mode("coach-1", "timeline")
    store.save_lock("coach-1", OrderLock(kind="day", expires_at=datetime(2024, 1, 3)))
    store.add_skip("coach-1", "a", date(2024, 1, 2))
    store.save_timing("coach-1", "a", ItemTiming(start_time="07:45", reminder_minutes=0))
    store.save_weekday_exclusion("coach-1", "b", {6, 0})

    reopened = JsonSchedulingStore(path)
    assert reopened.load_order("COACH-1", "checkin") == ["a", "b"]
    assert reopened.load_sort_mode("coach-1") == "timeline"
    assert reopened.load_lock("coach-1").expires_at == datetime(2024, 1, 3)
    assert reopened.load_skips("coach-1", date(2024, 1, 2)) == {"a"}
    assert reopened.load_timings("coach-1")["a"].reminder_enabled
    assert reopened.load_weekday_exclusions("coach-1") == {"b": {0, 6}}

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert list(payload) == ["coach-1"]


def test_json_store_templates_keep_single_default(tmp_path: Path) -> None:
    store = JsonSchedulingStore(tmp_path / "state.json")
    entries = [TemplateEntry(item_id="a")]
    first = store.save_template("u", ScheduleTemplate(name="A", entries=entries, is_default=True))
    store.save_template("u", ScheduleTemplate(name="B", entries=entries, is_default=True))

    assert first.created_at is not None
    assert [t.name for t in store.list_templates("u") if t.is_default] == ["B"]

    store.set_default_template("u", None)
    assert not any(t.is_default for t in store.list_templates("u"))
    with pytest.raises(LookupError):
        store.set_default_template("u", "missing")


def test_commit_schedule_is_single_write(tmp_path: Path) -> None:
    store = JsonSchedulingStore(tmp_path / "state.json")
    store.commit_schedule("u", "timeline", ["b", "a"], {"a": ItemTiming(start_time="06:00")})

    assert store.load_order("u", "timeline") == ["b", "a"]
    assert store.load_timings("u")["a"].start_time == "06:00"


def test_get_scheduling_store_selects_legacy(monkeypatch, tmp_path: Path, reset_store_cache) -> None:
    monkeypatch.setenv("GAMEPLAN_PERSISTENCE_MODE", "legacy")
    monkeypatch.setenv("GAMEPLAN_LEGACY_STORE_PATH", str(tmp_path / "legacy.json"))

    selected = get_scheduling_store()

    assert isinstance(selected, JsonSchedulingStore)
    selected.save_order("u", "custom", ["x"])
    assert (tmp_path / "legacy.json").exists()


def test_get_scheduling_store_defaults_to_database(monkeypatch, reset_store_cache) -> None:
    monkeypatch.setenv("GAMEPLAN_PERSISTENCE_MODE", "database")
    assert isinstance(get_scheduling_store(), DatabaseSchedulingStore)


def test_invalid_settings_raise_runtime_error(monkeypatch, reset_store_cache) -> None:
    monkeypatch.setenv("GAMEPLAN_PERSISTENCE_MODE", "cloud")
    with pytest.raises(RuntimeError):
        get_settings()


def test_json_store_day_orders_keyed_by_date(tmp_path: Path) -> None:
    store = JsonSchedulingStore(tmp_path / "state.json")
    store.save_day_order("u", DayOrder(event_date=date(2024, 1, 2), ordered_ids=["b", "a"], locked=True))

    loaded = store.load_day_order("U", date(2024, 1, 2))
    assert loaded is not None
    assert loaded.ordered_ids == ["b", "a"]
    assert loaded.locked
    assert loaded.updated_at is not None
    assert store.load_day_order("u", date(2024, 1, 3)) is None


def test_json_store_corrupt_file_raises_persistence_failure(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceFailure) as excinfo:
        JsonSchedulingStore(path).load_sort_mode("u")
    assert excinfo.value.operation == "load_state"
