from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gameplan.db.base import Base
from gameplan.models import DayOrder, ItemTiming, OrderLock, ScheduleTemplate, TemplateEntry
from gameplan.repositories.scheduling import scheduling_repository
from gameplan.store import JsonSchedulingStore
from scripts import backfill_json_stores as backfill


def test_backfill_imports_legacy_state(tmp_path: Path, monkeypatch) -> None:
    state_path = tmp_path / "gameplan_state.json"
    legacy = JsonSchedulingStore(state_path)
    legacy.save_order("runner", "training", ["b", "a"])
    legacy.save_sort_mode("runner", "manual")
    legacy.save_day_order("runner", DayOrder(event_date=date(2024, 1, 3), ordered_ids=["a", "b"], locked=True))
    legacy.save_lock("runner", OrderLock(kind="week", expires_at=datetime(2024, 1, 14), applicable_weekdays={1, 2}))
    legacy.add_skip("runner", "a", date(2024, 1, 2))
    legacy.save_timing("runner", "a", ItemTiming(start_time="06:00", reminder_minutes=5))
    legacy.save_template("runner", ScheduleTemplate(name="Base", entries=[TemplateEntry(item_id="a")]))
    legacy.save_weekday_exclusion("runner", "b", {0})

    engine = create_engine("sqlite://", future=True, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    @contextmanager
    def fake_scope(*, commit: bool = True) -> Iterator[Session]:
        with factory.begin() as session:
            yield session

    monkeypatch.setattr(backfill, "session_scope", fake_scope)
    try:
        assert backfill.backfill_gameplan_state(state_path) == 8

        with factory() as session:
            assert scheduling_repository.load_order(session, "runner", "training") == ["b", "a"]
            assert scheduling_repository.load_sort_mode(session, "runner") == "manual"
            pinned = scheduling_repository.load_day_order(session, "runner", date(2024, 1, 3))
            assert pinned is not None and pinned.ordered_ids == ["a", "b"] and pinned.locked
            assert scheduling_repository.load_lock(session, "runner").applicable_weekdays == {1, 2}
            assert scheduling_repository.load_skips(session, "runner", date(2024, 1, 2)) == {"a"}
            assert scheduling_repository.load_timings(session, "runner")["a"].reminder_minutes == 5
            assert [t.name for t in scheduling_repository.list_templates(session, "runner")] == ["Base"]
            assert scheduling_repository.load_weekday_exclusions(session, "runner") == {"b": {0}}
    finally:
        engine.dispose()


def test_backfill_missing_file_is_noop(tmp_path: Path) -> None:
    assert backfill.backfill_gameplan_state(tmp_path / "absent.json") == 0
