"""Persistence adapters used by the scheduling engine."""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Protocol, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .db.session import session_scope
from .errors import PersistenceFailure
from .models import DayOrder, ItemTiming, OrderLock, ScheduleTemplate, SortMode
from .repositories.scheduling import scheduling_repository

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"


class SchedulingStore(Protocol):
    """Load/save hooks the engine relies on. Writes raise on failure."""

    def load_order(self, user_id: str, context: str) -> List[str]: ...

    def save_order(self, user_id: str, context: str, ordered_ids: List[str]) -> None: ...

    def load_day_order(self, user_id: str, day: date) -> Optional[DayOrder]: ...

    def save_day_order(self, user_id: str, order: DayOrder) -> None: ...

    def load_sort_mode(self, user_id: str) -> Optional[SortMode]: ...

    def save_sort_mode(self, user_id: str, mode: SortMode) -> None: ...

    def load_lock(self, user_id: str) -> Optional[OrderLock]: ...

    def save_lock(self, user_id: str, lock: Optional[OrderLock]) -> None: ...

    def load_skips(self, user_id: str, day: date) -> Set[str]: ...

    def add_skip(self, user_id: str, item_id: str, day: date) -> None: ...

    def remove_skip(self, user_id: str, item_id: str, day: date) -> None: ...

    def load_timings(self, user_id: str) -> Dict[str, ItemTiming]: ...

    def save_timing(self, user_id: str, item_id: str, timing: ItemTiming) -> None: ...

    def commit_schedule(
        self,
        user_id: str,
        context: str,
        ordered_ids: List[str],
        timings: Mapping[str, ItemTiming],
    ) -> None: ...

    def list_templates(self, user_id: str) -> List[ScheduleTemplate]: ...

    def save_template(self, user_id: str, template: ScheduleTemplate) -> ScheduleTemplate: ...

    def set_default_template(self, user_id: str, name: Optional[str]) -> None: ...

    def delete_template(self, user_id: str, name: str) -> bool: ...

    def load_weekday_exclusions(self, user_id: str) -> Dict[str, Set[int]]: ...

    def save_weekday_exclusion(self, user_id: str, item_id: str, weekdays: Set[int]) -> None: ...


@contextmanager
def _read_session(operation: str) -> Iterator[Session]:
    """Read-only session; connection and query failures surface as :class:`PersistenceFailure`."""
    try:
        with session_scope(commit=False) as session:
            yield session
    except (SQLAlchemyError, RuntimeError) as exc:
        raise PersistenceFailure(operation, str(exc)) from exc


class DatabaseSchedulingStore:
    """SQLAlchemy-backed store; each call runs in its own transaction."""

    def load_order(self, user_id: str, context: str) -> List[str]:
        with _read_session("load_order") as session:
            return scheduling_repository.load_order(session, user_id, context)

    def save_order(self, user_id: str, context: str, ordered_ids: List[str]) -> None:
        with session_scope() as session:
            scheduling_repository.save_order(session, user_id, context, ordered_ids)

    def load_day_order(self, user_id: str, day: date) -> Optional[DayOrder]:
        with _read_session("load_day_order") as session:
            return scheduling_repository.load_day_order(session, user_id, day)

    def save_day_order(self, user_id: str, order: DayOrder) -> None:
        with session_scope() as session:
            scheduling_repository.save_day_order(session, user_id, order)

    def load_sort_mode(self, user_id: str) -> Optional[SortMode]:
        with _read_session("load_sort_mode") as session:
            return scheduling_repository.load_sort_mode(session, user_id)

    def save_sort_mode(self, user_id: str, mode: SortMode) -> None:
        with session_scope() as session:
            scheduling_repository.save_sort_mode(session, user_id, mode)

    def load_lock(self, user_id: str) -> Optional[OrderLock]:
        with _read_session("load_lock") as session:
            return scheduling_repository.load_lock(session, user_id)

    def save_lock(self, user_id: str, lock: Optional[OrderLock]) -> None:
        with session_scope() as session:
            scheduling_repository.save_lock(session, user_id, lock)

    def load_skips(self, user_id: str, day: date) -> Set[str]:
        with _read_session("load_skips") as session:
            return scheduling_repository.load_skips(session, user_id, day)

    def add_skip(self, user_id: str, item_id: str, day: date) -> None:
        with session_scope() as session:
            scheduling_repository.add_skip(session, user_id, item_id, day)

    def remove_skip(self, user_id: str, item_id: str, day: date) -> None:
        with session_scope() as session:
            scheduling_repository.remove_skip(session, user_id, item_id, day)

    def load_timings(self, user_id: str) -> Dict[str, ItemTiming]:
        with _read_session("load_timings") as session:
            return scheduling_repository.load_timings(session, user_id)

    def save_timing(self, user_id: str, item_id: str, timing: ItemTiming) -> None:
        with session_scope() as session:
            scheduling_repository.save_timing(session, user_id, item_id, timing)

    def commit_schedule(
        self,
        user_id: str,
        context: str,
        ordered_ids: List[str],
        timings: Mapping[str, ItemTiming],
    ) -> None:
        with session_scope() as session:
            scheduling_repository.commit_schedule(session, user_id, context, ordered_ids, timings)

    def list_templates(self, user_id: str) -> List[ScheduleTemplate]:
        with _read_session("list_templates") as session:
            return scheduling_repository.list_templates(session, user_id)

    def save_template(self, user_id: str, template: ScheduleTemplate) -> ScheduleTemplate:
        with session_scope() as session:
            return scheduling_repository.save_template(session, user_id, template)

    def set_default_template(self, user_id: str, name: Optional[str]) -> None:
        with session_scope() as session:
            scheduling_repository.set_default_template(session, user_id, name)

    def delete_template(self, user_id: str, name: str) -> bool:
        with session_scope() as session:
            return scheduling_repository.delete_template(session, user_id, name)

    def load_weekday_exclusions(self, user_id: str) -> Dict[str, Set[int]]:
        with _read_session("load_weekday_exclusions") as session:
            return scheduling_repository.load_weekday_exclusions(session, user_id)

    def save_weekday_exclusion(self, user_id: str, item_id: str, weekdays: Set[int]) -> None:
        with session_scope() as session:
            scheduling_repository.save_weekday_exclusion(session, user_id, item_id, weekdays)


def _normalize_user_id(value: str) -> str:
    normalized = value.strip().lower()
    if not normalized:
        raise ValueError("User id cannot be empty.")
    return normalized


class JsonSchedulingStore:
    """JSON-file persistence used for offline/legacy mode and tests."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or DATA_DIR / "gameplan_state.json"
        self._lock = threading.RLock()

    # Raw file access ---------------------------------------------------

    def _load_unlocked(self) -> Dict[str, Dict[str, Any]]:
        if not self._path.exists():
            return {}
        with self._path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def _write_unlocked(self, payload: Dict[str, Dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, sort_keys=True)
        tmp_path.replace(self._path)

    def _read(self, user_id: str) -> Dict[str, Any]:
        key = _normalize_user_id(user_id)
        with self._lock:
            try:
                return self._load_unlocked().get(key, {})
            except (OSError, json.JSONDecodeError) as exc:
                raise PersistenceFailure("load_state", f"{self._path}: {exc}") from exc

    def _mutate(self, user_id: str, mutator: Callable[[Dict[str, Any]], Any]) -> Any:
        key = _normalize_user_id(user_id)
        with self._lock:
            payload = self._load_unlocked()
            state = payload.setdefault(key, {})
            result = mutator(state)
            self._write_unlocked(payload)
            return result

    # Orders and sort mode -----------------------------------------------

    def load_order(self, user_id: str, context: str) -> List[str]:
        return list(self._read(user_id).get("orders", {}).get(context, []))

    def save_order(self, user_id: str, context: str, ordered_ids: List[str]) -> None:
        ids = list(ordered_ids)
        self._mutate(user_id, lambda state: state.setdefault("orders", {}).__setitem__(context, ids))

    def load_day_order(self, user_id: str, day: date) -> Optional[DayOrder]:
        raw = self._read(user_id).get("day_orders", {}).get(day.isoformat())
        return DayOrder.model_validate(raw) if raw else None

    def save_day_order(self, user_id: str, order: DayOrder) -> None:
        stamped = order.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        payload = stamped.model_dump(mode="json")
        self._mutate(
            user_id,
            lambda state: state.setdefault("day_orders", {}).__setitem__(order.event_date.isoformat(), payload),
        )

    def load_sort_mode(self, user_id: str) -> Optional[SortMode]:
        return self._read(user_id).get("sort_mode")

    def save_sort_mode(self, user_id: str, mode: SortMode) -> None:
        self._mutate(user_id, lambda state: state.__setitem__("sort_mode", mode))

    # Locks ---------------------------------------------------------------

    def load_lock(self, user_id: str) -> Optional[OrderLock]:
        raw = self._read(user_id).get("lock")
        return OrderLock.model_validate(raw) if raw else None

    def save_lock(self, user_id: str, lock: Optional[OrderLock]) -> None:
        def _apply(state: Dict[str, Any]) -> None:
            if lock is None:
                state.pop("lock", None)
            else:
                state["lock"] = lock.model_dump(mode="json")

        self._mutate(user_id, _apply)

    # Skips -----------------------------------------------------------------

    def load_skips(self, user_id: str, day: date) -> Set[str]:
        return set(self._read(user_id).get("skips", {}).get(day.isoformat(), []))

    def add_skip(self, user_id: str, item_id: str, day: date) -> None:
        def _apply(state: Dict[str, Any]) -> None:
            skipped = state.setdefault("skips", {}).setdefault(day.isoformat(), [])
            if item_id not in skipped:
                skipped.append(item_id)

        self._mutate(user_id, _apply)

    def remove_skip(self, user_id: str, item_id: str, day: date) -> None:
        def _apply(state: Dict[str, Any]) -> None:
            skips = state.setdefault("skips", {})
            remaining = [entry for entry in skips.get(day.isoformat(), []) if entry != item_id]
            if remaining:
                skips[day.isoformat()] = remaining
            else:
                skips.pop(day.isoformat(), None)

        self._mutate(user_id, _apply)

    # Timings -----------------------------------------------------------------

    def load_timings(self, user_id: str) -> Dict[str, ItemTiming]:
        raw = self._read(user_id).get("timings", {})
        return {item_id: ItemTiming.model_validate(payload) for item_id, payload in raw.items()}

    def save_timing(self, user_id: str, item_id: str, timing: ItemTiming) -> None:
        payload = timing.model_dump(mode="json")
        self._mutate(user_id, lambda state: state.setdefault("timings", {}).__setitem__(item_id, payload))

    def commit_schedule(
        self,
        user_id: str,
        context: str,
        ordered_ids: List[str],
        timings: Mapping[str, ItemTiming],
    ) -> None:
        ids = list(ordered_ids)
        payloads = {item_id: timing.model_dump(mode="json") for item_id, timing in timings.items()}

        def _apply(state: Dict[str, Any]) -> None:
            state.setdefault("orders", {})[context] = ids
            state.setdefault("timings", {}).update(payloads)

        self._mutate(user_id, _apply)

    # Templates ------------------------------------------------------------------

    def list_templates(self, user_id: str) -> List[ScheduleTemplate]:
        raw = self._read(user_id).get("templates", [])
        return [ScheduleTemplate.model_validate(entry) for entry in raw]

    def save_template(self, user_id: str, template: ScheduleTemplate) -> ScheduleTemplate:
        stored = template.model_copy(deep=True)

        def _apply(state: Dict[str, Any]) -> ScheduleTemplate:
            templates = [ScheduleTemplate.model_validate(entry) for entry in state.get("templates", [])]
            existing = next((entry for entry in templates if entry.name == stored.name), None)
            now = datetime.now(timezone.utc)
            stored.created_at = (existing.created_at if existing else None) or stored.created_at or now
            stored.updated_at = now
            if existing is not None:
                templates = [entry for entry in templates if entry.name != stored.name]
            if stored.is_default:
                for entry in templates:
                    entry.is_default = False
            templates.append(stored)
            state["templates"] = [entry.model_dump(mode="json") for entry in templates]
            return stored

        return self._mutate(user_id, _apply)

    def set_default_template(self, user_id: str, name: Optional[str]) -> None:
        def _apply(state: Dict[str, Any]) -> None:
            templates = [ScheduleTemplate.model_validate(entry) for entry in state.get("templates", [])]
            if name is not None and all(entry.name != name for entry in templates):
                raise LookupError(f"Schedule template '{name}' was not found.")
            for entry in templates:
                entry.is_default = entry.name == name
            state["templates"] = [entry.model_dump(mode="json") for entry in templates]

        self._mutate(user_id, _apply)

    def delete_template(self, user_id: str, name: str) -> bool:
        def _apply(state: Dict[str, Any]) -> bool:
            templates = state.get("templates", [])
            remaining = [entry for entry in templates if entry.get("name") != name]
            state["templates"] = remaining
            return len(remaining) != len(templates)

        return self._mutate(user_id, _apply)

    # Weekday exclusions -------------------------------------------------------

    def load_weekday_exclusions(self, user_id: str) -> Dict[str, Set[int]]:
        raw = self._read(user_id).get("exclusions", {})
        return {item_id: set(days) for item_id, days in raw.items() if days}

    def save_weekday_exclusion(self, user_id: str, item_id: str, weekdays: Set[int]) -> None:
        days = sorted(set(weekdays))

        def _apply(state: Dict[str, Any]) -> None:
            exclusions = state.setdefault("exclusions", {})
            if days:
                exclusions[item_id] = days
            else:
                exclusions.pop(item_id, None)

        self._mutate(user_id, _apply)


@lru_cache
def get_scheduling_store() -> SchedulingStore:
    """Return the process-wide store selected by ``GAMEPLAN_PERSISTENCE_MODE``."""
    settings = get_settings()
    if settings.persistence_mode == "legacy":
        path = Path(settings.legacy_store_path) if settings.legacy_store_path else None
        logger.info("Using JSON game plan store at %s", path or DATA_DIR / "gameplan_state.json")
        return JsonSchedulingStore(path)
    return DatabaseSchedulingStore()


__all__ = [
    "DatabaseSchedulingStore",
    "JsonSchedulingStore",
    "SchedulingStore",
    "get_scheduling_store",
]
