"""Named schedule templates and the per-item timings they capture."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .errors import PersistenceFailure, ValidationFailure
from .locks import LockController
from .models import TIMELINE_CONTEXT, ItemTiming, ScheduledItem, ScheduleTemplate, TemplateEntry
from .optimistic import optimistic_update
from .ordering import OrderStore
from .store import SchedulingStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)

DEFAULT_MAX_TEMPLATES = 20


class ItemTimingBook:
    """In-memory view of each item's start time and reminder offset."""

    def __init__(self, user_id: str, store: SchedulingStore) -> None:
        self._user_id = user_id
        self._store = store
        self._timings: Optional[Dict[str, ItemTiming]] = None

    def all(self) -> Dict[str, ItemTiming]:
        if self._timings is None:
            self._timings = dict(self._store.load_timings(self._user_id))
        return dict(self._timings)

    def get(self, item_id: str) -> ItemTiming:
        return self.all().get(item_id) or ItemTiming()

    def assign(self, timings: Dict[str, ItemTiming]) -> None:
        self._timings = dict(timings)

    def set(self, item_id: str, start_time: Optional[str], reminder_minutes: Optional[int]) -> ItemTiming:
        try:
            timing = ItemTiming(start_time=start_time, reminder_minutes=reminder_minutes)
        except ValidationError as exc:
            raise ValidationFailure(str(exc)) from exc
        updated = self.all()
        updated[item_id] = timing
        optimistic_update(
            "item_timing_save",
            read=self.all,
            assign=self.assign,
            new_value=updated,
            write=lambda _: self._store.save_timing(self._user_id, item_id, timing),
            user_id=self._user_id,
            item_id=item_id,
        )
        return timing


class TemplateManager:
    """Captures and restores the timeline order together with item timings."""

    def __init__(
        self,
        user_id: str,
        store: SchedulingStore,
        orders: OrderStore,
        locks: LockController,
        timings: ItemTimingBook,
        max_templates: int = DEFAULT_MAX_TEMPLATES,
    ) -> None:
        self._user_id = user_id
        self._store = store
        self._orders = orders
        self._locks = locks
        self._timings = timings
        self._max_templates = max_templates

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self) -> List[ScheduleTemplate]:
        return self._store.list_templates(self._user_id)

    def get(self, name: str) -> Optional[ScheduleTemplate]:
        return next((template for template in self.list() if template.name == name), None)

    def default_template(self) -> Optional[ScheduleTemplate]:
        return next((template for template in self.list() if template.is_default), None)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def capture(self, name: str, live_items: Sequence[ScheduledItem], is_default: bool = False) -> ScheduleTemplate:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationFailure("Template name cannot be empty.")
        self._locks.ensure_unlocked("template_capture", template=cleaned)

        existing = self.list()
        if all(template.name != cleaned for template in existing) and len(existing) >= self._max_templates:
            raise ValidationFailure(f"Template limit of {self._max_templates} reached; delete one first.")

        order = self._orders.ordered_ids(TIMELINE_CONTEXT, [item.item_id for item in live_items])
        timings = self._timings.all()
        entries = [
            TemplateEntry(
                item_id=item_id,
                start_time=(timings.get(item_id) or ItemTiming()).start_time,
                reminder_minutes=(timings.get(item_id) or ItemTiming()).reminder_minutes,
            )
            for item_id in order
        ]
        template = ScheduleTemplate(name=cleaned, is_default=is_default, entries=entries)
        saved = self._persist("template_capture", lambda: self._store.save_template(self._user_id, template))
        emit_event(
            "template_captured",
            user_id=self._user_id,
            template=cleaned,
            entry_count=len(entries),
            is_default=is_default,
        )
        return saved

    def apply(self, name: str, live_items: Sequence[ScheduledItem]) -> List[str]:
        """Put the template's live items first in template order and give them its timings.

        Order and timings are committed in one store call and assigned together, so a
        failed write leaves both untouched.
        """
        self._locks.ensure_unlocked("template_apply", template=name)
        template = self.get(name)
        if template is None:
            raise LookupError(f"Schedule template '{name}' was not found.")

        live_ids = [item.item_id for item in live_items]
        live_set = set(live_ids)
        applied: Dict[str, ItemTiming] = {}
        ignored: List[str] = []
        for entry in template.entries:
            if entry.item_id not in live_set:
                ignored.append(entry.item_id)
            elif entry.item_id not in applied:
                applied[entry.item_id] = entry.timing()

        current = self._orders.ordered_ids(TIMELINE_CONTEXT, live_ids)
        new_order = list(applied) + [item_id for item_id in current if item_id not in applied]
        new_timings = self._timings.all()
        new_timings.update(applied)

        def _read() -> Tuple[Optional[List[str]], Dict[str, ItemTiming]]:
            return self._orders.snapshot(TIMELINE_CONTEXT), self._timings.all()

        def _assign(value: Tuple[Optional[List[str]], Dict[str, ItemTiming]]) -> None:
            order, timings = value
            self._orders.assign(TIMELINE_CONTEXT, order)
            self._timings.assign(timings)

        optimistic_update(
            "template_apply",
            read=_read,
            assign=_assign,
            new_value=(new_order, new_timings),
            write=lambda _: self._store.commit_schedule(self._user_id, TIMELINE_CONTEXT, new_order, applied),
            user_id=self._user_id,
            template=name,
        )
        emit_event(
            "template_applied",
            user_id=self._user_id,
            template=name,
            applied=len(applied),
            dropped_ids=len(ignored),
        )
        return list(new_order)

    def set_default(self, name: Optional[str]) -> Optional[ScheduleTemplate]:
        self._locks.ensure_unlocked("template_default", template=name)
        self._persist("template_default", lambda: self._store.set_default_template(self._user_id, name))
        emit_event("template_default_changed", user_id=self._user_id, template=name)
        return self.default_template()

    def delete(self, name: str) -> bool:
        self._locks.ensure_unlocked("template_delete", template=name)
        removed = self._persist("template_delete", lambda: self._store.delete_template(self._user_id, name))
        if removed:
            logger.info("Deleted schedule template %s for %s", name, self._user_id)
        return removed

    def _persist(self, operation: str, write):
        try:
            return write()
        except LookupError:
            raise
        except PersistenceFailure:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Template %s failed for %s: %s", operation, self._user_id, exc)
            raise PersistenceFailure(operation, str(exc)) from exc


__all__ = ["DEFAULT_MAX_TEMPLATES", "ItemTimingBook", "TemplateManager"]
