"""Manual skips for the current local date."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, FrozenSet, Optional

from .errors import ValidationFailure
from .optimistic import optimistic_update
from .store import SchedulingStore
from .telemetry import emit_event

logger = logging.getLogger(__name__)


class SkipLedger:
    """Tracks which items the user skipped today.

    Skips always apply to "today" according to the injected clock; the ledger
    reloads itself from the store when the date rolls over.
    """

    def __init__(
        self,
        user_id: str,
        store: SchedulingStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._user_id = user_id
        self._store = store
        self._clock = clock
        self._date: Optional[date] = None
        self._skipped: FrozenSet[str] = frozenset()

    @property
    def today(self) -> date:
        return self._current_date()

    def skipped_ids(self) -> FrozenSet[str]:
        self._current_date()
        return self._skipped

    def is_skipped(self, item_id: str) -> bool:
        return item_id in self.skipped_ids()

    def skip(self, item_id: str) -> FrozenSet[str]:
        item_id = _require_item_id(item_id)
        today = self._current_date()
        optimistic_update(
            "skip_recorded",
            read=lambda: self._skipped,
            assign=self._assign,
            new_value=self._skipped | {item_id},
            write=lambda _: self._store.add_skip(self._user_id, item_id, today),
            user_id=self._user_id,
            item_id=item_id,
        )
        emit_event("skip_recorded", user_id=self._user_id, item_id=item_id, skip_date=today)
        return self._skipped

    def restore(self, item_id: str) -> FrozenSet[str]:
        item_id = _require_item_id(item_id)
        today = self._current_date()
        optimistic_update(
            "skip_restored",
            read=lambda: self._skipped,
            assign=self._assign,
            new_value=self._skipped - {item_id},
            write=lambda _: self._store.remove_skip(self._user_id, item_id, today),
            user_id=self._user_id,
            item_id=item_id,
        )
        emit_event("skip_restored", user_id=self._user_id, item_id=item_id, skip_date=today)
        return self._skipped

    def _current_date(self) -> date:
        today = self._clock().date()
        if today != self._date:
            if self._date is not None:
                logger.debug("Skip ledger for %s rolled over from %s to %s", self._user_id, self._date, today)
            self._skipped = frozenset(self._store.load_skips(self._user_id, today))
            self._date = today
        return today

    def _assign(self, value: FrozenSet[str]) -> None:
        self._skipped = frozenset(value)


def _require_item_id(item_id: str) -> str:
    cleaned = (item_id or "").strip()
    if not cleaned:
        raise ValidationFailure("Item id cannot be empty.")
    return cleaned


__all__ = ["SkipLedger"]
