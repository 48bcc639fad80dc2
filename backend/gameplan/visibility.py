"""Per-day visibility rules for game plan items."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import AbstractSet, Iterable, List, Mapping, Optional, Protocol

from .cycle_clock import local_weekday
from .models import ScheduledItem, Visibility


class DaySchedule(Protocol):
    """Answers whether an item is scheduled to display on a given day."""

    def is_scheduled(self, item: ScheduledItem, today: date) -> bool:  # pragma: no cover - protocol definition
        ...


class ItemDaySchedule:
    """Day schedule built from item attributes plus per-user weekday exclusions."""

    def __init__(self, exclusions: Optional[Mapping[str, AbstractSet[int]]] = None) -> None:
        self._exclusions = {item_id: frozenset(days) for item_id, days in (exclusions or {}).items()}

    def is_scheduled(self, item: ScheduledItem, today: date) -> bool:
        weekday = local_weekday(today)
        if item.weekdays is not None and weekday not in item.weekdays:
            return False
        if item.specific_dates is not None and today not in item.specific_dates:
            return False
        return weekday not in self._exclusions.get(item.item_id, frozenset())


@dataclass
class VisibilityPartition:
    visible: List[ScheduledItem] = field(default_factory=list)
    hidden_manual_skip: List[ScheduledItem] = field(default_factory=list)
    hidden_schedule_excluded: List[ScheduledItem] = field(default_factory=list)


def resolve_visibility(
    item: ScheduledItem,
    today: date,
    skipped_ids: AbstractSet[str],
    day_schedule: DaySchedule,
    current_cycle_week: Optional[int],
) -> Visibility:
    # A manual skip outranks schedule exclusion so it can be restored on its own.
    if item.item_id in skipped_ids:
        return "hidden_manual_skip"
    if not day_schedule.is_scheduled(item, today):
        return "hidden_schedule_excluded"
    if item.cycle_week is not None and current_cycle_week is not None and item.cycle_week != current_cycle_week:
        return "hidden_schedule_excluded"
    return "visible"


def classify(
    items: Iterable[ScheduledItem],
    today: date,
    skipped_ids: AbstractSet[str],
    day_schedule: Optional[DaySchedule] = None,
    current_cycle_week: Optional[int] = None,
) -> VisibilityPartition:
    """Split items into visible and hidden buckets, keeping input order in each."""
    schedule = day_schedule or ItemDaySchedule()
    partition = VisibilityPartition()
    for item in items:
        outcome = resolve_visibility(item, today, skipped_ids, schedule, current_cycle_week)
        if outcome == "visible":
            partition.visible.append(item)
        elif outcome == "hidden_manual_skip":
            partition.hidden_manual_skip.append(item)
        else:
            partition.hidden_schedule_excluded.append(item)
    return partition


__all__ = [
    "DaySchedule",
    "ItemDaySchedule",
    "VisibilityPartition",
    "classify",
    "resolve_visibility",
]
