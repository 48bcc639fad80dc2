"""Cycle-week buckets for rotating program folders."""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .cycle_clock import current_week
from .errors import ValidationFailure
from .models import FOLDER_CONTEXT_PREFIX, CycleProgram, ScheduledItem
from .ordering import OrderStore, arrange

EVERY_WEEK = "every_week"

Bucket = Union[str, int]


def bucket_of(item: ScheduledItem) -> Bucket:
    return EVERY_WEEK if item.cycle_week is None else item.cycle_week


class FolderCycleGrouper:
    """Groups a folder's items by cycle-week tag.

    Buckets are ``every_week`` plus weeks ``1..length_weeks``; items tagged to a
    week beyond the program length keep their own bucket so they stay reachable
    for authoring even though they never come up in rotation.
    """

    def __init__(
        self,
        folder_id: str,
        program: CycleProgram,
        items: Iterable[ScheduledItem],
        orders: Optional[OrderStore] = None,
    ) -> None:
        self.folder_id = folder_id
        self.program = program
        self._items: List[ScheduledItem] = list(items)
        self._orders = orders

    @property
    def items(self) -> List[ScheduledItem]:
        return list(self._items)

    def bucket_key(self, bucket: Bucket) -> str:
        return f"{FOLDER_CONTEXT_PREFIX}{self.folder_id}:{bucket}"

    def buckets(self) -> Dict[Bucket, List[ScheduledItem]]:
        grouped: Dict[Bucket, List[ScheduledItem]] = {EVERY_WEEK: []}
        for week in range(1, self.program.length_weeks + 1):
            grouped[week] = []
        dormant = sorted(
            {item.cycle_week for item in self._items if item.cycle_week and item.cycle_week > self.program.length_weeks}
        )
        for week in dormant:
            grouped[week] = []
        for item in self._items:
            grouped[bucket_of(item)].append(item)
        return {bucket: self.ordered(bucket, members) for bucket, members in grouped.items()}

    def current_bucket(self, today: date) -> Optional[int]:
        return current_week(self.program, today)

    def current_items(self, today: date) -> List[ScheduledItem]:
        """Today's bucket together with ``every_week``; everything when rotation is off."""
        week = self.current_bucket(today)
        if week is None:
            return list(self._items)
        buckets = self.buckets()
        return buckets[EVERY_WEEK] + buckets.get(week, [])

    def move(self, item_id: str, week: Optional[int]) -> "FolderCycleGrouper":
        """Return a grouper with ``item_id`` retagged to ``week`` (``None`` means every week)."""
        if week is not None and week < 1:
            raise ValidationFailure(f"Cycle week must be at least 1; got {week}.")
        if all(item.item_id != item_id for item in self._items):
            raise LookupError(f"Item '{item_id}' is not in folder '{self.folder_id}'.")
        moved = [
            item.model_copy(update={"cycle_week": week}) if item.item_id == item_id else item
            for item in self._items
        ]
        return FolderCycleGrouper(self.folder_id, self.program, moved, self._orders)

    def ordered(self, bucket: Bucket, members: Optional[Sequence[ScheduledItem]] = None) -> List[ScheduledItem]:
        if members is None:
            members = [item for item in self._items if bucket_of(item) == bucket]
        if self._orders is None:
            return list(members)
        order = self._orders.ordered_ids(self.bucket_key(bucket), [item.item_id for item in members])
        return arrange(members, order)

    def reorder(self, bucket: Bucket, ordered_ids: Sequence[str]) -> List[ScheduledItem]:
        if self._orders is None:
            raise RuntimeError("This folder grouper has no order store attached.")
        members = [item for item in self._items if bucket_of(item) == bucket]
        member_ids = [item.item_id for item in members]
        order = self._orders.reorder(self.bucket_key(bucket), ordered_ids, member_ids, member_ids)
        return arrange(members, order)


__all__ = ["Bucket", "EVERY_WEEK", "FolderCycleGrouper", "bucket_of"]
