from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from gameplan.models import ScheduledItem
from gameplan.visibility import ItemDaySchedule, classify, resolve_visibility

TUESDAY = date(2024, 1, 2)


class _AlwaysOff:
    def is_scheduled(self, item: ScheduledItem, today: date) -> bool:
        return False


def test_specific_weekdays_hidden_on_tuesday() -> None:
    item = ScheduledItem(item_id="a", weekdays={1, 3, 5})
    outcome = resolve_visibility(item, TUESDAY, frozenset(), ItemDaySchedule(), None)
    assert item.schedule_kind == "specific_weekdays"
    assert outcome == "hidden_schedule_excluded"


def test_manual_skip_wins_over_schedule_exclusion() -> None:
    item = ScheduledItem(item_id="b", weekdays={1, 3, 5})
    outcome = resolve_visibility(item, TUESDAY, {"b"}, ItemDaySchedule(), None)
    assert outcome == "hidden_manual_skip"


def test_manual_skip_wins_over_cycle_week() -> None:
    item = ScheduledItem(item_id="c", cycle_week=3)
    assert resolve_visibility(item, TUESDAY, {"c"}, ItemDaySchedule(), 1) == "hidden_manual_skip"


def test_cycle_week_tag_only_visible_in_matching_week() -> None:
    item = ScheduledItem(item_id="w2", cycle_week=2)
    assert resolve_visibility(item, TUESDAY, set(), ItemDaySchedule(), 2) == "visible"
    assert resolve_visibility(item, TUESDAY, set(), ItemDaySchedule(), 1) == "hidden_schedule_excluded"
    # Rotation inactive: tagged items behave as every week.
    assert resolve_visibility(item, TUESDAY, set(), ItemDaySchedule(), None) == "visible"


def test_specific_dates_and_exclusions() -> None:
    dated = ScheduledItem(item_id="d", specific_dates={date(2024, 1, 2)})
    other_day = ScheduledItem(item_id="e", specific_dates={date(2024, 1, 3)})
    excluded = ScheduledItem(item_id="f")
    schedule = ItemDaySchedule({"f": {2}})

    assert resolve_visibility(dated, TUESDAY, set(), schedule, None) == "visible"
    assert resolve_visibility(other_day, TUESDAY, set(), schedule, None) == "hidden_schedule_excluded"
    assert resolve_visibility(excluded, TUESDAY, set(), schedule, None) == "hidden_schedule_excluded"
    assert resolve_visibility(excluded, date(2024, 1, 3), set(), schedule, None) == "visible"


def test_classify_partitions_in_input_order() -> None:
    items = [
        ScheduledItem(item_id="one"),
        ScheduledItem(item_id="two", weekdays={1}),
        ScheduledItem(item_id="three"),
        ScheduledItem(item_id="four"),
    ]
    partition = classify(items, TUESDAY, {"four"})

    assert [item.item_id for item in partition.visible] == ["one", "three"]
    assert [item.item_id for item in partition.hidden_schedule_excluded] == ["two"]
    assert [item.item_id for item in partition.hidden_manual_skip] == ["four"]


def test_custom_day_schedule_is_consulted() -> None:
    partition = classify([ScheduledItem(item_id="x")], TUESDAY, set(), _AlwaysOff())
    assert [item.item_id for item in partition.hidden_schedule_excluded] == ["x"]


def test_item_rejects_multiple_schedule_attributes() -> None:
    with pytest.raises(ValidationError):
        ScheduledItem(item_id="bad", weekdays={1}, cycle_week=2)


def test_item_rejects_out_of_range_weekday() -> None:
    with pytest.raises(ValidationError):
        ScheduledItem(item_id="bad", weekdays={7})
