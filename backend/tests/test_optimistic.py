from __future__ import annotations

from typing import List

import pytest

from gameplan.errors import PersistenceFailure
from gameplan.optimistic import optimistic_update
from gameplan.telemetry import TelemetryEvent, clear_listeners, register_listener


class _Box:
    def __init__(self, value: List[str]) -> None:
        self.value = value

    def assign(self, value: List[str]) -> None:
        self.value = value


@pytest.fixture()
def events():
    captured: List[TelemetryEvent] = []
    clear_listeners()
    register_listener(captured.append)
    yield captured
    clear_listeners()


def test_successful_write_keeps_new_value(events) -> None:
    box = _Box(["a"])
    written: List[List[str]] = []

    result = optimistic_update("order_reorder", lambda: box.value, box.assign, ["b", "a"], written.append)

    assert result == ["b", "a"]
    assert box.value == ["b", "a"]
    assert written == [["b", "a"]]
    assert events == []


def test_failed_write_restores_previous_value(events) -> None:
    box = _Box(["a", "b"])

    def fail(_value) -> None:
        raise OSError("disk full")

    with pytest.raises(PersistenceFailure) as excinfo:
        optimistic_update("order_reorder", lambda: box.value, box.assign, ["b", "a"], fail, user_id="u1")

    assert box.value == ["a", "b"]
    assert excinfo.value.operation == "order_reorder"
    assert isinstance(excinfo.value.__cause__, OSError)
    assert [event.name for event in events] == ["optimistic_rollback"]
    assert events[0].payload["user_id"] == "u1"
    assert events[0].payload["exception_type"] == "OSError"


def test_persistence_failure_passes_through(events) -> None:
    box = _Box(["a"])
    original = PersistenceFailure("template_applied", "locked row")

    def fail(_value) -> None:
        raise original

    with pytest.raises(PersistenceFailure) as excinfo:
        optimistic_update("template_applied", lambda: box.value, box.assign, [], fail)
    assert excinfo.value is original
    assert box.value == ["a"]
