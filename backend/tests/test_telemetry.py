from __future__ import annotations

import logging
from datetime import date, datetime

from gameplan.telemetry import TelemetryEvent, clear_listeners, emit_event, register_listener


def test_emit_event_sanitizes_payload_and_logs(caplog) -> None:
    events: list[TelemetryEvent] = []
    clear_listeners()
    register_listener(events.append)
    try:
        with caplog.at_level(logging.INFO, logger="gameplan.telemetry"):
            emit_event(
                "order_lock_set",
                user_id="u1",
                expires_at=datetime(2024, 1, 14),
                skip_date=date(2024, 1, 2),
                weekdays={3, 1},
            )
    finally:
        clear_listeners()

    assert events == [
        TelemetryEvent(
            name="order_lock_set",
            payload={
                "user_id": "u1",
                "expires_at": "2024-01-14T00:00:00",
                "skip_date": "2024-01-02",
                "weekdays": [1, 3],
            },
        )
    ]
    assert any("TELEMETRY" in record.getMessage() and "order_lock_set" in record.getMessage() for record in caplog.records)


def test_failing_listener_does_not_block_others() -> None:
    seen: list[str] = []

    def broken(_event: TelemetryEvent) -> None:
        raise RuntimeError("listener down")

    clear_listeners()
    register_listener(broken)
    register_listener(lambda event: seen.append(event.name))
    try:
        emit_event("skip_recorded", user_id="u1")
    finally:
        clear_listeners()

    assert seen == ["skip_recorded"]
