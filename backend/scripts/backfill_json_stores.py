from __future__ import annotations

import argparse
import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict

from pydantic import ValidationError
from sqlalchemy.orm import Session

from gameplan.db.base import Base
from gameplan.db.session import get_engine, session_scope
from gameplan.models import DayOrder, ItemTiming, OrderLock, ScheduleTemplate
from gameplan.repositories.scheduling import scheduling_repository
from gameplan.store import DATA_DIR


logger = logging.getLogger("backfill")


def _ensure_database() -> None:
    engine = get_engine()
    Base.metadata.create_all(engine)


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open(encoding="utf-8") as handle:
        return json.load(handle)


def _backfill_user(session: Session, user_id: str, state: Dict[str, Any]) -> int:
    written = 0
    for context, ordered_ids in (state.get("orders") or {}).items():
        scheduling_repository.save_order(session, user_id, context, list(ordered_ids))
        written += 1
    for entry in (state.get("day_orders") or {}).values():
        try:
            scheduling_repository.save_day_order(session, user_id, DayOrder.model_validate(entry))
            written += 1
        except ValidationError as exc:
            logger.warning("Skipping invalid day order for %s: %s", user_id, exc)
    if state.get("sort_mode"):
        scheduling_repository.save_sort_mode(session, user_id, state["sort_mode"])
        written += 1
    if state.get("lock"):
        try:
            scheduling_repository.save_lock(session, user_id, OrderLock.model_validate(state["lock"]))
            written += 1
        except ValidationError as exc:
            logger.warning("Skipping invalid lock for %s: %s", user_id, exc)
    for day, item_ids in (state.get("skips") or {}).items():
        skip_date = date.fromisoformat(day)
        for item_id in item_ids:
            scheduling_repository.add_skip(session, user_id, item_id, skip_date)
            written += 1
    for item_id, payload in (state.get("timings") or {}).items():
        try:
            scheduling_repository.save_timing(session, user_id, item_id, ItemTiming.model_validate(payload))
            written += 1
        except ValidationError as exc:
            logger.warning("Skipping invalid timing for %s/%s: %s", user_id, item_id, exc)
    for entry in state.get("templates") or []:
        try:
            template = ScheduleTemplate.model_validate(entry)
        except ValidationError as exc:
            logger.warning("Skipping invalid template for %s: %s", user_id, exc)
            continue
        scheduling_repository.save_template(session, user_id, template)
        written += 1
    for item_id, weekdays in (state.get("exclusions") or {}).items():
        scheduling_repository.save_weekday_exclusion(session, user_id, item_id, weekdays)
        written += 1
    return written


def backfill_gameplan_state(path: Path) -> int:
    if not path.exists():
        logger.info("No legacy game plan state found at %s", path)
        return 0
    payload = _load_json(path)
    if not isinstance(payload, dict):
        logger.warning("Legacy game plan payload was not a mapping; skipping")
        return 0

    imported = 0
    for user_id, state in payload.items():
        if not isinstance(state, dict):
            continue
        with session_scope() as session:
            imported += _backfill_user(session, user_id, state)
    logger.info("Imported %d game plan records for %d users", imported, len(payload))
    return imported


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill the legacy JSON game plan store into the database.")
    parser.add_argument("--state", type=Path, default=DATA_DIR / "gameplan_state.json")
    return parser.parse_args()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args()
    _ensure_database()
    total = backfill_gameplan_state(args.state)
    logger.info("Backfill completed: %d records", total)


if __name__ == "__main__":
    main()
