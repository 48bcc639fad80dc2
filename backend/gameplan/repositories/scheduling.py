"""Database-backed repository for game plan scheduling state."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from ..db.models import (
    AuditEventModel,
    DayOrderModel,
    ItemTimingModel,
    OrderLockModel,
    OrderRecordModel,
    PreferenceModel,
    ScheduleTemplateModel,
    SkipRecordModel,
    WeekdayExclusionModel,
)
from ..models import DayOrder, ItemTiming, OrderLock, ScheduleTemplate, SortMode, TemplateEntry


def _normalize_user_id(user_id: str) -> str:
    normalized = user_id.strip().lower()
    if not normalized:
        raise ValueError("User id cannot be empty.")
    return normalized


class SchedulingRepository:
    """Row-level persistence for orders, locks, skips, timings, templates, and exclusions."""

    # ------------------------------------------------------------------
    # Orders and sort mode
    # ------------------------------------------------------------------

    def load_order(self, session: Session, user_id: str, context: str) -> List[str]:
        record = self._order_model(session, _normalize_user_id(user_id), context)
        return list(record.ordered_ids or []) if record else []

    def save_order(self, session: Session, user_id: str, context: str, ordered_ids: Iterable[str]) -> None:
        normalized = _normalize_user_id(user_id)
        ids = list(ordered_ids)
        self._upsert_order(session, normalized, context, ids)
        session.flush()
        self._record_audit(session, normalized, "order_save", {"context": context, "count": len(ids)})

    def load_day_order(self, session: Session, user_id: str, day: date) -> Optional[DayOrder]:
        stmt = select(DayOrderModel).where(
            DayOrderModel.user_id == _normalize_user_id(user_id),
            DayOrderModel.event_date == day,
        )
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            return None
        return DayOrder(
            event_date=model.event_date,
            ordered_ids=list(model.ordered_ids or []),
            locked=bool(model.locked),
            updated_at=model.updated_at,
        )

    def save_day_order(self, session: Session, user_id: str, order: DayOrder) -> None:
        normalized = _normalize_user_id(user_id)
        stmt = select(DayOrderModel).where(
            DayOrderModel.user_id == normalized,
            DayOrderModel.event_date == order.event_date,
        )
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            model = DayOrderModel(user_id=normalized, event_date=order.event_date)
            session.add(model)
        model.ordered_ids = list(order.ordered_ids)
        model.locked = order.locked
        session.flush()
        self._record_audit(
            session,
            normalized,
            "day_order_save",
            {"event_date": order.event_date.isoformat(), "count": len(order.ordered_ids), "locked": order.locked},
        )

    def load_sort_mode(self, session: Session, user_id: str) -> Optional[SortMode]:
        model = session.get(PreferenceModel, _normalize_user_id(user_id))
        return model.sort_mode if model else None  # type: ignore[return-value]

    def save_sort_mode(self, session: Session, user_id: str, mode: SortMode) -> None:
        normalized = _normalize_user_id(user_id)
        model = session.get(PreferenceModel, normalized)
        if model is None:
            model = PreferenceModel(user_id=normalized, sort_mode=mode)
            session.add(model)
        else:
            model.sort_mode = mode
        session.flush()
        self._record_audit(session, normalized, "sort_mode_save", {"sort_mode": mode})

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def load_lock(self, session: Session, user_id: str) -> Optional[OrderLock]:
        model = session.get(OrderLockModel, _normalize_user_id(user_id))
        if model is None:
            return None
        return OrderLock(
            kind=model.kind,  # type: ignore[arg-type]
            expires_at=model.expires_at,
            applicable_weekdays=set(model.applicable_weekdays or []),
            locked_at=model.locked_at,
        )

    def save_lock(self, session: Session, user_id: str, lock: Optional[OrderLock]) -> None:
        normalized = _normalize_user_id(user_id)
        model = session.get(OrderLockModel, normalized)
        if lock is None:
            if model is not None:
                session.delete(model)
                session.flush()
                self._record_audit(session, normalized, "lock_clear", {})
            return
        if model is None:
            model = OrderLockModel(user_id=normalized, kind=lock.kind, expires_at=lock.expires_at)
            session.add(model)
        model.kind = lock.kind
        model.expires_at = lock.expires_at
        model.applicable_weekdays = sorted(lock.applicable_weekdays)
        model.locked_at = lock.locked_at
        session.flush()
        self._record_audit(
            session,
            normalized,
            "lock_set",
            {"kind": lock.kind, "expires_at": lock.expires_at.isoformat()},
        )

    # ------------------------------------------------------------------
    # Skips
    # ------------------------------------------------------------------

    def load_skips(self, session: Session, user_id: str, day: date) -> Set[str]:
        stmt = select(SkipRecordModel.item_id).where(
            SkipRecordModel.user_id == _normalize_user_id(user_id),
            SkipRecordModel.skip_date == day,
        )
        return set(session.execute(stmt).scalars().all())

    def add_skip(self, session: Session, user_id: str, item_id: str, day: date) -> None:
        normalized = _normalize_user_id(user_id)
        stmt = select(SkipRecordModel).where(
            SkipRecordModel.user_id == normalized,
            SkipRecordModel.item_id == item_id,
            SkipRecordModel.skip_date == day,
        )
        if session.execute(stmt).scalar_one_or_none() is None:
            session.add(SkipRecordModel(user_id=normalized, item_id=item_id, skip_date=day))
            session.flush()
            self._record_audit(session, normalized, "skip_add", {"item_id": item_id, "date": day.isoformat()})

    def remove_skip(self, session: Session, user_id: str, item_id: str, day: date) -> None:
        normalized = _normalize_user_id(user_id)
        result = session.execute(
            delete(SkipRecordModel).where(
                SkipRecordModel.user_id == normalized,
                SkipRecordModel.item_id == item_id,
                SkipRecordModel.skip_date == day,
            )
        )
        if result.rowcount:
            self._record_audit(session, normalized, "skip_remove", {"item_id": item_id, "date": day.isoformat()})

    # ------------------------------------------------------------------
    # Timings
    # ------------------------------------------------------------------

    def load_timings(self, session: Session, user_id: str) -> Dict[str, ItemTiming]:
        stmt = select(ItemTimingModel).where(ItemTimingModel.user_id == _normalize_user_id(user_id))
        return {
            model.item_id: ItemTiming(start_time=model.start_time, reminder_minutes=model.reminder_minutes)
            for model in session.execute(stmt).scalars().all()
        }

    def save_timing(self, session: Session, user_id: str, item_id: str, timing: ItemTiming) -> None:
        normalized = _normalize_user_id(user_id)
        self._upsert_timing(session, normalized, item_id, timing)
        session.flush()
        self._record_audit(session, normalized, "timing_save", {"item_id": item_id})

    def commit_schedule(
        self,
        session: Session,
        user_id: str,
        context: str,
        ordered_ids: Iterable[str],
        timings: Mapping[str, ItemTiming],
    ) -> None:
        """Write an order and a batch of timings inside the caller's transaction."""
        normalized = _normalize_user_id(user_id)
        ids = list(ordered_ids)
        self._upsert_order(session, normalized, context, ids)
        for item_id, timing in timings.items():
            self._upsert_timing(session, normalized, item_id, timing)
        session.flush()
        self._record_audit(
            session,
            normalized,
            "schedule_commit",
            {"context": context, "count": len(ids), "timing_count": len(timings)},
        )

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def list_templates(self, session: Session, user_id: str) -> List[ScheduleTemplate]:
        stmt = (
            select(ScheduleTemplateModel)
            .where(ScheduleTemplateModel.user_id == _normalize_user_id(user_id))
            .order_by(ScheduleTemplateModel.created_at.asc(), ScheduleTemplateModel.name.asc())
        )
        return [self._template_to_domain(model) for model in session.execute(stmt).scalars().all()]

    def save_template(self, session: Session, user_id: str, template: ScheduleTemplate) -> ScheduleTemplate:
        normalized = _normalize_user_id(user_id)
        model = self._template_model(session, normalized, template.name)
        if model is None:
            model = ScheduleTemplateModel(user_id=normalized, name=template.name)
            session.add(model)
        model.entries = [entry.model_dump(mode="json") for entry in template.entries]
        model.is_default = False
        session.flush()
        if template.is_default:
            self._swap_default(session, normalized, template.name)
        self._record_audit(
            session,
            normalized,
            "template_save",
            {"name": template.name, "entry_count": len(template.entries), "is_default": template.is_default},
        )
        session.refresh(model)
        return self._template_to_domain(model)

    def set_default_template(self, session: Session, user_id: str, name: Optional[str]) -> None:
        normalized = _normalize_user_id(user_id)
        if name is not None and self._template_model(session, normalized, name) is None:
            raise LookupError(f"Schedule template '{name}' was not found.")
        self._swap_default(session, normalized, name)
        self._record_audit(session, normalized, "template_default", {"name": name})

    def delete_template(self, session: Session, user_id: str, name: str) -> bool:
        normalized = _normalize_user_id(user_id)
        model = self._template_model(session, normalized, name)
        if model is None:
            return False
        session.delete(model)
        session.flush()
        self._record_audit(session, normalized, "template_delete", {"name": name})
        return True

    # ------------------------------------------------------------------
    # Weekday exclusions
    # ------------------------------------------------------------------

    def load_weekday_exclusions(self, session: Session, user_id: str) -> Dict[str, Set[int]]:
        stmt = select(WeekdayExclusionModel).where(WeekdayExclusionModel.user_id == _normalize_user_id(user_id))
        return {
            model.item_id: set(model.skip_days or [])
            for model in session.execute(stmt).scalars().all()
            if model.skip_days
        }

    def save_weekday_exclusion(self, session: Session, user_id: str, item_id: str, weekdays: Iterable[int]) -> None:
        normalized = _normalize_user_id(user_id)
        days = sorted(set(weekdays))
        stmt = select(WeekdayExclusionModel).where(
            WeekdayExclusionModel.user_id == normalized,
            WeekdayExclusionModel.item_id == item_id,
        )
        model = session.execute(stmt).scalar_one_or_none()
        if not days:
            if model is not None:
                session.delete(model)
        elif model is None:
            session.add(WeekdayExclusionModel(user_id=normalized, item_id=item_id, skip_days=days))
        else:
            model.skip_days = days
        session.flush()
        self._record_audit(session, normalized, "weekday_exclusion_save", {"item_id": item_id, "skip_days": days})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _order_model(self, session: Session, user_id: str, context: str) -> Optional[OrderRecordModel]:
        stmt = select(OrderRecordModel).where(
            OrderRecordModel.user_id == user_id,
            OrderRecordModel.context == context,
        )
        return session.execute(stmt).scalar_one_or_none()

    def _upsert_order(self, session: Session, user_id: str, context: str, ordered_ids: List[str]) -> None:
        model = self._order_model(session, user_id, context)
        if model is None:
            session.add(OrderRecordModel(user_id=user_id, context=context, ordered_ids=ordered_ids))
        else:
            model.ordered_ids = ordered_ids

    def _upsert_timing(self, session: Session, user_id: str, item_id: str, timing: ItemTiming) -> None:
        stmt = select(ItemTimingModel).where(
            ItemTimingModel.user_id == user_id,
            ItemTimingModel.item_id == item_id,
        )
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            model = ItemTimingModel(user_id=user_id, item_id=item_id)
            session.add(model)
        model.start_time = timing.start_time
        model.reminder_minutes = timing.reminder_minutes

    def _template_model(self, session: Session, user_id: str, name: str) -> Optional[ScheduleTemplateModel]:
        stmt = select(ScheduleTemplateModel).where(
            ScheduleTemplateModel.user_id == user_id,
            ScheduleTemplateModel.name == name,
        )
        return session.execute(stmt).scalar_one_or_none()

    def _swap_default(self, session: Session, user_id: str, name: Optional[str]) -> None:
        # Both statements run in the caller's transaction, so readers never see zero or two defaults.
        session.execute(
            update(ScheduleTemplateModel)
            .where(ScheduleTemplateModel.user_id == user_id, ScheduleTemplateModel.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )
        if name is not None:
            session.execute(
                update(ScheduleTemplateModel)
                .where(ScheduleTemplateModel.user_id == user_id, ScheduleTemplateModel.name == name)
                .values(is_default=True)
                .execution_options(synchronize_session="fetch")
            )
        session.flush()

    @staticmethod
    def _template_to_domain(model: ScheduleTemplateModel) -> ScheduleTemplate:
        return ScheduleTemplate(
            name=model.name,
            is_default=bool(model.is_default),
            entries=[TemplateEntry.model_validate(entry) for entry in model.entries or []],
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _record_audit(self, session: Session, user_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        session.add(
            AuditEventModel(
                user_id=user_id,
                event_type=event_type,
                payload=payload,
                actor="system",
            )
        )


scheduling_repository = SchedulingRepository()

__all__ = ["SchedulingRepository", "scheduling_repository"]
