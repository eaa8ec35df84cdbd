"""Durable storage for reminder schedules and the active plan selection.

Both stores sit on top of the async helpers in ``db`` and translate any
SQLAlchemy failure into :class:`StoreUnavailable`.
"""

from __future__ import annotations

import functools
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from app.types.errors import StoreUnavailable
from app.types.reminder_contract import ReminderSchedule
import db

_LOGGER = logging.getLogger(__name__)

ACTIVE_PLAN_KEY = "active_plan_id"


def _store_call(fn):
    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except (SQLAlchemyError, OSError) as exc:
            _LOGGER.warning("reminder store %s failed: %s", fn.__name__, exc)
            raise StoreUnavailable(f"reminder store unavailable: {exc}") from exc
    return wrapper


class ReminderStore:
    """Per-plan ReminderSchedule records."""

    @_store_call
    async def load(self, plan_id: str) -> Optional[ReminderSchedule]:
        row = await db.get_plan_schedule(plan_id)
        return ReminderSchedule.model_validate(row) if row else None

    @_store_call
    async def save(self, schedule: ReminderSchedule) -> None:
        await db.upsert_plan_schedule(
            schedule.plan_id,
            schedule.day_number,
            schedule.task_trigger_ids,
            schedule.grace_trigger_id,
        )

    @_store_call
    async def clear(self, plan_id: str) -> None:
        await db.delete_plan_schedule(plan_id)


class SelectionStore:
    """The single persisted ActiveSelection value."""

    @_store_call
    async def get(self) -> Optional[str]:
        return await db.get_state(ACTIVE_PLAN_KEY)

    @_store_call
    async def set(self, plan_id: str) -> None:
        await db.set_state(ACTIVE_PLAN_KEY, plan_id)

    @_store_call
    async def clear(self) -> None:
        await db.delete_state(ACTIVE_PLAN_KEY)
