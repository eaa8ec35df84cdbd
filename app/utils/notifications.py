"""Trigger scheduling capability used by the reminder engine.

The engine only knows :class:`TriggerScheduler`: ask for permission,
schedule a trigger that repeats daily at a time of day, cancel by id.
Trigger ids are opaque strings.

:class:`SmsTriggerScheduler` is the production implementation: triggers
are rows in ``daily_triggers`` that the Celery beat task
``app.workers.reminder.dispatch_due`` delivers over SMS.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from app.types.errors import StoreUnavailable
from app.types.reminder_contract import ReminderTime
from config import settings
import db

_LOGGER = logging.getLogger(__name__)


class TriggerScheduler(Protocol):
    async def request_permission(self) -> bool: ...

    async def schedule_daily(self, time_of_day: ReminderTime, title: str, body: str) -> str: ...

    async def cancel(self, trigger_id: str) -> None: ...


class SmsTriggerScheduler:
    """Daily SMS triggers for one recipient phone number."""

    def __init__(self, recipient: Optional[str], timezone: Optional[str] = None):
        self.recipient = recipient
        self.timezone = timezone or settings.DEFAULT_TIMEZONE

    async def request_permission(self) -> bool:
        # SMS has no prompt: permission is a configured number that has not opted out.
        if not self.recipient:
            _LOGGER.info("no reminder recipient configured")
            return False
        try:
            opted_out = await db.is_opted_out(self.recipient)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"opt-out lookup failed: {exc}") from exc
        if opted_out:
            _LOGGER.info("recipient %s opted out of SMS reminders", self.recipient)
            return False
        return True

    async def schedule_daily(self, time_of_day: ReminderTime, title: str, body: str) -> str:
        if not self.recipient:
            raise RuntimeError("no reminder recipient configured")
        trigger_id = await db.insert_daily_trigger(
            recipient=self.recipient,
            hour=time_of_day.hour,
            minute=time_of_day.minute,
            timezone=self.timezone,
            title=title,
            body=body,
        )
        _LOGGER.debug("scheduled trigger %s at %s", trigger_id, time_of_day)
        return trigger_id

    async def cancel(self, trigger_id: str) -> None:
        if not trigger_id:
            return
        removed = await db.delete_daily_trigger(trigger_id)
        if not removed:
            _LOGGER.debug("cancel: trigger %s already gone", trigger_id)
