"""Delivery of daily reminder triggers.

``dispatch_due`` runs every minute from Celery beat, claims each trigger
whose time of day has just passed in the recipient's timezone, and hands
it to ``handle`` which sends the SMS.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, TypeVar
from zoneinfo import ZoneInfo

from app.celery_app import celery_app
from app.utils import sms
from config import settings
import db

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _run(coro: Awaitable[T]) -> T:
    """Run an async DB helper from a sync task, releasing the engine after."""
    async def _scoped():
        try:
            return await coro
        finally:
            await db.dispose_engine()
    return asyncio.run(_scoped())


def due_occurrence(trigger: dict[str, Any], now: datetime, window_minutes: int) -> date | None:
    """Local date of the occurrence ``now`` falls within ``window_minutes`` after, if any.

    An occurrence late in the evening is still due shortly after midnight;
    its date is then the previous day.
    """
    local = now.astimezone(ZoneInfo(trigger["timezone"]))
    scheduled = local.replace(hour=trigger["hour"], minute=trigger["minute"], second=0, microsecond=0)
    if scheduled > local:
        scheduled -= timedelta(days=1)
    elapsed = (local - scheduled).total_seconds()
    if not 0 <= elapsed < window_minutes * 60:
        return None
    if trigger.get("last_fired_on") == scheduled.date():
        return None
    return scheduled.date()


def is_due(trigger: dict[str, Any], now: datetime, window_minutes: int) -> bool:
    """True when ``now`` is within ``window_minutes`` after the trigger's local time."""
    return due_occurrence(trigger, now, window_minutes) is not None


async def claim_due_triggers(now: datetime | None = None) -> list[dict[str, Any]]:
    now = now or datetime.now(tz=timezone.utc)
    claimed = []
    for trigger in await db.list_daily_triggers():
        fire_date = due_occurrence(trigger, now, settings.TRIGGER_CATCHUP_MINUTES)
        if fire_date is None:
            continue
        if await db.claim_trigger_firing(trigger["trigger_id"], fire_date):
            claimed.append(trigger)
    return claimed


# ---------------------------------------------------------------------------
# Celery Tasks
# ---------------------------------------------------------------------------

@celery_app.task(name="app.workers.reminder.handle", bind=True, max_retries=3)
def handle(self, trigger_id: str, recipient: str, title: str, body: str):  # noqa: D401
    """Send a single trigger's notification over SMS."""
    try:
        sms.send_sms(recipient, sms.format_notification(title, body))
    except Exception as exc:  # noqa: BLE001
        _LOGGER.warning("trigger %s delivery failed: %s", trigger_id, exc)
        raise self.retry(exc=exc)


@celery_app.task(name="app.workers.reminder.dispatch_due", bind=True)
def dispatch_due(self):  # noqa: D401
    """Claim due triggers and enqueue a handle task for each."""
    try:
        due = _run(claim_due_triggers())
    except Exception as exc:  # noqa: BLE001
        raise self.retry(exc=exc, countdown=30)

    for row in due:
        celery_app.send_task(
            "app.workers.reminder.handle",
            args=[row["trigger_id"], row["recipient"], row["title"], row["body"]],
            queue="reminder",
        )
    return len(due)
