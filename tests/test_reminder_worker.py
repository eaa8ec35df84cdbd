from datetime import date, datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

import db
from app.types.errors import StoreUnavailable
from app.types.reminder_contract import ReminderTime
from app.utils import sms as sms_util
from app.utils.notifications import SmsTriggerScheduler
from app.workers import reminder as reminder_worker


def _trigger(**overrides):
    trigger = {
        "trigger_id": "t1",
        "recipient": "+15550000000",
        "hour": 9,
        "minute": 0,
        "timezone": "UTC",
        "title": "Day 1: time to slice",
        "body": "Read chapter 1",
        "last_fired_on": None,
    }
    trigger.update(overrides)
    return trigger


def test_is_due_within_catchup_window():
    at = datetime(2026, 10, 19, 9, 3, tzinfo=timezone.utc)
    assert reminder_worker.is_due(_trigger(), at, window_minutes=5)
    assert not reminder_worker.is_due(_trigger(), at, window_minutes=2)
    assert not reminder_worker.is_due(
        _trigger(), datetime(2026, 10, 19, 8, 59, tzinfo=timezone.utc), window_minutes=5
    )


def test_is_due_uses_recipient_timezone():
    # 16:00 UTC is 09:00 in Los Angeles (PDT)
    at = datetime(2026, 10, 19, 16, 0, tzinfo=timezone.utc)
    assert reminder_worker.is_due(_trigger(timezone="America/Los_Angeles"), at, 5)
    assert not reminder_worker.is_due(_trigger(timezone="UTC"), at, 5)


def test_is_due_fires_once_per_day():
    at = datetime(2026, 10, 19, 9, 1, tzinfo=timezone.utc)
    assert not reminder_worker.is_due(_trigger(last_fired_on=date(2026, 10, 19)), at, 5)
    assert reminder_worker.is_due(_trigger(last_fired_on=date(2026, 10, 18)), at, 5)


@pytest.mark.asyncio
async def test_sms_scheduler_triggers_are_claimed_once(database):
    scheduler = SmsTriggerScheduler("+15551234567", timezone="UTC")
    assert await scheduler.request_permission()

    keep = await scheduler.schedule_daily(ReminderTime(hour=9, minute=0), "Day 1", "Read")
    gone = await scheduler.schedule_daily(ReminderTime(hour=9, minute=0), "Day 1", "Old")
    await scheduler.cancel(gone)
    await scheduler.cancel(gone)  # already cancelled: no error

    at = datetime(2026, 10, 19, 9, 2, tzinfo=timezone.utc)
    claimed = await reminder_worker.claim_due_triggers(now=at)
    assert [t["trigger_id"] for t in claimed] == [keep]
    assert await reminder_worker.claim_due_triggers(now=at) == []


@pytest.mark.asyncio
async def test_opted_out_recipient_has_no_permission(database):
    scheduler = SmsTriggerScheduler("+15551234567")
    await db.add_opt_out("+15551234567")
    assert not await scheduler.request_permission()

    await db.remove_opt_out("+15551234567")
    assert await scheduler.request_permission()
    assert not await SmsTriggerScheduler(None).request_permission()


def test_dispatch_due_enqueues_handle(monkeypatch):
    sent_tasks = []

    async def fake_claim(now=None):
        return [_trigger()]

    async def fake_dispose():
        return None

    monkeypatch.setattr(reminder_worker, "claim_due_triggers", fake_claim)
    monkeypatch.setattr(db, "dispose_engine", fake_dispose)
    monkeypatch.setattr(
        reminder_worker.celery_app,
        "send_task",
        lambda name, args=None, queue=None: sent_tasks.append((name, args, queue)),
    )

    result = reminder_worker.dispatch_due.apply(args=())

    assert result.get() == 1
    assert sent_tasks == [(
        "app.workers.reminder.handle",
        ["t1", "+15550000000", "Day 1: time to slice", "Read chapter 1"],
        "reminder",
    )]


def test_handle_sends_sms(monkeypatch):
    sent_messages = []

    def fake_send_sms(to, body):
        sent_messages.append((to, body))

    monkeypatch.setattr(sms_util, "send_sms", fake_send_sms)

    reminder_worker.handle.apply(args=["t1", "+1555", "Day 2: time to slice", "Ship it"])

    assert sent_messages == [("+1555", "Day 2: time to slice\nShip it")]


def test_run_disposes_engine(monkeypatch):
    disposed = []

    async def fake_dispose():
        disposed.append(True)

    async def work():
        return 42

    monkeypatch.setattr(db, "dispose_engine", fake_dispose)
    assert reminder_worker._run(work()) == 42
    assert disposed == [True]


def test_is_due_catches_up_across_midnight():
    late = _trigger(hour=23, minute=58)
    at = datetime(2026, 10, 20, 0, 1, tzinfo=timezone.utc)

    assert reminder_worker.is_due(late, at, 5)
    assert reminder_worker.due_occurrence(late, at, 5) == date(2026, 10, 19)
    assert not reminder_worker.is_due(_trigger(hour=23, minute=58, last_fired_on=date(2026, 10, 19)), at, 5)
    assert not reminder_worker.is_due(late, datetime(2026, 10, 20, 0, 4, tzinfo=timezone.utc), 5)


@pytest.mark.asyncio
async def test_midnight_catchup_claims_the_previous_day(database):
    scheduler = SmsTriggerScheduler("+15551234567", timezone="UTC")
    trigger_id = await scheduler.schedule_daily(ReminderTime(hour=23, minute=58), "Day 1", "Read")

    after_midnight = datetime(2026, 10, 20, 0, 1, tzinfo=timezone.utc)
    assert [t["trigger_id"] for t in await reminder_worker.claim_due_triggers(now=after_midnight)] == [trigger_id]
    assert await reminder_worker.claim_due_triggers(now=after_midnight) == []

    same_evening = datetime(2026, 10, 20, 23, 59, tzinfo=timezone.utc)
    assert [t["trigger_id"] for t in await reminder_worker.claim_due_triggers(now=same_evening)] == [trigger_id]


@pytest.mark.asyncio
async def test_opt_out_lookup_failure_is_a_store_error(monkeypatch):
    async def lookup_down(recipient):
        raise OperationalError("SELECT", {}, Exception("down"))

    monkeypatch.setattr(db, "is_opted_out", lookup_down)

    with pytest.raises(StoreUnavailable):
        await SmsTriggerScheduler("+1555").request_permission()
