"""
Async DB helpers for the plan reminder engine.
Uses SQLAlchemy 2.0 + asyncpg driver – no raw SQL strings in app code.
"""

from __future__ import annotations

import os
from datetime import date, datetime
from typing import Any, AsyncGenerator
from uuid import uuid4

from sqlalchemy import select, update, delete, func, or_, JSON, DateTime
from sqlalchemy.orm import (
    DeclarativeBase, Mapped, mapped_column
)
from sqlalchemy.ext.asyncio import (
    create_async_engine, async_sessionmaker, AsyncSession
)

# ──────────────────────────────────────────────────────────────────────
# 1. Declarative metadata
# ──────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass

# ──────────────────────────────────────────────────────────────────────
# 2. Lazy engine / session factory
# ──────────────────────────────────────────────────────────────────────
_engine = None
_session_maker: async_sessionmaker[AsyncSession] | None = None

def _build_url() -> str:
    url = os.getenv("DATABASE_URL") or os.getenv("DATABASE_PUBLIC_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set")
    if url.startswith("postgres") and "+asyncpg" not in url:
        url = url.replace("postgres://", "postgresql+asyncpg://", 1).replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    return url

def get_engine():
    global _engine
    if _engine is None:
        url = _build_url()
        if url.startswith("sqlite"):
            _engine = create_async_engine(url)
        else:
            _engine = create_async_engine(url, pool_size=5, max_overflow=5)
    return _engine

def get_session() -> AsyncGenerator[AsyncSession, None]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    async def _session_scope():
        async with _session_maker() as session:
            yield session
    return _session_scope()

# ──────────────────────────────────────────────────────────────────────
# 3. ORM models
# ──────────────────────────────────────────────────────────────────────

class PlanReminderSchedule(Base):
    __tablename__ = "plan_reminder_schedules"

    plan_id:          Mapped[str] = mapped_column(primary_key=True)
    day_number:       Mapped[int]
    task_trigger_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    grace_trigger_id: Mapped[str | None]
    updated_at:       Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class AppState(Base):
    """Small key/value table for process-wide values (e.g. the active plan)."""

    __tablename__ = "app_state"

    key:        Mapped[str] = mapped_column(primary_key=True)
    value:      Mapped[str]
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class DailyTrigger(Base):
    __tablename__ = "daily_triggers"

    trigger_id:    Mapped[str] = mapped_column(primary_key=True)
    recipient:     Mapped[str]
    hour:          Mapped[int]
    minute:        Mapped[int]
    timezone:      Mapped[str]
    title:         Mapped[str]
    body:          Mapped[str]
    last_fired_on: Mapped[date | None]
    created_at:    Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SmsOptOut(Base):
    __tablename__ = "sms_opt_outs"

    phone_number: Mapped[str] = mapped_column(primary_key=True)
    created_at:   Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ──────────────────────────────────────────────────────────────────────
# 4. DDL helper (run once at startup or from Alembic)
# ──────────────────────────────────────────────────────────────────────
async def create_all():
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ──────────────────────────────────────────────────────────────────────
# 5. CRUD helpers
# ──────────────────────────────────────────────────────────────────────

# 5.1 Plan reminder schedules -----------------------------------------
async def get_plan_schedule(plan_id: str) -> dict[str, Any] | None:
    async for s in get_session():
        row = await s.get(PlanReminderSchedule, plan_id)
        if row is None:
            return None
        return {
            "plan_id": row.plan_id,
            "day_number": row.day_number,
            "task_trigger_ids": list(row.task_trigger_ids or []),
            "grace_trigger_id": row.grace_trigger_id,
        }


async def upsert_plan_schedule(
    plan_id: str,
    day_number: int,
    task_trigger_ids: list[str],
    grace_trigger_id: str | None,
) -> None:
    async for s in get_session():
        await s.merge(
            PlanReminderSchedule(
                plan_id=plan_id,
                day_number=day_number,
                task_trigger_ids=list(task_trigger_ids),
                grace_trigger_id=grace_trigger_id,
            )
        )
        await s.commit()


async def delete_plan_schedule(plan_id: str) -> None:
    async for s in get_session():
        await s.execute(
            delete(PlanReminderSchedule).where(PlanReminderSchedule.plan_id == plan_id)
        )
        await s.commit()


# 5.2 Key/value state --------------------------------------------------
async def get_state(key: str) -> str | None:
    async for s in get_session():
        row = await s.get(AppState, key)
        return row.value if row else None


async def set_state(key: str, value: str) -> None:
    async for s in get_session():
        await s.merge(AppState(key=key, value=value))
        await s.commit()


async def delete_state(key: str) -> None:
    async for s in get_session():
        await s.execute(delete(AppState).where(AppState.key == key))
        await s.commit()


# 5.3 Daily triggers ---------------------------------------------------
async def insert_daily_trigger(
    recipient: str,
    hour: int,
    minute: int,
    timezone: str,
    title: str,
    body: str,
) -> str:
    tid = str(uuid4())
    trigger = DailyTrigger(
        trigger_id=tid,
        recipient=recipient,
        hour=hour,
        minute=minute,
        timezone=timezone,
        title=title,
        body=body,
    )
    async for s in get_session():
        s.add(trigger)
        await s.commit()
    return tid


async def delete_daily_trigger(trigger_id: str) -> bool:
    async for s in get_session():
        res = await s.execute(
            delete(DailyTrigger).where(DailyTrigger.trigger_id == trigger_id)
        )
        await s.commit()
        return res.rowcount > 0


async def list_daily_triggers() -> list[dict[str, Any]]:
    async for s in get_session():
        res = await s.execute(select(DailyTrigger).order_by(DailyTrigger.hour, DailyTrigger.minute))
        return [
            {
                "trigger_id": t.trigger_id,
                "recipient": t.recipient,
                "hour": t.hour,
                "minute": t.minute,
                "timezone": t.timezone,
                "title": t.title,
                "body": t.body,
                "last_fired_on": t.last_fired_on,
            }
            for t in res.scalars()
        ]


async def claim_trigger_firing(trigger_id: str, local_date: date) -> bool:
    """Mark the trigger fired for ``local_date``; False if already claimed."""
    async for s in get_session():
        res = await s.execute(
            update(DailyTrigger)
            .where(
                DailyTrigger.trigger_id == trigger_id,
                or_(
                    DailyTrigger.last_fired_on.is_(None),
                    DailyTrigger.last_fired_on != local_date,
                ),
            )
            .values(last_fired_on=local_date)
        )
        await s.commit()
        return res.rowcount > 0


# 5.4 SMS opt-outs -----------------------------------------------------
async def add_opt_out(phone_number: str) -> None:
    async for s in get_session():
        await s.merge(SmsOptOut(phone_number=phone_number))
        await s.commit()


async def remove_opt_out(phone_number: str) -> None:
    async for s in get_session():
        await s.execute(delete(SmsOptOut).where(SmsOptOut.phone_number == phone_number))
        await s.commit()


async def is_opted_out(phone_number: str) -> bool:
    async for s in get_session():
        return (await s.get(SmsOptOut, phone_number)) is not None


async def dispose_engine():
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
    _session_maker = None
