"""Reminder reconciliation for a single plan.

A plan is either *disabled* (no ReminderSchedule record) or *scheduled*
for one day number with a set of live trigger ids. Every transition is
cancel-then-recreate: live triggers are never edited in place.

All operations for one plan id run under that plan's lock, so a concurrent
caller sees the state before or after a full read → cancel → schedule →
persist sequence, never in between. Plans are re-read from the plan
service at each decision point.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Dict, Iterable, List, Optional, Sequence, TypeVar

from app.services.plan_client import PlanClient
from app.services.reminder_store import ReminderStore, SelectionStore
from app.types.errors import (
    CompletionNotConfirmed,
    PermissionDenied,
    PlanAlreadyCompleted,
    ReminderError,
    SchedulingFailed,
    StalePlanState,
)
from app.types.reminder_contract import (
    GRACE_BODY,
    Plan,
    PlanDay,
    ReminderSchedule,
    ReminderTime,
)
from app.utils.notifications import TriggerScheduler
from config import settings

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def default_reminder_times() -> List[ReminderTime]:
    return [ReminderTime(hour=h, minute=m) for h, m in settings.REMINDER_TIMES]


def default_grace_time() -> ReminderTime:
    hour, minute = settings.GRACE_TIME
    return ReminderTime(hour=hour, minute=minute)


class Reconciler:
    def __init__(
        self,
        plans: PlanClient,
        scheduler: TriggerScheduler,
        store: ReminderStore,
        selection: SelectionStore,
        reminder_times: Optional[Sequence[ReminderTime]] = None,
        grace_time: Optional[ReminderTime] = None,
        timeout: Optional[float] = None,
    ):
        self.plans = plans
        self.scheduler = scheduler
        self.store = store
        self.selection = selection
        self.reminder_times = list(reminder_times or default_reminder_times())
        self.grace_time = grace_time or default_grace_time()
        self.timeout = timeout or settings.SCHEDULER_TIMEOUT
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def plan_lock(self, plan_id: str):
        """Hold the plan's lock; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(plan_id)
        if lock is None:
            lock = self._locks[plan_id] = asyncio.Lock()
        self._lock_users[plan_id] = self._lock_users.get(plan_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[plan_id] -= 1
            if not self._lock_users[plan_id]:
                del self._lock_users[plan_id]
                del self._locks[plan_id]

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    async def enable(self, plan_id: str) -> ReminderSchedule:
        """(Re)create the reminders for the plan's current day.

        Raises PermissionDenied, StalePlanState, PlanAlreadyCompleted,
        SchedulingFailed (partial ids persisted) or StoreUnavailable.
        """
        async with self.plan_lock(plan_id):
            existing = await self.store.load(plan_id)
            if existing is not None:
                await self._cancel_all(existing.trigger_ids)
            await self.store.clear(plan_id)

            if not await self._request_permission():
                raise PermissionDenied()

            plan = await self._fresh_plan(plan_id)
            day = plan.current_day()
            if day is None:
                raise PlanAlreadyCompleted(f"plan {plan_id} has no incomplete day")
            return await self._schedule_day(plan, day)

    async def disable(self, plan_id: str) -> bool:
        """Cancel and forget the plan's triggers. Returns False if there were none."""
        async with self.plan_lock(plan_id):
            return await self._disable_locked(plan_id)

    async def advance_if_needed(
        self, plan_id: str, completed_day_number: int
    ) -> Optional[ReminderSchedule]:
        """Move reminders on after the tracked day was completed.

        Returns the schedule in effect afterwards (None once disabled).
        Completing any other day leaves the record untouched. Raises
        CompletionNotConfirmed, record untouched, while the plan service
        still shows the tracked day as incomplete.
        """
        async with self.plan_lock(plan_id):
            current = await self.store.load(plan_id)
            if current is None or current.day_number != completed_day_number:
                return current

            try:
                plan = await self._fresh_plan(plan_id)
            except StalePlanState:
                await self._disable_locked(plan_id)
                raise

            day = plan.current_day()
            if day is None:
                _LOGGER.info("plan %s completed, disabling reminders", plan_id)
                await self._disable_locked(plan_id)
                await self._clear_selection_if(plan_id)
                return None
            if day.day_number == current.day_number:
                raise CompletionNotConfirmed(
                    f"plan {plan_id} does not show day {completed_day_number} as done yet"
                )

            await self._cancel_all(current.trigger_ids)
            return await self._schedule_day(plan, day)

    # ------------------------------------------------------------------
    # Helpers (caller holds the plan lock)
    # ------------------------------------------------------------------
    async def _disable_locked(self, plan_id: str) -> bool:
        record = await self.store.load(plan_id)
        if record is None:
            return False
        await self._cancel_all(record.trigger_ids)
        await self.store.clear(plan_id)
        _LOGGER.info("reminders disabled for plan %s", plan_id)
        return True

    async def _clear_selection_if(self, plan_id: str) -> None:
        if await self.selection.get() == plan_id:
            await self.selection.clear()

    async def _fresh_plan(self, plan_id: str) -> Plan:
        plan = await self.plans.get_plan(plan_id)
        if plan is None:
            raise StalePlanState(f"plan {plan_id} no longer exists", missing=True)
        return plan

    async def _bounded(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise SchedulingFailed(f"{what} timed out after {self.timeout:g}s") from exc
        except ReminderError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise SchedulingFailed(f"{what} failed: {exc}") from exc

    async def _request_permission(self) -> bool:
        try:
            return await self._bounded(self.scheduler.request_permission(), "permission request")
        except SchedulingFailed as exc:
            raise PermissionDenied(exc.reason) from exc

    async def _cancel_all(self, trigger_ids: Iterable[str]) -> None:
        for trigger_id in trigger_ids:
            await self._bounded(self.scheduler.cancel(trigger_id), f"cancel {trigger_id}")

    async def _schedule_day(self, plan: Plan, day: PlanDay) -> ReminderSchedule:
        title = f"Day {day.day_number}: time to slice"
        body = plan.body_for(day)
        task_ids: List[str] = []
        grace_id: Optional[str] = None
        failure: Optional[SchedulingFailed] = None

        try:
            for at in self.reminder_times:
                task_ids.append(
                    await self._bounded(self.scheduler.schedule_daily(at, title, body), f"schedule {at}")
                )
            grace_id = await self._bounded(
                self.scheduler.schedule_daily(
                    self.grace_time, f"Day {day.day_number}: it's okay", GRACE_BODY
                ),
                f"schedule {self.grace_time}",
            )
        except SchedulingFailed as exc:
            failure = exc

        schedule = ReminderSchedule(
            plan_id=plan.id,
            day_number=day.day_number,
            task_trigger_ids=task_ids,
            grace_trigger_id=grace_id,
        )
        try:
            if schedule.trigger_ids:
                await self.store.save(schedule)
            else:
                await self.store.clear(plan.id)
        except ReminderError:
            await self._cancel_quietly(schedule.trigger_ids)
            raise

        if failure is not None:
            _LOGGER.warning(
                "plan %s day %s: only %d triggers scheduled: %s",
                plan.id, day.day_number, len(schedule.trigger_ids), failure.reason,
            )
            raise SchedulingFailed(failure.reason, schedule.trigger_ids)
        _LOGGER.info("plan %s: reminders scheduled for day %s", plan.id, day.day_number)
        return schedule

    async def _cancel_quietly(self, trigger_ids: Iterable[str]) -> None:
        """Undo freshly scheduled triggers that could not be recorded."""
        for trigger_id in trigger_ids:
            try:
                await self._bounded(self.scheduler.cancel(trigger_id), f"cancel {trigger_id}")
            except SchedulingFailed as exc:
                _LOGGER.error("orphaned trigger %s: %s", trigger_id, exc.reason)
