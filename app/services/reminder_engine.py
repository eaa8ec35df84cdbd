"""UI-facing entry points of the reminder engine.

Each operation returns a :class:`ReminderOutcome`; engine failures are
reported in the outcome and logged, never raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from app.services.plan_client import PlanClient
from app.services.reconciler import Reconciler
from app.services.reminder_store import ReminderStore, SelectionStore
from app.services.selection import SelectionCoordinator
from app.types.errors import ReminderError, StalePlanState
from app.types.reminder_contract import ReminderOutcome, ReminderSchedule
from app.utils.notifications import SmsTriggerScheduler, TriggerScheduler
from config import settings

_LOGGER = logging.getLogger(__name__)


class ReminderEngine:
    def __init__(
        self,
        plans: PlanClient,
        scheduler: TriggerScheduler,
        store: Optional[ReminderStore] = None,
        selection: Optional[SelectionStore] = None,
        **reconciler_options,
    ):
        self.plans = plans
        self.store = store or ReminderStore()
        self.selection = selection or SelectionStore()
        self.reconciler = Reconciler(
            plans, scheduler, self.store, self.selection, **reconciler_options
        )
        self.coordinator = SelectionCoordinator(self.reconciler, self.selection)

    async def enable_reminders(self, plan_id: str) -> ReminderOutcome:
        return await self._run(plan_id, "enable", lambda: self.reconciler.enable(plan_id))

    async def disable_reminders(self, plan_id: str) -> ReminderOutcome:
        async def _disable():
            await self.reconciler.disable(plan_id)
            return None
        return await self._run(plan_id, "disable", _disable)

    async def on_day_marked_done(self, plan_id: str, day_number: int) -> ReminderOutcome:
        """Call after the plan service confirmed the day completion."""
        async def _advance():
            schedule = await self.reconciler.advance_if_needed(plan_id, day_number)
            if schedule is None and await self.selection.get() != plan_id:
                return None
            # a record pinned to an earlier day, or a selection without reminders,
            # must still follow completion of the whole plan
            plan = await self.plans.get_plan(plan_id)
            if plan is None or plan.is_completed:
                await self.coordinator.deselect_if_completed_or_deleted(plan_id)
                return None
            return schedule
        return await self._run(plan_id, "advance", _advance)

    async def on_plan_selected(self, plan_id: str) -> ReminderOutcome:
        return await self._run(
            plan_id, "select", lambda: self.coordinator.select_as_active(plan_id)
        )

    async def on_plan_created(self, plan_id: str) -> ReminderOutcome:
        """A freshly created plan becomes the active plan."""
        return await self.on_plan_selected(plan_id)

    async def on_plan_deleted(self, plan_id: str) -> ReminderOutcome:
        async def _deleted():
            await self.coordinator.deselect_if_completed_or_deleted(plan_id)
            return None
        return await self._run(plan_id, "delete", _deleted)

    async def active(self) -> ReminderOutcome:
        async def _active():
            plan_id = await self.selection.get()
            return await self.store.load(plan_id) if plan_id else None
        return await self._run(None, "active", _active)

    # ------------------------------------------------------------------
    async def _run(
        self,
        plan_id: Optional[str],
        action: str,
        op: Callable[[], Awaitable[Optional[ReminderSchedule]]],
    ) -> ReminderOutcome:
        try:
            schedule = await op()
        except ReminderError as exc:
            _LOGGER.warning("%s plan=%s failed [%s]: %s", action, plan_id, exc.code, exc.reason)
            if isinstance(exc, StalePlanState) and exc.missing and plan_id:
                await self._forget_missing_plan(plan_id)
            return ReminderOutcome(
                ok=False,
                code=exc.code,
                reason=exc.reason,
                schedule=await self._schedule_or_none(plan_id),
                active_plan_id=await self._active_or_none(),
            )
        return ReminderOutcome(
            ok=True, schedule=schedule, active_plan_id=await self._active_or_none()
        )

    async def _forget_missing_plan(self, plan_id: str) -> None:
        try:
            await self.coordinator.deselect_if_completed_or_deleted(plan_id)
        except ReminderError as exc:
            _LOGGER.warning("could not forget missing plan %s: %s", plan_id, exc.reason)

    async def _schedule_or_none(self, plan_id: Optional[str]) -> Optional[ReminderSchedule]:
        if not plan_id:
            return None
        try:
            return await self.store.load(plan_id)
        except ReminderError:
            return None

    async def _active_or_none(self) -> Optional[str]:
        try:
            return await self.selection.get()
        except ReminderError:
            return None


def build_engine(recipient: Optional[str] = None) -> ReminderEngine:
    """Engine wired to the plan service and SMS triggers from settings."""
    return ReminderEngine(
        plans=PlanClient(),
        scheduler=SmsTriggerScheduler(recipient or settings.REMINDER_SMS_TO),
    )
