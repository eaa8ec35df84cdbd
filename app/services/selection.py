"""Tracks which plan reminders follow; at most one plan has live reminders."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from app.services.reconciler import Reconciler
from app.services.reminder_store import SelectionStore
from app.types.errors import ReminderError
from app.types.reminder_contract import ReminderSchedule

_LOGGER = logging.getLogger(__name__)


class SelectionCoordinator:
    def __init__(self, reconciler: Reconciler, selection: SelectionStore):
        self.reconciler = reconciler
        self.selection = selection
        self._lock = asyncio.Lock()

    async def active_plan_id(self) -> Optional[str]:
        return await self.selection.get()

    async def select_as_active(self, plan_id: str) -> ReminderSchedule:
        """Make ``plan_id`` the active plan and turn its reminders on.

        The selection is stored even when the previous plan could not be
        disabled or the new plan's reminders could not be enabled; those
        errors are raised afterwards.
        """
        async with self._lock:
            previous = await self.selection.get()
            disable_error: Optional[ReminderError] = None
            if previous and previous != plan_id:
                try:
                    await self.reconciler.disable(previous)
                except ReminderError as exc:
                    _LOGGER.warning("could not disable reminders for %s: %s", previous, exc.reason)
                    disable_error = exc

            await self.selection.set(plan_id)
            _LOGGER.info("active plan: %s -> %s", previous, plan_id)

            schedule = await self.reconciler.enable(plan_id)
            if disable_error is not None:
                raise disable_error
            return schedule

    async def deselect_if_completed_or_deleted(self, plan_id: str) -> bool:
        """Drop ``plan_id`` from the selection and disable its reminders.

        Returns True if it was the active plan.
        """
        async with self._lock:
            was_active = await self.selection.get() == plan_id
            if was_active:
                await self.selection.clear()
                _LOGGER.info("active plan %s cleared", plan_id)
        await self.reconciler.disable(plan_id)
        return was_active
