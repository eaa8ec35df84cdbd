"""Failures reported by the reminder engine.

Every error carries a stable ``code`` (used in HTTP responses) and a
human-readable ``reason``.
"""

from __future__ import annotations

from typing import List, Optional


class ReminderError(Exception):
    code = "reminder_error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PermissionDenied(ReminderError):
    code = "permission_denied"

    def __init__(self, reason: str = "permission not granted"):
        super().__init__(reason)


class SchedulingFailed(ReminderError):
    """The scheduler refused one or more triggers.

    ``trigger_ids`` holds whatever was scheduled before the failure; the
    reconciler persists them.
    """

    code = "scheduling_failed"

    def __init__(self, reason: str, trigger_ids: Optional[List[str]] = None):
        super().__init__(reason)
        self.trigger_ids = list(trigger_ids or [])


class StoreUnavailable(ReminderError):
    code = "store_unavailable"


class StalePlanState(ReminderError):
    """The plan is gone (``missing``) or its payload is unusable."""

    code = "stale_plan_state"

    def __init__(self, reason: str, missing: bool = False):
        super().__init__(reason)
        self.missing = missing


class PlanAlreadyCompleted(ReminderError):
    code = "plan_completed"


class PlanServiceUnavailable(ReminderError):
    code = "plan_service_unavailable"


class CompletionNotConfirmed(ReminderError):
    """The plan service does not show the tracked day as done yet; retry later."""

    code = "completion_not_confirmed"
