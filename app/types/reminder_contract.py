"""Pydantic models shared by the reminder engine, the HTTP surface and tests.

The plan models mirror the payload served by the plan service
(``GET /plans/{id}``); everything else is owned by this backend.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

GRACE_BODY = "Didn't finish today? It's fine. Tomorrow we continue, same day until it's done."


# ──────────────────────────────
# Plan (read-only, remote)
# ──────────────────────────────


class PlanDayStep(BaseModel):
    title: str = ""
    minutes: int = 0
    deliverable: Optional[str] = None
    done_definition: str = ""


class PlanDay(BaseModel):
    day_number: int
    focus: str = ""
    steps: List[PlanDayStep] = Field(default_factory=list)
    is_done: bool = False

    @field_validator("day_number")
    def _positive(cls, v):  # noqa: N805
        if v < 1:
            raise ValueError("day_number must be >= 1")
        return v

    def task_line(self) -> Optional[str]:
        """Focus text, else the first step's title, else None."""
        if self.focus and self.focus.strip():
            return self.focus.strip()
        for step in self.steps[:1]:
            if step.title and step.title.strip():
                return step.title.strip()
        return None


class Plan(BaseModel):
    """A plan as returned by the plan service. ``items`` is the day list."""

    id: str
    title: str
    days: Optional[int] = None
    daily_minutes: Optional[int] = None
    created_at: Optional[datetime] = None
    items: List[PlanDay] = Field(default_factory=list)

    @model_validator(mode="after")
    def _contiguous_days(self):  # noqa: N805
        self.items = sorted(self.items, key=lambda d: d.day_number)
        expected = list(range(1, len(self.items) + 1))
        if [d.day_number for d in self.items] != expected:
            raise ValueError("day numbers must be contiguous starting at 1")
        return self

    def current_day(self) -> Optional[PlanDay]:
        """Lowest-numbered incomplete day, or None when every day is done."""
        for day in self.items:
            if not day.is_done:
                return day
        return None

    @property
    def is_completed(self) -> bool:
        return self.current_day() is None

    def body_for(self, day: PlanDay) -> str:
        return day.task_line() or f"Work on: {self.title}"


# ──────────────────────────────
# Engine-owned state
# ──────────────────────────────


class ReminderTime(BaseModel):
    hour: int = Field(ge=0, le=23)
    minute: int = Field(ge=0, le=59)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


class ReminderSchedule(BaseModel):
    """Trigger ids currently live for one plan, and the day they are about."""

    plan_id: str
    day_number: int
    task_trigger_ids: List[str] = Field(default_factory=list)
    grace_trigger_id: Optional[str] = None

    @property
    def trigger_ids(self) -> List[str]:
        ids = list(self.task_trigger_ids)
        if self.grace_trigger_id:
            ids.append(self.grace_trigger_id)
        return ids


class ReminderOutcome(BaseModel):
    """Result handed back to the UI for every engine operation."""

    ok: bool = True
    code: Optional[str] = None
    reason: Optional[str] = None
    schedule: Optional[ReminderSchedule] = None
    active_plan_id: Optional[str] = None

    @model_validator(mode="after")
    def _failure_has_reason(self):  # noqa: N805
        if not self.ok and not (self.reason and self.reason.strip()):
            raise ValueError("reason must be provided when ok is False")
        return self
