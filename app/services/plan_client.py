"""Read-only client for the remote plan service.

``get_plan`` is called fresh at every reminder decision point; nothing here
caches plans.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import requests
from pydantic import ValidationError

from app.types.errors import PlanServiceUnavailable, StalePlanState
from app.types.reminder_contract import Plan
from config import settings

_LOGGER = logging.getLogger(__name__)


class PlanClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.PLAN_API_BASE).rstrip("/")
        self.user_id = user_id or settings.PLAN_USER_ID
        self.timeout = timeout or settings.PLAN_API_TIMEOUT
        self.session = session or requests.Session()

    def _get(self, plan_id: str) -> requests.Response:
        headers = {"X-User-Id": self.user_id} if self.user_id else {}
        return self.session.get(
            f"{self.base_url}/plans/{plan_id}", headers=headers, timeout=self.timeout
        )

    async def get_plan(self, plan_id: str) -> Optional[Plan]:
        """Return the plan, or None if the service says it does not exist."""
        try:
            resp = await asyncio.to_thread(self._get, plan_id)
        except requests.RequestException as exc:
            raise PlanServiceUnavailable(f"GET plan {plan_id} failed: {exc}") from exc

        if resp.status_code == 404:
            return None
        if not resp.ok:
            raise PlanServiceUnavailable(
                f"GET plan {plan_id} -> {resp.status_code} {resp.text[:200]}"
            )
        try:
            return Plan.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            _LOGGER.warning("malformed plan %s: %s", plan_id, exc)
            raise StalePlanState(f"plan {plan_id} is malformed") from exc
