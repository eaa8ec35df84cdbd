from __future__ import annotations

"""Periodic scanner to fire due daily triggers without a Celery worker.
Run via a platform schedule every minute:
    python -m app.scripts.scan_due_reminders
"""

import asyncio

from app.utils.sms import format_notification, send_sms
from app.workers.reminder import claim_due_triggers
import db


async def main() -> None:
    try:
        due = await claim_due_triggers()
        for row in due:
            try:
                send_sms(row["recipient"], format_notification(row["title"], row["body"]))
                print("Trigger sent", row["trigger_id"])
            except Exception as e:  # noqa: BLE001
                print("Failed to send trigger", row["trigger_id"], e)
    finally:
        await db.dispose_engine()


if __name__ == "__main__":  # pragma: no cover
    print("[CRON] scan_due_reminders: job started")
    try:
        asyncio.run(main())
        print("[CRON] scan_due_reminders: job completed successfully")
    except Exception as e:
        print(f"[CRON] scan_due_reminders: job failed: {e}")
