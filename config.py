import os

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # dotenv is optional for production, but useful locally


def _parse_times(raw: str) -> list[tuple[int, int]]:
    """Parse ``"09:00,13:00"`` into ``[(9, 0), (13, 0)]``."""
    times = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        hour, _, minute = part.partition(":")
        times.append((int(hour), int(minute or 0)))
    return times


class Settings:
    # --- Database ---
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_PUBLIC_URL = os.environ.get("DATABASE_PUBLIC_URL")

    # --- Redis ---
    REDIS_URL = os.environ.get("REDIS_URL")

    # --- Telnyx (SMS) ---
    TELNYX_API_KEY = os.environ.get("TELNYX_API_KEY")
    TELNYX_PUBLIC_KEY = os.environ.get("TELNYX_PUBLIC_KEY")
    TELNYX_FROM_NUMBER = os.environ.get("TELNYX_FROM_NUMBER")

    # --- Plan service ---
    PLAN_API_BASE = os.environ.get("PLAN_API_BASE", "http://localhost:8080")
    PLAN_USER_ID = os.environ.get("PLAN_USER_ID")
    PLAN_API_TIMEOUT = float(os.environ.get("PLAN_API_TIMEOUT", "30"))

    # --- Reminders ---
    REMINDER_SMS_TO = os.environ.get("REMINDER_SMS_TO")
    REMINDER_TIMES = _parse_times(os.environ.get("REMINDER_TIMES", "09:00,13:00,19:00"))
    GRACE_TIME = _parse_times(os.environ.get("GRACE_TIME", "21:30"))[0]
    SCHEDULER_TIMEOUT = float(os.environ.get("SCHEDULER_TIMEOUT", "30"))
    TRIGGER_CATCHUP_MINUTES = int(os.environ.get("TRIGGER_CATCHUP_MINUTES", "5"))

    # --- Default Timezone ---
    DEFAULT_TIMEZONE = os.environ.get("DEFAULT_TIMEZONE", "America/Los_Angeles")

settings = Settings()
