import logging

from config import settings
import telnyx

_LOGGER = logging.getLogger(__name__)

FROM_NUM = settings.TELNYX_FROM_NUMBER
TELNYX_API_KEY = settings.TELNYX_API_KEY
if TELNYX_API_KEY:
    telnyx.api_key = TELNYX_API_KEY

def format_notification(title: str, body: str) -> str:
    return f"{title}\n{body}" if title else body

def send_sms(to: str, body: str) -> None:
    if not TELNYX_API_KEY or not FROM_NUM:
        _LOGGER.info("[SMS] DEV mode: would send to %s: %s", to, body)
        return
    telnyx.Message.create(from_=FROM_NUM, to=to, text=body)
