import logging

import telnyx
from fastapi import Depends, FastAPI, Request, HTTPException, status
from fastapi.responses import PlainTextResponse

import db
from config import settings
from app.services.reminder_engine import ReminderEngine, build_engine
from app.types.reminder_contract import ReminderOutcome

_LOGGER = logging.getLogger(__name__)

# Configure telnyx public key
if settings.TELNYX_PUBLIC_KEY:
    telnyx.public_key = settings.TELNYX_PUBLIC_KEY

OPT_OUT_KEYWORDS = {"stop", "stopall", "unsubscribe", "cancel", "end", "quit"}
OPT_IN_KEYWORDS = {"start", "unstop", "yes"}

app = FastAPI()

_engine: ReminderEngine | None = None


def get_reminder_engine() -> ReminderEngine:
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


@app.on_event("startup")
async def startup_event():
    pass  # DB connections are managed lazily
    # Tables are managed via Alembic migrations

@app.on_event("shutdown")
async def shutdown_event():
    await db.dispose_engine()

# --------------------------------------------
# Reminder endpoints (called by the app after the plan service confirmed)
# --------------------------------------------

@app.post("/v1/plans/{plan_id}/reminders", response_model=ReminderOutcome)
async def enable_reminders(plan_id: str, engine: ReminderEngine = Depends(get_reminder_engine)):
    return await engine.enable_reminders(plan_id)


@app.delete("/v1/plans/{plan_id}/reminders", response_model=ReminderOutcome)
async def disable_reminders(plan_id: str, engine: ReminderEngine = Depends(get_reminder_engine)):
    return await engine.disable_reminders(plan_id)


@app.post("/v1/plans/{plan_id}/days/{day_number}/done", response_model=ReminderOutcome)
async def day_marked_done(
    plan_id: str, day_number: int, engine: ReminderEngine = Depends(get_reminder_engine)
):
    if day_number < 1:
        raise HTTPException(422, "day_number must be >= 1")
    return await engine.on_day_marked_done(plan_id, day_number)


@app.post("/v1/plans/{plan_id}/select", response_model=ReminderOutcome)
async def plan_selected(plan_id: str, engine: ReminderEngine = Depends(get_reminder_engine)):
    return await engine.on_plan_selected(plan_id)


@app.post("/v1/plans/{plan_id}/created", response_model=ReminderOutcome)
async def plan_created(plan_id: str, engine: ReminderEngine = Depends(get_reminder_engine)):
    return await engine.on_plan_created(plan_id)


@app.delete("/v1/plans/{plan_id}", response_model=ReminderOutcome)
async def plan_deleted(plan_id: str, engine: ReminderEngine = Depends(get_reminder_engine)):
    return await engine.on_plan_deleted(plan_id)


@app.get("/v1/reminders/active", response_model=ReminderOutcome)
async def active_reminders(engine: ReminderEngine = Depends(get_reminder_engine)):
    return await engine.active()

# --------------------------------------------
# Inbound SMS: opt-out / opt-in keywords
# --------------------------------------------
@app.post("/v1/sms/telnyx", response_class=PlainTextResponse)
async def telnyx_webhook(request: Request):
    raw_body  = await request.body()
    sig = request.headers.get("telnyx-signature-ed25519")
    ts  = request.headers.get("telnyx-timestamp")

    try:
        if settings.TELNYX_PUBLIC_KEY:
            event = telnyx.Webhook.construct_event(
                raw_body.decode(), sig, ts
            )
            payload = event.data["payload"]
        else:  # dev mode: skip signature verification
            payload = (await request.json())["data"]["payload"]
    except Exception:
        raise HTTPException(400, "Bad signature")

    if payload.get("type") == "ping":
        return PlainTextResponse("PONG")

    # TelnyxObject -> dict if needed
    if hasattr(payload, "to_dict"):
        payload = payload.to_dict()

    sender = payload.get("from") or payload.get("from_", {})
    if hasattr(sender, "to_dict"):
        sender = sender.to_dict()
    from_num = sender.get("phone_number")
    keyword  = (payload.get("text") or "").strip().lower()

    if not from_num:
        return PlainTextResponse("IGNORED", status_code=status.HTTP_200_OK)

    if keyword in OPT_OUT_KEYWORDS:
        await db.add_opt_out(from_num)
        _LOGGER.info("[Webhook] %s opted out of reminders", from_num)
        return PlainTextResponse("OPTED_OUT")
    if keyword in OPT_IN_KEYWORDS:
        await db.remove_opt_out(from_num)
        _LOGGER.info("[Webhook] %s opted back in to reminders", from_num)
        return PlainTextResponse("OPTED_IN")
    return PlainTextResponse("IGNORED")
