"""
Per-plugin API for Web Push. Mounted at /api/ (ROUTE_PREFIX) rather than under
/api/components/ so the endpoints keep the paths browsers and cron jobs call.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from prayerboard.core.errors import InvalidSubscriptionError, TimetableError, UnauthorizedError

from .dispatcher import authorize, broadcast, manual_payload, run_minute_job
from .registry import endpoint_of, validate_subscription

logger = logging.getLogger(__name__)

ROUTE_PREFIX = "/api"


class SendRequest(BaseModel):
    title: Optional[str] = None
    body: str = "It's time for prayer."
    data: Dict[str, Any] = {}


class SendToRequest(BaseModel):
    subscription: Optional[Dict[str, Any]] = None
    title: Optional[str] = None
    body: str = ""
    data: Dict[str, Any] = {}


class DebugSubsResponse(BaseModel):
    count: int
    endpoints: List[str]


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": error})


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    try:
        return await request.json()
    except ValueError:
        raise InvalidSubscriptionError("Invalid JSON body")


def get_router(board_app) -> Optional[APIRouter]:
    """Return router for this plugin; mounted with prefix /api."""
    router = APIRouter(tags=["Push"])
    app_name = board_app.config.get("app_name", "MWHS")

    @router.post("/subscribe")
    async def subscribe(request: Request):
        try:
            subscription = validate_subscription(await _read_json(request))
        except InvalidSubscriptionError as e:
            logger.warning(f"Rejected subscription: {e}")
            return _error(400, "Invalid subscription")
        board_app.registry.add(subscription)
        return {"ok": True}

    @router.post("/unsubscribe")
    async def unsubscribe(request: Request):
        try:
            body = await _read_json(request)
        except InvalidSubscriptionError:
            return JSONResponse(status_code=400, content={"ok": False})
        if not isinstance(body, dict):
            return JSONResponse(status_code=400, content={"ok": False})
        # Unknown endpoints are a no-op
        board_app.registry.remove(body)
        return {"ok": True}

    @router.post("/send")
    def send(message: SendRequest):
        """Broadcast an arbitrary message to every subscription."""
        sender = board_app.get_sender()
        if sender is None:
            return _error(500, "push-not-configured")
        counts = broadcast(
            board_app.registry, sender, message.title, message.body, message.data,
            app_name=app_name,
            batch_size=board_app.config.get("push.batch_size", 1000),
            max_workers=board_app.config.get("push.max_workers", 32),
        )
        return {"ok": True, "sent": counts.sent, "removed": counts.removed}

    @router.post("/send-to")
    def send_to(message: SendToRequest):
        """Send one message to a single subscription given in the request."""
        if endpoint_of(message.subscription) is None:
            return _error(400, "missing-subscription")
        sender = board_app.get_sender()
        if sender is None:
            return _error(500, "push-not-configured")
        outcome = sender.send(message.subscription, manual_payload(message.title, message.body, message.data, app_name))
        if not outcome.ok:
            return _error(500, outcome.error or f"push-failed {outcome.status}")
        return {"ok": True, "sent": 1}

    @router.api_route("/send-today", methods=["GET", "POST"])
    def send_today(authorization: Optional[str] = Header(default=None)):
        """Minute trigger, called by an external cron with the shared secret."""
        try:
            authorize(authorization, board_app.config.get("cron.secret"))
        except UnauthorizedError:
            return _error(401, "Unauthorized")
        try:
            report = run_minute_job(
                board_app.timetable_source,
                board_app.registry,
                board_app.get_sender(),
                tz=board_app.tz,
                batch_size=board_app.config.get("push.batch_size", 1000),
                max_workers=board_app.config.get("push.max_workers", 32),
            )
        except TimetableError:
            return _error(500, "timetable-read-failed")
        status_code = 500 if report.error == "push-not-configured" else 200
        return JSONResponse(status_code=status_code, content=report.to_dict())

    @router.get("/debug-subs", response_model=DebugSubsResponse)
    def debug_subs() -> DebugSubsResponse:
        """Registered endpoints only; keys are never returned."""
        endpoints = board_app.registry.endpoints()
        return DebugSubsResponse(count=len(endpoints), endpoints=endpoints)

    return router
