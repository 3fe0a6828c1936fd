import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlalchemy.exc import SQLAlchemyError

from .. import db as db_module
from ..schemas import AlertOut, ReadingOut, dump
from ..stores import list_readings, set_alert_read
from ..ws import Subscription, broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

LATEST_DATA_LIMIT = 10


async def handle_client_message(message: Any, sub: Subscription) -> None:
    """Answer one dashboard request; replies go through the listener's own queue."""

    event = message.get("event") if isinstance(message, dict) else None
    try:
        if event == "get_latest_data":
            async with db_module.AsyncSessionLocal() as session:
                rows = await list_readings(session, limit=LATEST_DATA_LIMIT)
                data = [dump(ReadingOut.model_validate(r)) for r in rows]
            sub.offer({"event": "latest_data", "data": data})
        elif event == "mark_alert_read":
            try:
                alert_id = int(message.get("alertId"))
            except (TypeError, ValueError):
                sub.offer({"event": "error", "data": {"message": "alertId must be an integer"}})
                return
            async with db_module.AsyncSessionLocal() as session:
                alert = await set_alert_read(session, alert_id, True)
                data = dump(AlertOut.model_validate(alert)) if alert else None
            if data is None:
                sub.offer({"event": "error", "data": {"message": "Alert not found"}})
            else:
                broadcaster.publish("alert_updated", data)
        else:
            sub.offer({"event": "error", "data": {"message": f"Unknown event: {event}"}})
    except SQLAlchemyError:
        logger.exception("Failed to handle '%s' from a dashboard", event)
        sub.offer({"event": "error", "data": {"message": f"Failed to handle {event}"}})


@router.websocket("/ws")
async def dashboard_socket(ws: WebSocket):
    sub = await broadcaster.connect(ws)
    logger.info("Dashboard connected (%d listening)", broadcaster.listener_count)

    async def receive() -> None:
        while True:
            try:
                message = await ws.receive_json()
            except WebSocketDisconnect:
                return
            except ValueError:
                sub.offer({"event": "error", "data": {"message": "Messages must be JSON"}})
                continue
            await handle_client_message(message, sub)

    await broadcaster.serve(ws, sub, receive)
    logger.info("Dashboard disconnected (%d listening)", broadcaster.listener_count)
