# =======================================================================================
# keytrack/api/routes/realtime.py - Real-Time WebSocket Channel
# =======================================================================================
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool

from ...models.enums import KEYS_ROOM, role_room, user_room
from ...models.schemas import Actor
from ...services.fanout import FanoutHub, QueueSubscriber, SubscriberOverflow
from ...utils.exceptions import AuthenticationFailed, Forbidden

logger = logging.getLogger(__name__)

router = APIRouter()


def _room_for(message: Dict[str, Any], actor: Actor) -> str:
    """Map a join message to a room name; sessions may only join their own rooms."""
    kind = message.get("type")
    if kind == "join-keys-room":
        return KEYS_ROOM
    if kind == "join-user-room":
        user_id = str(message.get("userId") or actor.user_id)
        if user_id != actor.user_id:
            raise Forbidden("Cannot join another user's room")
        return user_room(user_id)
    if kind == "join-role-room":
        role = str(message.get("role") or actor.role.value)
        if role != actor.role.value:
            raise Forbidden("Cannot join another role's room")
        return role_room(role)
    raise ValueError(f"Unknown message type: {kind!r}")


async def _pump(websocket: WebSocket, subscriber: QueueSubscriber, fanout: FanoutHub) -> None:
    while True:
        try:
            message = await subscriber.get()
        except SubscriberOverflow:
            # messages were lost; closing makes the client reconnect and re-fetch
            fanout.unsubscribe_all(subscriber)
            logger.warning("Closing lagging socket")
            try:
                await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
            except RuntimeError:
                logger.debug("Socket already closed")
            return
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Socket closed while sending %s", message.get("event"))
            return


@router.websocket("/ws")
async def realtime_channel(websocket: WebSocket, token: Optional[str] = Query(None)):
    auth_service = websocket.app.state.auth_service
    fanout: FanoutHub = websocket.app.state.fanout

    try:
        actor: Actor = await run_in_threadpool(auth_service.resolve_token, token)
    except AuthenticationFailed:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    subscriber = QueueSubscriber(asyncio.get_running_loop())
    pump = asyncio.create_task(_pump(websocket, subscriber, fanout))
    logger.info("Socket connected: %s (%s)", actor.email, actor.role.value)

    try:
        while True:
            try:
                message = json.loads(await websocket.receive_text())
            except json.JSONDecodeError:
                message = None
            if not isinstance(message, dict):
                subscriber.deliver({"event": "error", "data": {"code": "INVALID_REQUEST",
                                                               "message": "Expected a JSON object"}})
                continue
            try:
                room = _room_for(message, actor)
            except Forbidden as exc:
                subscriber.deliver({"event": "error", "data": {"code": exc.code, "message": exc.message}})
                continue
            except ValueError as exc:
                subscriber.deliver({"event": "error", "data": {"code": "INVALID_REQUEST", "message": str(exc)}})
                continue

            fanout.subscribe(room, subscriber)
            subscriber.deliver({"event": "joined", "data": {"room": room}})
    except WebSocketDisconnect:
        logger.info("Socket disconnected: %s", actor.email)
    finally:
        fanout.unsubscribe_all(subscriber)
        pump.cancel()
        try:
            await pump
        except asyncio.CancelledError:
            pass
