# =======================================================================================
# keytrack/client/channel.py - Real-Time Channel (client side)
# =======================================================================================
"""WebSocket subscription to key updates with bounded reconnection.

After a lost connection the channel retries ``max_attempts`` times, waiting
``base_delay * 2 ** (attempt - 1)`` seconds before each attempt. When every
attempt fails it dispatches ``reconnect_failed`` and stays down until
``reconnect()`` is called. The server forgets room membership with the
socket, so every (re)connect sends the join messages again.
"""
import asyncio
import inspect
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import config

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[None, Awaitable[None]]]

CONNECT = "connect"
DISCONNECT = "disconnect"
RECONNECT_FAILED = "reconnect_failed"
JOINED = "joined"
ERROR = "error"


class RealtimeChannel:
    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        user_id: Optional[str] = None,
        role: Optional[str] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        connect: Optional[Callable[[str], Awaitable[Any]]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.url = url
        self.token = token
        self.user_id = user_id
        self.role = role
        self.max_attempts = config.SOCKET_MAX_RECONNECT_ATTEMPTS if max_attempts is None else max_attempts
        self.base_delay = config.SOCKET_RECONNECT_DELAY if base_delay is None else base_delay
        self._connect = connect or websockets.connect
        self._sleep = sleep or asyncio.sleep

        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self._ever_connected = False
        self.gave_up = False

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def subscribe(self, event_name: str, handler: Handler) -> None:
        if handler not in self._handlers[event_name]:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        if handler in self._handlers.get(event_name, []):
            self._handlers[event_name].remove(handler)

    async def _dispatch(self, event_name: str, data: Any) -> None:
        for handler in list(self._handlers.get(event_name, [])):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Handler for %s raised", event_name)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    @property
    def connected(self) -> bool:
        return self._ws is not None

    def set_identity(self, token: str, user_id: str, role: str) -> None:
        self.token, self.user_id, self.role = token, user_id, role

    def reconnect_delay(self, attempt: int) -> float:
        return self.base_delay * 2 ** (attempt - 1)

    def _socket_url(self) -> str:
        if not self.token:
            return self.url
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode({'token': self.token})}"

    def _join_messages(self) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"type": "join-keys-room"}]
        if self.user_id:
            messages.append({"type": "join-user-room", "userId": self.user_id})
        if self.role:
            messages.append({"type": "join-role-room", "role": self.role})
        return messages

    async def connect(self) -> None:
        """Start the connection loop in the background; a no-op while it runs."""
        if self._task is not None and not self._task.done():
            return
        self._closing = False
        self.gave_up = False
        self._task = asyncio.create_task(self._run())

    async def reconnect(self) -> None:
        """Manual restart after the channel gave up."""
        await self.connect()

    async def close(self) -> None:
        self._closing = True
        if self._ws is not None:
            await self._ws.close()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def wait_closed(self) -> None:
        """Wait for the connection loop to stop (closed or gave up)."""
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        attempt = 0
        while not self._closing:
            if attempt:
                if attempt > self.max_attempts:
                    self.gave_up = True
                    logger.warning("Giving up after %d reconnection attempts", self.max_attempts)
                    await self._dispatch(RECONNECT_FAILED, {"attempts": self.max_attempts})
                    return
                delay = self.reconnect_delay(attempt)
                logger.info("Reconnecting in %.1fs (attempt %d/%d)", delay, attempt, self.max_attempts)
                await self._sleep(delay)

            try:
                ws = await self._connect(self._socket_url())
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                logger.warning("Connection failed: %s", exc)
                attempt += 1
                continue

            await self._session(ws)
            attempt = 1

    async def _session(self, ws) -> None:
        reconnected = self._ever_connected
        self._ever_connected = True
        self._ws = ws
        try:
            joins = self._join_messages()
            for message in joins:
                await ws.send(json.dumps(message))
            # CONNECT fires once the server has answered every join
            pending = len(joins)

            async for raw in ws:
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON message")
                    continue
                if not isinstance(message, dict) or "event" not in message:
                    continue
                event_name = message["event"]
                await self._dispatch(event_name, message.get("data"))
                if pending and event_name in (JOINED, ERROR):
                    pending -= 1
                    if not pending:
                        await self._dispatch(CONNECT, {"reconnected": reconnected})
        except ConnectionClosed as exc:
            logger.info("Connection closed: %s", exc)
        finally:
            self._ws = None
            await self._dispatch(DISCONNECT, None)
