# =======================================================================================
# keytrack/client/session.py - Client Session Wiring
# =======================================================================================
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..models.enums import KEY_UPDATED
from ..models.schemas import Actor
from .api import KeysApiClient
from .cache import KeyCache
from .channel import CONNECT, RECONNECT_FAILED, RealtimeChannel

logger = logging.getLogger(__name__)


def _ws_url(base_url: str) -> str:
    if base_url.startswith("https://"):
        return "wss://" + base_url[len("https://"):].rstrip("/") + "/ws"
    if base_url.startswith("http://"):
        return "ws://" + base_url[len("http://"):].rstrip("/") + "/ws"
    return base_url.rstrip("/") + "/ws"


class ClientSession:
    """Owns one API client, one real-time channel and one cache.

    The cache follows ``key-updated`` events. Every connect, the first one
    included, re-fetches both views after the rooms are joined, so changes
    committed before the subscription took effect are never missed.
    """

    def __init__(
        self,
        base_url: str,
        ws_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connect: Optional[Callable[[str], Awaitable[Any]]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.api = KeysApiClient(base_url, transport=transport)
        self.channel = RealtimeChannel(ws_url or _ws_url(base_url), connect=connect, sleep=sleep)
        self.cache = KeyCache(self.api)
        self.actor: Optional[Actor] = None
        self._settled = asyncio.Event()

        self.channel.subscribe(KEY_UPDATED, self.cache.apply_event)
        self.channel.subscribe(CONNECT, self._on_connect)
        self.channel.subscribe(RECONNECT_FAILED, self._on_reconnect_failed)

    async def login(self, email: str, password: str) -> Actor:
        self.actor = await self.api.login(email, password)
        self.cache.user_id = self.actor.user_id
        self.channel.set_identity(self.api.token, self.actor.user_id, self.actor.role.value)
        return self.actor

    async def resync(self) -> None:
        await self.cache.fetch_all()
        await self.cache.fetch_mine()

    async def start(self) -> None:
        """Connect, then wait for the first snapshot taken after joining rooms."""
        self._settled.clear()
        await self.channel.connect()
        await self._settled.wait()

        if self.channel.gave_up:
            logger.warning("Real-time channel unavailable; loading keys without live updates")
            await self.resync()

    async def _on_connect(self, data: Any) -> None:
        if data and data.get("reconnected"):
            logger.info("Reconnected; refreshing key views")
        try:
            await self.resync()
        finally:
            self._settled.set()

    def _on_reconnect_failed(self, data: Any) -> None:
        self._settled.set()

    async def close(self) -> None:
        await self.channel.close()
        await self.api.close()
