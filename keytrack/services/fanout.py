# =======================================================================================
# keytrack/services/fanout.py - Real-Time Fan-out Hub
# =======================================================================================
"""Room based publish/subscribe for transition events.

Delivery is best-effort and at-most-once per connected session: there is no
replay buffer, so a client that was disconnected learns about missed changes
only from its next full fetch. Each subscriber receives messages in publish
order.
"""
import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Set

from ..models.enums import (
    KEY_UPDATED,
    KEYS_ROOM,
    USER_KEY_UPDATED,
    KeyAction,
    Role,
    role_room,
    user_room,
)
from ..models.schemas import TransitionEvent

logger = logging.getLogger(__name__)

Message = Dict[str, Any]
Handler = Callable[[Message], None]

# Role rooms that additionally hear about returns done on someone else's behalf
_COLLECTION_WATCHERS = (Role.SECURITY,)


class FanoutHub:
    """Thread-safe room registry; handlers must not block."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[Handler]] = defaultdict(set)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    def subscribe(self, room: str, handler: Handler) -> None:
        with self._lock:
            self._rooms[room].add(handler)
            members = len(self._rooms[room])
        logger.debug("Subscribed handler to %s (%d members)", room, members)

    def unsubscribe(self, room: str, handler: Handler) -> None:
        with self._lock:
            members = self._rooms.get(room)
            if not members:
                return
            members.discard(handler)
            if not members:
                del self._rooms[room]

    def unsubscribe_all(self, handler: Handler) -> None:
        with self._lock:
            for room in [r for r, members in self._rooms.items() if handler in members]:
                self._rooms[room].discard(handler)
                if not self._rooms[room]:
                    del self._rooms[room]

    def member_count(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, ()))

    def connection_count(self) -> int:
        with self._lock:
            handlers: Set[Handler] = set()
            for members in self._rooms.values():
                handlers.update(members)
            return len(handlers)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    def emit(self, rooms: List[str], event_name: str, data: Any) -> int:
        """Send one message to the union of ``rooms``; each handler gets it once."""
        with self._lock:
            targets: List[Handler] = []
            for room in rooms:
                for handler in self._rooms.get(room, ()):
                    if handler not in targets:
                        targets.append(handler)

        message = {"event": event_name, "data": data}
        delivered = 0
        for handler in targets:
            try:
                handler(message)
                delivered += 1
            except Exception:
                logger.exception("Dropping subscriber after delivery failure on %s", event_name)
                self.unsubscribe_all(handler)
        return delivered

    def publish(self, event: TransitionEvent) -> int:
        """Fan one transition event out to every interested room."""
        payload = event.to_message()
        delivered = self.emit([KEYS_ROOM], KEY_UPDATED, payload)

        if event.is_user_scoped:
            rooms = [user_room(user_id) for user_id in event.concerned_users()]
            if event.action == KeyAction.COLLECTIVE_RETURN or event.batch:
                rooms.extend(role_room(role.value) for role in _COLLECTION_WATCHERS)
            delivered += self.emit(rooms, USER_KEY_UPDATED, payload)

        logger.debug("Published %s for key %s to %d subscribers",
                     event.action.value, event.key.key_number, delivered)
        return delivered


class SubscriberOverflow(Exception):
    """A subscriber fell too far behind and has already lost messages."""


class QueueSubscriber:
    """Bridges hub deliveries from any thread into one asyncio queue.

    The websocket route drains the queue from its own event loop, which keeps
    per-connection order and keeps publishers from blocking on socket I/O.
    Once a message is dropped on a full queue the subscriber is marked
    overflowed and ``get()`` raises, so the owner can drop the connection and
    let the client resync instead of running on with a gap.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = 1000):
        self.loop = loop
        self.queue: "asyncio.Queue[Message]" = asyncio.Queue(maxsize=maxsize)
        self.overflowed = False

    def deliver(self, message: Message) -> None:
        if self.overflowed:
            return
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.overflowed = True
            logger.warning("Subscriber queue full; dropped %s, connection will be closed",
                           message.get("event"))

    def __call__(self, message: Message) -> None:
        self.loop.call_soon_threadsafe(self.deliver, message)

    async def get(self) -> Message:
        if self.overflowed:
            raise SubscriberOverflow()
        return await self.queue.get()
