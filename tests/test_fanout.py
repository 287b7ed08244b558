"""Tests for the in-process fan-out hub."""

import asyncio

import pytest

from keytrack.models import KeyAction
from keytrack.models.enums import KEYS_ROOM, role_room, user_room
from keytrack.models.schemas import Holder, Key, TransitionEvent
from keytrack.services.fanout import FanoutHub, QueueSubscriber, SubscriberOverflow


def _key(holder=None) -> Key:
    return Key(
        id="k1",
        key_number="CSE-101",
        key_name="Lecture Hall",
        location="Block A",
        status="unavailable" if holder else "available",
        holder=holder,
    )


class TestRooms:
    def test_emit_reaches_each_handler_once(self):
        hub = FanoutHub()
        got = []
        hub.subscribe("a", got.append)
        hub.subscribe("b", got.append)

        delivered = hub.emit(["a", "b"], "ping", {"n": 1})

        assert delivered == 1
        assert got == [{"event": "ping", "data": {"n": 1}}]

    def test_unsubscribe_all(self):
        hub = FanoutHub()
        got = []
        hub.subscribe("a", got.append)
        hub.subscribe("b", got.append)

        hub.unsubscribe_all(got.append)
        hub.emit(["a", "b"], "ping", None)

        assert got == []
        assert hub.connection_count() == 0

    def test_failing_handler_is_dropped(self):
        hub = FanoutHub()
        got = []

        def broken(message):
            raise RuntimeError("socket gone")

        hub.subscribe("a", broken)
        hub.subscribe("a", got.append)

        hub.emit(["a"], "ping", None)
        hub.emit(["a"], "ping", None)

        assert len(got) == 2
        assert hub.member_count("a") == 1


class TestPublish:
    def test_take_goes_to_global_and_user_rooms(self):
        hub = FanoutHub()
        everyone, holder, bystander = [], [], []
        hub.subscribe(KEYS_ROOM, everyone.append)
        hub.subscribe(user_room("u1"), holder.append)
        hub.subscribe(user_room("u2"), bystander.append)

        hub.publish(TransitionEvent(action=KeyAction.TAKE, key=_key(Holder(user_id="u1")), user_id="u1"))

        assert [m["event"] for m in everyone] == ["key-updated"]
        assert [m["event"] for m in holder] == ["user-key-updated"]
        assert bystander == []
        assert everyone[0]["data"]["key"]["holder"]["userId"] == "u1"

    def test_scan_notifies_scanner_and_holder(self):
        hub = FanoutHub()
        holder, scanner = [], []
        hub.subscribe(user_room("u1"), holder.append)
        hub.subscribe(user_room("s1"), scanner.append)

        hub.publish(TransitionEvent(action=KeyAction.QR_RETURN, key=_key(), user_id="u1",
                                    scanner_id="s1", original_holder=Holder(user_id="u1")))

        assert len(holder) == 1
        assert len(scanner) == 1

    def test_provisioning_events_stay_global(self):
        hub = FanoutHub()
        everyone, actor = [], []
        hub.subscribe(KEYS_ROOM, everyone.append)
        hub.subscribe(user_room("admin"), actor.append)

        hub.publish(TransitionEvent(action=KeyAction.UPDATE, key=_key(), user_id="admin"))

        assert len(everyone) == 1
        assert actor == []

    def test_collective_return_reaches_security_room(self):
        hub = FanoutHub()
        security = []
        hub.subscribe(role_room("security"), security.append)

        hub.publish(TransitionEvent(action=KeyAction.COLLECTIVE_RETURN, key=_key(), user_id="f2",
                                    original_holder=Holder(user_id="f1"), reason="end of day"))

        assert security[0]["data"]["reason"] == "end of day"


class TestQueueSubscriber:
    @pytest.mark.asyncio
    async def test_delivery_from_other_thread_keeps_order(self):
        hub = FanoutHub()
        subscriber = QueueSubscriber(asyncio.get_running_loop())
        hub.subscribe(KEYS_ROOM, subscriber)

        def publish_many():
            for n in range(5):
                hub.emit([KEYS_ROOM], "tick", n)

        await asyncio.to_thread(publish_many)

        received = [await asyncio.wait_for(subscriber.get(), 1) for _ in range(5)]
        assert [m["data"] for m in received] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_overflow_marks_subscriber_lost(self):
        hub = FanoutHub()
        subscriber = QueueSubscriber(asyncio.get_running_loop(), maxsize=1)
        hub.subscribe(KEYS_ROOM, subscriber)

        hub.emit([KEYS_ROOM], "tick", 1)
        hub.emit([KEYS_ROOM], "tick", 2)
        hub.emit([KEYS_ROOM], "tick", 3)
        await asyncio.sleep(0)

        assert subscriber.overflowed
        assert subscriber.queue.qsize() == 1
        with pytest.raises(SubscriberOverflow):
            await subscriber.get()
