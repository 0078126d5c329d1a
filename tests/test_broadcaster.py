import asyncio
import json

import pytest

from weeknight.realtime.broadcaster import (
    EventBroadcaster,
    QueueListener,
    CookEvent,
    CLOSE,
    KEEPALIVE,
)
from weeknight.realtime.cook_bus import subscribe_session, channel_for_session


class Recorder:
    def __init__(self):
        self.events = []

    def send(self, event):
        self.events.append(event)


class Broken:
    def send(self, event):
        raise ConnectionResetError("client went away")


def test_subscribe_sends_connected_and_state_sync():
    bus = EventBroadcaster(lambda sid: {"session_id": sid, "current_step": 2})
    rec = Recorder()
    bus.subscribe("s1", rec)

    assert [e.name for e in rec.events] == ["connected", "state_sync"]
    assert rec.events[1].data["current_step"] == 2


def test_subscribe_without_state_only_connects():
    bus = EventBroadcaster(lambda sid: None)
    rec = Recorder()
    bus.subscribe("s1", rec)
    assert [e.name for e in rec.events] == ["connected"]


def test_broken_listener_does_not_block_others():
    bus = EventBroadcaster()
    good = Recorder()
    bus.subscribe("s1", Broken())
    bus.subscribe("s1", good)

    bus.publish("s1", "paused", {"session_id": "s1"})
    assert good.events[-1] == CookEvent("paused", {"session_id": "s1"})


def test_publish_is_scoped_to_session():
    bus = EventBroadcaster()
    a, b = Recorder(), Recorder()
    bus.subscribe("s1", a)
    bus.subscribe("s2", b)

    bus.publish("s1", "resumed", {})
    assert "resumed" in [e.name for e in a.events]
    assert "resumed" not in [e.name for e in b.events]


def test_unsubscribe_collects_empty_sessions():
    bus = EventBroadcaster()
    rec = Recorder()
    sub = bus.subscribe("s1", rec)
    assert bus.listener_count("s1") == 1

    sub.close()
    assert not bus.has_listeners("s1")
    sub.close()


def test_keepalive_drops_dead_listeners():
    bus = EventBroadcaster()
    good = Recorder()
    bus.subscribe("s1", good)
    bus.subscribe("s1", Broken())

    assert bus.send_keepalive() == 1
    assert bus.listener_count("s1") == 1
    assert good.events[-1].name == KEEPALIVE


def test_event_rendering():
    assert CookEvent(KEEPALIVE).render() == ":ping\n\n"
    rendered = CookEvent("timer_tick", {"remaining_sec": 4}).render()
    assert rendered == 'event: timer_tick\ndata: {"remaining_sec": 4}\n\n'


@pytest.mark.asyncio
async def test_queue_listener_close_ends_stream():
    bus = EventBroadcaster()
    listener = QueueListener()
    bus.subscribe("s1", listener)

    assert (await listener.next_event(timeout=0.1)).name == "connected"
    assert await listener.next_event(timeout=0.01) is None

    bus.close("s1")
    assert (await listener.next_event(timeout=0.1)).name == CLOSE
    with pytest.raises(ConnectionError):
        listener.send(CookEvent("paused"))


@pytest.mark.asyncio
async def test_full_queue_counts_as_broken():
    bus = EventBroadcaster()
    listener = QueueListener(maxsize=1)
    bus.subscribe("s1", listener)

    assert bus.send_keepalive() == 1
    assert not bus.has_listeners("s1")


@pytest.mark.asyncio
async def test_events_are_mirrored_to_redis():
    pubsub = await subscribe_session("s1")
    bus = EventBroadcaster(mirror_to_redis=True)

    bus.publish("s1", "paused", {"session_id": "s1"})

    msg = None
    for _ in range(20):
        await asyncio.sleep(0.01)
        msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
        if msg:
            break

    assert msg is not None
    assert msg["channel"] == channel_for_session("s1")
    assert json.loads(msg["data"]) == {"type": "paused", "session_id": "s1", "data": {"session_id": "s1"}}
    await pubsub.unsubscribe()
