"""Per-session fan-out of cook events to live listeners.

Transport agnostic: the SSE route wraps each connection in a
``QueueListener`` and renders the queued ``CookEvent`` objects itself.
Optionally every published event is mirrored onto Redis (see cook_bus) so
other processes can follow a session.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from .cook_bus import publish_event

logger = logging.getLogger("weeknight.bus")

KEEPALIVE = "ping"
CLOSE = "close"


@dataclass(frozen=True)
class CookEvent:
    name: str
    data: dict[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        """Server-sent-events wire format."""
        if self.name == KEEPALIVE:
            return ":ping\n\n"
        return f"event: {self.name}\ndata: {json.dumps(self.data, default=str)}\n\n"


class Listener(Protocol):
    def send(self, event: CookEvent) -> None: ...


class QueueListener:
    """Listener backed by a bounded asyncio.Queue, drained by one SSE response."""

    def __init__(self, maxsize: int = 256):
        self.queue: asyncio.Queue[CookEvent] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def send(self, event: CookEvent) -> None:
        if self.closed:
            raise ConnectionError("listener closed")
        # QueueFull propagates: a stalled consumer counts as a broken listener.
        self.queue.put_nowait(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.queue.put_nowait(CookEvent(CLOSE))
        except asyncio.QueueFull:
            logger.warning("Listener queue full while closing; consumer will stop on next read")

    async def next_event(self, timeout: float) -> Optional[CookEvent]:
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            if self.closed:
                return CookEvent(CLOSE)
            return None


@dataclass
class Subscription:
    session_id: str
    listener: Listener
    broadcaster: "EventBroadcaster"

    def close(self) -> None:
        self.broadcaster.unsubscribe(self.session_id, self.listener)


class EventBroadcaster:
    def __init__(
        self,
        state_provider: Optional[Callable[[str], Optional[dict]]] = None,
        *,
        mirror_to_redis: bool = False,
    ):
        self._listeners: dict[str, dict[Listener, None]] = {}
        self._state_provider = state_provider
        self._mirror_to_redis = mirror_to_redis
        self._mirror_tasks: set[asyncio.Task] = set()

    def set_state_provider(self, provider: Callable[[str], Optional[dict]]) -> None:
        self._state_provider = provider

    def listener_count(self, session_id: str) -> int:
        return len(self._listeners.get(session_id, {}))

    def has_listeners(self, session_id: str) -> bool:
        return session_id in self._listeners

    def subscribe(self, session_id: str, listener: Listener) -> Subscription:
        """Register a listener and bring it up to date immediately."""
        self._listeners.setdefault(session_id, {})[listener] = None

        self._deliver(session_id, listener, CookEvent("connected", {"session_id": session_id}))
        state = self._state_provider(session_id) if self._state_provider else None
        if state is not None:
            self._deliver(session_id, listener, CookEvent("state_sync", state))

        logger.info(f"Listener attached session={session_id} listeners={self.listener_count(session_id)}")
        return Subscription(session_id, listener, self)

    def unsubscribe(self, session_id: str, listener: Listener) -> None:
        listeners = self._listeners.get(session_id)
        if not listeners:
            return
        listeners.pop(listener, None)
        if not listeners:
            del self._listeners[session_id]
        logger.info(f"Listener detached session={session_id} listeners={self.listener_count(session_id)}")

    def publish(self, session_id: str, event: str, payload: dict) -> None:
        message = CookEvent(event, payload)
        for listener in list(self._listeners.get(session_id, {})):
            self._deliver(session_id, listener, message)
        if self._mirror_to_redis:
            self._mirror(session_id, event, payload)

    def send_keepalive(self) -> int:
        """Ping every listener; listeners that fail are dropped. Returns drop count."""
        dropped = 0
        ping = CookEvent(KEEPALIVE)
        for session_id, listeners in list(self._listeners.items()):
            for listener in list(listeners):
                if not self._deliver(session_id, listener, ping):
                    self.unsubscribe(session_id, listener)
                    dropped += 1
        return dropped

    async def keepalive_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            dropped = self.send_keepalive()
            if dropped:
                logger.info(f"Keepalive dropped {dropped} dead listener(s)")

    def close(self, session_id: str) -> None:
        """End every stream of a session (used when the session is reaped)."""
        for listener in list(self._listeners.pop(session_id, {})):
            close = getattr(listener, "close", None)
            if close is not None:
                close()

    def _deliver(self, session_id: str, listener: Listener, event: CookEvent) -> bool:
        try:
            listener.send(event)
            return True
        except Exception as e:
            logger.warning(f"Dropped {event.name} for a listener of session {session_id}: {e!r}")
            return False

    def _mirror(self, session_id: str, event: str, payload: dict) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(publish_event(session_id, event, payload))
        self._mirror_tasks.add(task)
        task.add_done_callback(self._mirror_done)

    def _mirror_done(self, task: asyncio.Task) -> None:
        self._mirror_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Failed to mirror cook event to Redis: {exc}")
