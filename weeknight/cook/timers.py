"""Server-side countdown for cook sessions.

One asyncio task per ticking session. The task never owns timer state: each
tick re-reads the session from the store and writes back through it.
"""

import asyncio
import logging

from .store import SessionStore, CookStatus
from ..realtime.broadcaster import EventBroadcaster

logger = logging.getLogger("weeknight.timers")


class TimerEngine:
    def __init__(self, store: SessionStore, broadcaster: EventBroadcaster, tick_seconds: float = 1.0):
        self.store = store
        self.broadcaster = broadcaster
        self.tick_seconds = tick_seconds
        self._tasks: dict[str, asyncio.Task] = {}

    def is_running(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    def start(self, session_id: str) -> None:
        session = self.store.get_or_none(session_id)
        if session is None or session.timer_remaining_sec <= 0:
            return

        self.stop(session_id)
        self.store.update(session_id, status=CookStatus.COOKING)

        loop = asyncio.get_running_loop()
        self._tasks[session_id] = loop.create_task(self._run(session_id))
        logger.info(f"Timer started session={session_id} remaining={session.timer_remaining_sec}s")

    def stop(self, session_id: str) -> None:
        task = self._tasks.pop(session_id, None)
        if task is not None and not task.done():
            task.cancel()

    def stop_all(self) -> None:
        for session_id in list(self._tasks):
            self.stop(session_id)

    def tick(self, session_id: str) -> bool:
        """Advance one second. Returns False once this timer should end.

        Runs synchronously so the read-modify-write of the session can never
        interleave with an action on the same session.
        """
        session = self.store.get_or_none(session_id)
        if session is None or session.status != CookStatus.COOKING or session.timer_remaining_sec <= 0:
            self._forget(session_id)
            return False

        remaining = session.timer_remaining_sec - 1
        session = self.store.update(session_id, timer_remaining_sec=remaining)
        self.broadcaster.publish(session_id, "timer_tick", {
            "session_id": session_id,
            "remaining_sec": remaining,
            "current_step": session.current_step,
        })

        if remaining > 0:
            return True

        self._forget(session_id)
        self.broadcaster.publish(session_id, "timer_done", {
            "session_id": session_id,
            "step_order": session.step.step_order,
        })
        logger.info(f"Timer done session={session_id} step_order={session.step.step_order}")
        return False

    async def _run(self, session_id: str) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            if not self.tick(session_id):
                return

    def _forget(self, session_id: str) -> None:
        task = self._tasks.pop(session_id, None)
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
