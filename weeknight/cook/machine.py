"""Cook session state machine.

States: idle -> cooking <-> paused -> completed.

Every action handler below runs synchronously from start to finish: read the
session, stop any running timer when the step or pause state changes, write
through the store, then publish events in transition order.
"""

import asyncio
import math
import logging
import re
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel

from .store import SessionStore, CookSession, CookStatus
from .timers import TimerEngine
from ..errors import InvalidInput
from ..realtime.broadcaster import EventBroadcaster
from ..schemas import TimelineStep

logger = logging.getLogger("weeknight.cook")

DEFAULT_ADD_SECONDS = 60

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class CookAction(str, Enum):
    START = "start"
    NEXT = "next"
    PREV = "prev"
    PAUSE = "pause"
    RESUME = "resume"
    ADD_TIME = "add_time"
    SET_TIME = "set_time"
    REPEAT = "repeat"
    STOP = "stop"

    @classmethod
    def parse(cls, action: Optional[str]) -> "CookAction":
        try:
            return cls(action)
        except ValueError:
            raise InvalidInput(f"Unknown action: {action}")


# Rejected once a session is completed; a stopped session must stay stopped until reaped.
_ACTIVE_ONLY = frozenset({
    CookAction.START,
    CookAction.PREV,
    CookAction.PAUSE,
    CookAction.RESUME,
    CookAction.ADD_TIME,
    CookAction.SET_TIME,
})

class ActionResult(BaseModel):
    message: str
    current_step: int
    status: CookStatus
    timer_remaining_sec: int


def parse_seconds(value: Any) -> Optional[int]:
    """Leading integer of ``value`` (``"90s"`` -> 90), or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


class CookSessionMachine:
    def __init__(
        self,
        store: Optional[SessionStore] = None,
        broadcaster: Optional[EventBroadcaster] = None,
        *,
        tick_seconds: float = 1.0,
        stop_grace_seconds: float = 60.0,
    ):
        self.store = store or SessionStore()
        self.broadcaster = broadcaster or EventBroadcaster()
        self.broadcaster.set_state_provider(self._state_for_listener)
        self.timers = TimerEngine(self.store, self.broadcaster, tick_seconds=tick_seconds)
        self.stop_grace_seconds = stop_grace_seconds
        self._reaps: dict[str, asyncio.TimerHandle] = {}

        self._handlers: dict[CookAction, Callable[[CookSession, Any], str]] = {
            CookAction.START: self._start,
            CookAction.NEXT: self._next,
            CookAction.PREV: self._prev,
            CookAction.PAUSE: self._pause,
            CookAction.RESUME: self._resume,
            CookAction.ADD_TIME: self._add_time,
            CookAction.SET_TIME: self._set_time,
            CookAction.REPEAT: self._repeat,
            CookAction.STOP: self._stop,
        }

    # --- Session lifecycle ---

    def start_session(
        self,
        recipe_id: Optional[str],
        user_id: Optional[str],
        steps: list[TimelineStep],
        *,
        variant_id: Optional[str] = None,
        leftover_mode: bool = False,
    ) -> CookSession:
        if not recipe_id:
            raise InvalidInput("recipe_id is required")
        return self.store.create(
            recipe_id,
            user_id or "anonymous",
            steps,
            variant_id=variant_id,
            leftover_mode=leftover_mode,
        )

    def get_session(self, session_id: str) -> CookSession:
        return self.store.get(session_id)

    def apply_action(self, session_id: Optional[str], action: Optional[str], value: Any = None) -> ActionResult:
        if not session_id:
            raise InvalidInput("session_id is required")
        session = self.store.get(session_id)
        cook_action = CookAction.parse(action)

        if session.status == CookStatus.COMPLETED and cook_action in _ACTIVE_ONLY:
            message = "Cooking already completed"
        else:
            message = self._handlers[cook_action](session, value)
        session = self.store.update(session_id)
        logger.info(
            f"Action {cook_action.value} session={session_id} step={session.current_step} "
            f"status={session.status.value} remaining={session.timer_remaining_sec}"
        )
        return ActionResult(
            message=message,
            current_step=session.current_step,
            status=session.status,
            timer_remaining_sec=session.timer_remaining_sec,
        )

    def shutdown(self) -> None:
        self.timers.stop_all()
        for handle in self._reaps.values():
            handle.cancel()
        self._reaps.clear()

    # --- Action handlers ---

    def _start(self, session: CookSession, value: Any) -> str:
        sid = session.session_id
        self.store.update(sid, status=CookStatus.COOKING)
        if session.timer_remaining_sec > 0:
            self.timers.start(sid)
        self._publish_step_started(session)
        return "Cooking started"

    def _next(self, session: CookSession, value: Any) -> str:
        sid = session.session_id
        if session.status == CookStatus.COMPLETED:
            return "Cooking already completed"

        if session.current_step >= session.last_index:
            self.timers.stop(sid)
            self.store.update(sid, status=CookStatus.COMPLETED)
            self.broadcaster.publish(sid, "cook_complete", {
                "session_id": sid,
                "total_steps": len(session.steps),
            })
            return "Cooking completed!"

        self.timers.stop(sid)
        self.broadcaster.publish(sid, "step_completed", {
            "session_id": sid,
            "step_order": session.step.step_order,
        })

        new_index = session.current_step + 1
        self.store.update(
            sid,
            current_step=new_index,
            timer_remaining_sec=session.steps[new_index].timer_sec,
        )
        self._publish_step_started(session)

        if session.status == CookStatus.COOKING and session.timer_remaining_sec > 0:
            self.timers.start(sid)
        return f"Moved to step {new_index + 1}"

    def _prev(self, session: CookSession, value: Any) -> str:
        sid = session.session_id
        if session.current_step <= 0:
            return "Already at the first step"

        self.timers.stop(sid)
        new_index = session.current_step - 1
        # Partial progress on the step we leave is discarded.
        self.store.update(
            sid,
            current_step=new_index,
            timer_remaining_sec=session.steps[new_index].timer_sec,
        )
        self._publish_step_started(session)
        return f"Moved to step {new_index + 1}"

    def _pause(self, session: CookSession, value: Any) -> str:
        sid = session.session_id
        self.timers.stop(sid)
        self.store.update(sid, status=CookStatus.PAUSED)
        self.broadcaster.publish(sid, "paused", {"session_id": sid})
        return "Timer paused"

    def _resume(self, session: CookSession, value: Any) -> str:
        sid = session.session_id
        if session.status != CookStatus.PAUSED:
            return "Nothing to resume"

        if session.timer_remaining_sec > 0:
            self.timers.start(sid)
        else:
            self.store.update(sid, status=CookStatus.COOKING)
        self.broadcaster.publish(sid, "resumed", {"session_id": sid})
        return "Timer resumed"

    def _add_time(self, session: CookSession, value: Any) -> str:
        sid = session.session_id
        seconds = parse_seconds(value)
        if seconds is None or seconds <= 0:
            seconds = DEFAULT_ADD_SECONDS
        self.store.update(sid, timer_remaining_sec=session.timer_remaining_sec + seconds)
        self.broadcaster.publish(sid, "timer_adjusted", {
            "session_id": sid,
            "added_sec": seconds,
            "remaining_sec": session.timer_remaining_sec,
        })
        return f"Added {seconds} seconds"

    def _set_time(self, session: CookSession, value: Any) -> str:
        sid = session.session_id
        seconds = parse_seconds(value)
        if seconds is None or seconds < 0:
            return "Timer unchanged"

        self.store.update(sid, timer_remaining_sec=seconds)
        self.broadcaster.publish(sid, "timer_adjusted", {
            "session_id": sid,
            "set_sec": seconds,
            "remaining_sec": session.timer_remaining_sec,
        })
        return f"Timer set to {seconds} seconds"

    def _repeat(self, session: CookSession, value: Any) -> str:
        self.broadcaster.publish(session.session_id, "instruction_repeat", {
            "session_id": session.session_id,
            "step": session.step.model_dump(mode="json"),
        })
        return "Instruction repeated"

    def _stop(self, session: CookSession, value: Any) -> str:
        sid = session.session_id
        self.timers.stop(sid)
        self.store.update(sid, status=CookStatus.COMPLETED)
        self.broadcaster.publish(sid, "cook_stopped", {"session_id": sid})
        self._schedule_reap(sid)
        return "Cooking stopped"

    # --- Helpers ---

    def _publish_step_started(self, session: CookSession) -> None:
        self.broadcaster.publish(session.session_id, "step_started", {
            "session_id": session.session_id,
            "step_order": session.step.step_order,
            "step": session.step.model_dump(mode="json"),
        })

    def _schedule_reap(self, session_id: str) -> None:
        previous = self._reaps.pop(session_id, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._reaps[session_id] = loop.call_later(self.stop_grace_seconds, self._reap, session_id)

    def _reap(self, session_id: str) -> None:
        self._reaps.pop(session_id, None)
        self.timers.stop(session_id)
        self.store.delete(session_id)
        self.broadcaster.close(session_id)

    def _state_for_listener(self, session_id: str) -> Optional[dict]:
        if session_id not in self.store:
            return None
        return self.store.snapshot(session_id)
