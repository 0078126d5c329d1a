"""In-memory cook session store.

Sessions live only for the lifetime of the process. The store is the single
owner of ``CookSession`` objects; everything else refers to a session by id
and writes through ``update()``.
"""

import uuid
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..errors import InvalidInput, NotFound
from ..schemas import TimelineStep

logger = logging.getLogger("weeknight.cook")


class CookStatus(str, Enum):
    IDLE = "idle"
    COOKING = "cooking"
    PAUSED = "paused"
    COMPLETED = "completed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CookSession(BaseModel):
    session_id: str
    user_id: str
    recipe_id: str
    variant_id: Optional[str] = None
    leftover_mode: bool = False
    current_step: int = 0
    status: CookStatus = CookStatus.IDLE
    timer_remaining_sec: int = 0
    timer_started_at: Optional[datetime] = None
    steps: tuple[TimelineStep, ...]
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def step(self) -> TimelineStep:
        return self.steps[self.current_step]

    @property
    def last_index(self) -> int:
        return len(self.steps) - 1


# Fields set once at creation; update() refuses to touch them.
_IMMUTABLE = frozenset({"session_id", "user_id", "recipe_id", "steps", "created_at"})


class SessionStore:
    def __init__(self):
        self._sessions: dict[str, CookSession] = {}

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def create(
        self,
        recipe_id: str,
        user_id: str,
        steps: list[TimelineStep],
        *,
        variant_id: Optional[str] = None,
        leftover_mode: bool = False,
    ) -> CookSession:
        if not steps:
            raise InvalidInput("steps must not be empty")
        if any(cur.step_order <= prev.step_order for prev, cur in zip(steps, steps[1:])):
            raise InvalidInput("step_order must be strictly increasing")

        session = CookSession(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            recipe_id=recipe_id,
            variant_id=variant_id,
            leftover_mode=leftover_mode,
            timer_remaining_sec=max(steps[0].timer_sec, 0),
            steps=tuple(steps),
        )
        self._sessions[session.session_id] = session
        logger.info(f"Created cook session {session.session_id} recipe={recipe_id} steps={len(steps)}")
        return session

    def get(self, session_id: str) -> CookSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFound("Session not found")
        return session

    def get_or_none(self, session_id: str) -> Optional[CookSession]:
        return self._sessions.get(session_id)

    def update(self, session_id: str, **changes) -> CookSession:
        """Apply field changes and stamp ``updated_at``."""
        session = self.get(session_id)
        blocked = _IMMUTABLE.intersection(changes)
        if blocked:
            raise InvalidInput(f"Cannot modify {', '.join(sorted(blocked))}")

        if "timer_remaining_sec" in changes:
            changes["timer_remaining_sec"] = max(int(changes["timer_remaining_sec"]), 0)
        if "current_step" in changes:
            index = changes["current_step"]
            if not 0 <= index <= session.last_index:
                raise InvalidInput(f"Step index {index} out of range")

        for field, value in changes.items():
            setattr(session, field, value)
        session.updated_at = _now()
        return session

    def delete(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            logger.info(f"Removed cook session {session_id}")

    def snapshot(self, session_id: str) -> dict:
        """Wire view used by state_sync events."""
        session = self.get(session_id)
        return {
            "session_id": session.session_id,
            "current_step": session.current_step,
            "status": session.status.value,
            "timer_remaining_sec": session.timer_remaining_sec,
            "step": session.step.model_dump(mode="json"),
        }
