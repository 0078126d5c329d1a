"""Cook session API router.

Endpoints:
- POST /cook/start - Create a session from a recipe timeline
- POST /cook/action - Drive the session (next/prev/pause/resume/add_time/...)
- GET /cook/session/{id} - Current session state
- GET /cook/events - Server-Sent Events for one session

Handlers are async so timers and grace-period removal are scheduled on the
server's event loop.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..cook.machine import CookSessionMachine
from ..cook.timeline import load_timeline
from ..deps import get_db, get_cook_machine
from ..errors import InvalidInput
from ..realtime.broadcaster import QueueListener, CLOSE
from ..schemas import (
    CookStartRequest,
    CookStartResponse,
    CookActionRequest,
    CookActionResponse,
    CookSessionOut,
    CookSessionStatusResponse,
)

logger = logging.getLogger("weeknight.cook")

router = APIRouter(prefix="/cook")

SSE_POLL_SECONDS = 1.0
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post("/start", response_model=CookStartResponse)
async def start_cooking(
    payload: CookStartRequest,
    db: Session = Depends(get_db),
    machine: CookSessionMachine = Depends(get_cook_machine),
):
    if not payload.recipe_id:
        raise InvalidInput("recipe_id is required")

    steps = load_timeline(db, payload.recipe_id)
    session = machine.start_session(
        payload.recipe_id,
        payload.user_id,
        steps,
        variant_id=payload.variant_id,
        leftover_mode=payload.leftover_mode,
    )
    logger.info(f"Session {session.session_id} created for recipe {payload.recipe_id} ({len(steps)} steps)")

    return CookStartResponse(
        session_id=session.session_id,
        steps=list(session.steps),
        current_step=session.current_step,
        status=session.status.value,
        timer_sec=session.timer_remaining_sec,
    )


@router.post("/action", response_model=CookActionResponse)
async def cook_action(
    payload: CookActionRequest,
    machine: CookSessionMachine = Depends(get_cook_machine),
):
    result = machine.apply_action(payload.session_id, payload.action, payload.value)
    return CookActionResponse(
        message=result.message,
        current_step=result.current_step,
        status=result.status.value,
        timer_remaining_sec=result.timer_remaining_sec,
    )


@router.get("/session/{session_id}", response_model=CookSessionStatusResponse)
async def get_cook_session(
    session_id: str,
    machine: CookSessionMachine = Depends(get_cook_machine),
):
    session = machine.get_session(session_id)
    return CookSessionStatusResponse(
        data=CookSessionOut(
            session_id=session.session_id,
            recipe_id=session.recipe_id,
            current_step=session.current_step,
            status=session.status.value,
            timer_remaining_sec=session.timer_remaining_sec,
            steps=list(session.steps),
            current_step_data=session.step,
        )
    )


@router.get("/events")
async def cook_events(
    request: Request,
    session_id: Optional[str] = Query(None),
    machine: CookSessionMachine = Depends(get_cook_machine),
):
    """Server-Sent Events for one cook session."""
    if not session_id:
        raise InvalidInput("session_id is required")
    machine.get_session(session_id)

    async def event_generator():
        listener = QueueListener()
        subscription = machine.broadcaster.subscribe(session_id, listener)
        try:
            while True:
                if await request.is_disconnected():
                    break
                event = await listener.next_event(timeout=SSE_POLL_SECONDS)
                if event is None:
                    continue
                if event.name == CLOSE:
                    break
                yield event.render()
        finally:
            subscription.close()

    return StreamingResponse(event_generator(), media_type="text/event-stream", headers=SSE_HEADERS)
