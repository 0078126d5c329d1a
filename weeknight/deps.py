"""FastAPI dependencies for Weeknight API.

Provides:
- Database session dependency
- Household resolution (X-Household-Id header, strict when present)
- The process-wide cook session machine
"""

import uuid
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .cook.machine import CookSessionMachine
from .db import get_db
from .errors import NotFound
from .models import Household
from .realtime.broadcaster import EventBroadcaster
from .settings import settings

__all__ = ["get_db", "get_household", "get_cook_machine"]

_cook_machine: Optional[CookSessionMachine] = None


def get_household(
    db: Session = Depends(get_db),
    x_household_id: Optional[str] = Header(None, alias="X-Household-Id"),
) -> Optional[Household]:
    """Resolve the household named by the X-Household-Id header.

    Resolution:
    1. No header -> None (anonymous request, no pantry/leftovers)
    2. Header as UUID, then as slug
    3. Header given but nothing found -> 404 (never silently anonymous)
    """
    if not x_household_id:
        return None

    household: Optional[Household] = None
    try:
        household = db.get(Household, str(uuid.UUID(x_household_id)))
    except ValueError:
        household = db.query(Household).filter(Household.slug == x_household_id).first()

    if household is None:
        raise NotFound(f"Household '{x_household_id}' not found")
    return household


def get_cook_machine() -> CookSessionMachine:
    global _cook_machine
    if _cook_machine is None:
        _cook_machine = CookSessionMachine(
            broadcaster=EventBroadcaster(mirror_to_redis=settings.cook_bus_redis_mirror),
            tick_seconds=settings.cook_tick_seconds,
            stop_grace_seconds=settings.cook_stop_grace_seconds,
        )
    return _cook_machine
