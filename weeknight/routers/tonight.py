from typing import Optional

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from ..deps import get_db, get_household
from ..middleware import get_trace_id
from ..models import Household
from ..schemas import TonightRequest, TonightResponse
from ..services.tonight import plan_tonight

router = APIRouter()

limiter = Limiter(key_func=get_remote_address)


@router.post("/tonight", response_model=TonightResponse)
@limiter.limit("30/minute")
async def tonight(
    request: Request,  # Required for rate limiter
    payload: TonightRequest,
    db: Session = Depends(get_db),
    household: Optional[Household] = Depends(get_household),
):
    return await plan_tonight(
        db,
        payload,
        household_id=household.id if household else None,
        trace_id=get_trace_id(request),
    )
