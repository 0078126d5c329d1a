from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..cook.timeline import load_timeline
from ..deps import get_db
from ..errors import NotFound
from ..middleware import get_trace_id
from ..models import Recipe
from ..services.step_cards import build_step_cards

router = APIRouter(prefix="/recipes")


def _require_recipe(db: Session, recipe_id: str) -> Recipe:
    recipe = db.get(Recipe, recipe_id)
    if recipe is None:
        raise NotFound(f"Recipe '{recipe_id}' not found")
    return recipe


@router.get("/{recipe_id}/timeline")
def get_recipe_timeline(recipe_id: str, request: Request, db: Session = Depends(get_db)):
    _require_recipe(db, recipe_id)
    steps = load_timeline(db, recipe_id)
    return {
        "ok": True,
        "data": [s.model_dump(mode="json") for s in steps],
        "trace_id": get_trace_id(request),
    }


@router.get("/{recipe_id}/cards")
def get_recipe_cards(recipe_id: str, request: Request, db: Session = Depends(get_db)):
    """Step icon cards for the recipe's timeline."""
    _require_recipe(db, recipe_id)
    cards = build_step_cards(load_timeline(db, recipe_id))
    return {
        "ok": True,
        "data": [c.model_dump(mode="json") for c in cards],
        "trace_id": get_trace_id(request),
    }
