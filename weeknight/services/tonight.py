"""Tonight: one dinner decision from a free-text request.

intent -> household pantry/leftovers -> recipes.search -> golden fallback ->
substitutions for the top 3 -> timeline of the first pick -> side dishes ->
dinner_suggestions log.
"""

import asyncio
import functools
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..cook.timeline import load_timeline
from ..errors import InvalidInput
from ..models import PantryItem, Leftover, RecipeIngredient, DinnerSuggestion
from ..schemas import (
    DinnerIntent,
    TonightRequest,
    TonightResponse,
    SearchContext,
    PantrySnapshotItem,
    QtyRange,
    LeftoverRef,
    SuggestionCard,
    SideDish,
)
from .intent_normalizer import normalize_intent
from .ranking import recipes_search, fetch_published_recipes, build_card, names_match
from .substitutions import suggest_substitutions, allowable_applied

logger = logging.getLogger("weeknight.tonight")

GOLDEN_TAG = "golden"
GOLDEN_SCORE = 50
TOP_N = 3
MAX_MISSING_FOR_SUBS = 3


def load_pantry(db: Session, household_id: str) -> list[PantrySnapshotItem]:
    rows = db.scalars(select(PantryItem).where(PantryItem.household_id == household_id)).all()
    return [
        PantrySnapshotItem(
            name=row.name,
            qty_est_range=QtyRange(lower=row.qty_est_lower or 0, upper=row.qty_est_upper or 0),
            unit=row.unit,
        )
        for row in rows
    ]


def load_leftovers(db: Session, household_id: str) -> list[LeftoverRef]:
    """Unconsumed leftovers that are still safe to eat."""
    now = datetime.now(timezone.utc)
    rows = db.scalars(
        select(Leftover).where(
            Leftover.household_id == household_id,
            Leftover.is_consumed.is_(False),
            Leftover.safe_until >= now,
        )
    ).all()
    return [
        LeftoverRef(id=row.id, name=row.name, servings=row.servings, safe_until=row.safe_until)
        for row in rows
    ]


def golden_fallback(db: Session, limit: int = TOP_N) -> list[SuggestionCard]:
    golden = [r for r in fetch_published_recipes(db) if GOLDEN_TAG in r.tags][:limit]
    return [build_card(r, GOLDEN_SCORE, ["fallback-golden"]) for r in golden]


def missing_ingredients(db: Session, recipe_id: str, pantry: list[PantrySnapshotItem]) -> list[str]:
    rows = db.scalars(
        select(RecipeIngredient)
        .where(RecipeIngredient.recipe_id == recipe_id)
        .order_by(RecipeIngredient.sort_order)
    ).all()
    pantry_names = [p.name for p in pantry]
    return [
        row.name
        for row in rows
        if not row.is_optional and not any(names_match(row.name, name) for name in pantry_names)
    ]


def side_dishes_for(main: Optional[SuggestionCard]) -> list[SideDish]:
    salad = SideDish(
        name="Quick Salad",
        time_min=5,
        steps=[
            "Wash and dry lettuce",
            "Add cherry tomatoes and cucumber",
            "Drizzle with olive oil and lemon",
        ],
        insert_window="while-simmering",
    )
    if main is not None and "asian" in main.tags:
        salad = SideDish(
            name="Cucumber Salad",
            time_min=5,
            steps=[
                "Slice cucumber thinly",
                "Mix with rice vinegar and sesame oil",
                "Sprinkle with sesame seeds",
            ],
            insert_window="while-waiting",
        )

    rice = SideDish(
        name="Steamed Rice",
        time_min=10,
        equipment=["rice-cooker"],
        steps=[
            "Rinse rice until water runs clear",
            "Add water (1:1.2 ratio)",
            "Cook until done",
        ],
        insert_window="at-start",
    )
    return [salad, rice]


def record_suggestion(
    db: Session,
    *,
    user_id: str,
    household_id: str,
    text_input: str,
    dsl: dict,
    top: list[SuggestionCard],
    leftovers: list[LeftoverRef],
    decision_time_ms: int,
) -> None:
    """Best-effort decision log; a failed insert is logged and rolled back."""
    try:
        db.add(DinnerSuggestion(
            user_id=user_id,
            household_id=household_id,
            input_text=text_input,
            dsl=dsl,
            candidates=[
                {"recipe_id": c.recipe_id, "score": c.score, "rank_reasons": c.rank_reasons}
                for c in top
            ],
            selected_recipe_id=None,
            leftovers_used=[item.id for item in leftovers] or None,
            substitutions_applied=[s.model_dump() for s in top[0].substitutions_applied] if top else None,
            decision_time_ms=decision_time_ms,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[Tonight] Failed to record dinner suggestion: {e}")


async def plan_tonight(
    db: Session,
    request: TonightRequest,
    household_id: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> TonightResponse:
    started = time.perf_counter()

    if not request.user_id:
        raise InvalidInput("Missing user_id")
    if not request.text_input:
        raise InvalidInput("Missing text_input")

    logger.info(f"[Tonight] Parsing intent for trace={trace_id}")
    intent_result = await normalize_intent(request.text_input)

    if intent_result.clarifying_question:
        return TonightResponse(
            clarifying_question=intent_result.clarifying_question,
            trace_id=trace_id,
            decision_time_ms=_elapsed_ms(started),
        )

    # Blocking queries run on the default executor, off the event loop.
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None,
        functools.partial(
            _plan_from_intent,
            db,
            request,
            intent_result.dsl,
            household_id=household_id,
            trace_id=trace_id,
            started=started,
        ),
    )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _plan_from_intent(
    db: Session,
    request: TonightRequest,
    dsl: DinnerIntent,
    *,
    household_id: Optional[str],
    trace_id: Optional[str],
    started: float,
) -> TonightResponse:
    pantry: list[PantrySnapshotItem] = []
    leftovers: list[LeftoverRef] = []
    if household_id:
        pantry = load_pantry(db, household_id)
        leftovers = load_leftovers(db, household_id)
    pantry = pantry + list(request.pantry_snapshot)

    logger.info(f"[Tonight] Searching recipes for trace={trace_id}")
    context = SearchContext(
        pantry_snapshot=pantry,
        leftovers=leftovers,
        preferred_appliance=dsl.equipment[0] if dsl.equipment else None,
        limit=10,
    )
    result = recipes_search(db, dsl, context)

    if not result.candidates:
        logger.info(f"[Tonight] No candidates, falling back to golden recipes trace={trace_id}")
        fallback = golden_fallback(db)
        return TonightResponse(
            suggestions=fallback,
            trace_id=trace_id,
            decision_time_ms=_elapsed_ms(started),
            message=None if fallback else "No matching recipes found",
        )

    top = result.candidates[:TOP_N]
    for candidate in top:
        missing = missing_ingredients(db, candidate.recipe_id, pantry)
        if 0 < len(missing) <= MAX_MISSING_FOR_SUBS:
            suggestions = suggest_substitutions(db, missing, risk="low")
            candidate.substitutions_applied = allowable_applied(suggestions)

    timeline = load_timeline(db, top[0].recipe_id)
    side_dishes = side_dishes_for(top[0])

    if household_id:
        record_suggestion(
            db,
            user_id=request.user_id,
            household_id=household_id,
            text_input=request.text_input,
            dsl=dsl.model_dump(mode="json"),
            top=top,
            leftovers=leftovers,
            decision_time_ms=_elapsed_ms(started),
        )

    logger.info(f"[Tonight] {len(top)} suggestion(s) in {_elapsed_ms(started)}ms trace={trace_id}")
    return TonightResponse(
        suggestions=top,
        timeline=timeline,
        side_dishes=side_dishes,
        trace_id=trace_id,
        decision_time_ms=_elapsed_ms(started),
    )
