"""recipes.search: hard-filter then score recipe candidates.

Ranking order (by weight): fewer pots > uses pantry/leftovers > <=30 min >
family fit > leftover potential > appliance match.

``rank_recipes`` is pure: same recipes + intent + context always give the
same candidates and scores. ``recipes_search`` adds the database fetch and
turns data errors into an empty result with ``error`` set.
"""

import logging
import time
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..models import Recipe
from ..schemas import (
    DinnerIntent,
    SearchContext,
    SearchResult,
    RecipeRecord,
    SuggestionCard,
    LeftoverPotential,
)
from ..settings import settings

logger = logging.getLogger("weeknight.ranking")

SORT_WEIGHTS = {
    "cookware": 30,
    "pantry_usage": 25,
    "time_fit": 15,
    "family_fit": 12,
    "leftover_potential": 10,
    "equipment_match": 8,
}
LEFTOVER_REUSE_BONUS = 15

MAX_COOKWARE_CONSIDERED = 4
QUICK_MINUTES = 20
TIME_FIT_MINUTES = 30
CONVENIENT_EQUIPMENT = {"air-fryer", "sheet-pan", "one-pot"}
MEAL_PREP_TAG = "meal-prep"


def names_match(a: str, b: str) -> bool:
    """Case-insensitive containment in either direction ("chicken" ~ "chicken breast")."""
    a, b = a.strip().lower(), b.strip().lower()
    if not a or not b:
        return False
    return a in b or b in a


def _any_match(name: str, pool: Iterable[str]) -> bool:
    return any(names_match(name, other) for other in pool)


# --- Hard filters ---

def passes_filters(recipe: RecipeRecord, intent: DinnerIntent, preferred_appliance: Optional[str] = None) -> bool:
    if intent.time_max is not None:
        if recipe.time_total_min is None or recipe.time_total_min > intent.time_max:
            return False

    if intent.cookware_max is not None and (recipe.cookware_count or 1) > intent.cookware_max:
        return False

    if intent.wants_kid_friendly and not recipe.kid_friendly:
        return False

    if intent.spice_level is not None and (recipe.spice_level or 0) > intent.spice_level:
        return False

    if intent.oil_level is not None and (recipe.oil_level or 1) > intent.oil_level:
        return False

    if intent.cook_type and not set(intent.cook_type) & set(recipe.cook_type):
        return False

    if preferred_appliance:
        if preferred_appliance not in recipe.equipment:
            return False
    elif intent.equipment and not set(intent.equipment) & set(recipe.equipment):
        return False

    if intent.cuisine and recipe.cuisine not in intent.cuisine:
        return False

    # Avoid list is an exclusion, never a score penalty.
    if intent.avoid and any(_any_match(ing, intent.avoid) for ing in recipe.ingredients):
        return False

    return True


# --- Scoring ---

def score_recipe(recipe: RecipeRecord, intent: DinnerIntent, context: SearchContext) -> tuple[float, list[str]]:
    ingredients = [i.lower() for i in recipe.ingredients]
    pantry_names = [p.name.lower() for p in context.pantry_snapshot]
    leftover_names = [item.name.lower() for item in context.leftovers]
    reasons: list[str] = []
    score = 0.0

    # 1. Cookware: fewer pots and pans
    cookware = recipe.cookware_count or 1
    score += max(MAX_COOKWARE_CONSIDERED - cookware, 0) * SORT_WEIGHTS["cookware"] / 3
    if cookware <= 1:
        reasons.append("one-pot")

    # 2. Pantry usage; must-use ingredients count double
    pantry_hits = sum(1 for ing in ingredients if _any_match(ing, pantry_names))
    must_use_hits = sum(1 for ing in ingredients if _any_match(ing, intent.must_use))
    score += (pantry_hits + must_use_hits * 2) * SORT_WEIGHTS["pantry_usage"] / max(len(ingredients), 1)
    if must_use_hits > 0:
        reasons.append("uses-your-ingredients")

    # 3. Time fit
    total_min = recipe.time_total_min or TIME_FIT_MINUTES
    if total_min <= TIME_FIT_MINUTES:
        score += SORT_WEIGHTS["time_fit"]
    else:
        score += SORT_WEIGHTS["time_fit"] * (TIME_FIT_MINUTES / total_min)
    if total_min <= QUICK_MINUTES:
        reasons.append("quick")

    # 4. Family fit
    if intent.wants_kid_friendly and recipe.kid_friendly:
        score += SORT_WEIGHTS["family_fit"]
        reasons.append("kid-friendly")

    # 5. Leftover potential
    if MEAL_PREP_TAG in recipe.tags:
        score += SORT_WEIGHTS["leftover_potential"]
        reasons.append(MEAL_PREP_TAG)

    # 6. Equipment match
    appliance = context.preferred_appliance
    if appliance and appliance in recipe.equipment:
        score += SORT_WEIGHTS["equipment_match"]
        reasons.append(f"uses-{appliance}")
    elif CONVENIENT_EQUIPMENT & set(recipe.equipment):
        score += SORT_WEIGHTS["equipment_match"] * 0.5

    # 7. Leftover reuse
    if any(_any_match(ing, leftover_names) for ing in ingredients):
        score += LEFTOVER_REUSE_BONUS
        reasons.append("uses-leftovers")

    return round(score, 2), reasons


def build_card(recipe: RecipeRecord, score: float, reasons: list[str]) -> SuggestionCard:
    return SuggestionCard(
        recipe_id=recipe.id,
        title=recipe.title,
        hero_image_url=recipe.hero_image_url,
        time_total_min=recipe.time_total_min or TIME_FIT_MINUTES,
        cookware_count=recipe.cookware_count or 1,
        servings=recipe.servings or 2,
        tags=recipe.tags,
        kid_friendly=recipe.kid_friendly,
        equipment=recipe.equipment,
        substitutions_applied=[],
        leftover_potential=LeftoverPotential(suitable=MEAL_PREP_TAG in recipe.tags),
        nutrition=recipe.nutrition,
        score=score,
        rank_reasons=reasons,
    )


def rank_recipes(
    recipes: list[RecipeRecord],
    intent: DinnerIntent,
    context: SearchContext,
    pool_limit: Optional[int] = None,
) -> list[SuggestionCard]:
    pool = [r for r in recipes if passes_filters(r, intent, context.preferred_appliance)]
    if pool_limit is not None:
        pool = pool[:pool_limit]

    cards = []
    for recipe in pool:
        score, reasons = score_recipe(recipe, intent, context)
        cards.append(build_card(recipe, score, reasons))

    # sorted() is stable: equal scores keep fetch order.
    cards = sorted(cards, key=lambda c: c.score, reverse=True)
    return cards[:context.limit]


def search(
    recipes: list[RecipeRecord],
    intent: DinnerIntent,
    context: Optional[SearchContext] = None,
) -> SearchResult:
    started = time.perf_counter()
    context = context or SearchContext()
    candidates = rank_recipes(recipes, intent, context, pool_limit=settings.recipe_pool_limit)
    return SearchResult(candidates=candidates, decision_time_ms=_elapsed_ms(started))


# --- Database-backed entry point ---

def fetch_published_recipes(db: Session) -> list[RecipeRecord]:
    rows = db.scalars(
        select(Recipe)
        .where(Recipe.status == "published")
        .options(selectinload(Recipe.ingredients), selectinload(Recipe.nutrition))
        .order_by(Recipe.created_at, Recipe.id)
    ).all()
    return [RecipeRecord.from_orm_recipe(r) for r in rows]


def recipes_search(db: Session, intent: DinnerIntent, context: Optional[SearchContext] = None) -> SearchResult:
    started = time.perf_counter()
    try:
        recipes = fetch_published_recipes(db)
    except SQLAlchemyError as e:
        logger.error(f"[recipes.search] Recipe fetch failed: {e}")
        db.rollback()
        return SearchResult(candidates=[], decision_time_ms=_elapsed_ms(started), error=str(e))

    result = search(recipes, intent, context)
    result.decision_time_ms = _elapsed_ms(started)
    logger.info(f"[recipes.search] pool={len(recipes)} candidates={len(result.candidates)} in {result.decision_time_ms}ms")
    return result


def _elapsed_ms(started: float) -> int:
    return max(int((time.perf_counter() - started) * 1000), 0)
