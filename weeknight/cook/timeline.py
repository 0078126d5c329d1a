import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import RecipeStep
from ..schemas import TimelineStep

logger = logging.getLogger("weeknight.cook")


# (instruction, instruction_zh, duration_sec, timer_sec, method, equipment, extras)
_PLACEHOLDER_STEPS = [
    ("Gather all ingredients and prep your workspace.", "准备所有食材和工作台",
     120, 0, "prep", "cutting board", {"icon_keys": ["prep", "knife"]}),
    ("Chop the onions and garlic finely.", "切碎洋葱和大蒜",
     180, 0, "chop", "knife", {"icon_keys": ["knife", "onion"]}),
    ("Heat oil in a large pan over medium-high heat.", "在大平底锅中用中高火加热油",
     60, 60, "heat", "pan", {"temperature_f": 350, "icon_keys": ["pan", "fire"]}),
    ("Sauté onions until translucent, about 3 minutes.", "炒洋葱直到透明，约3分钟",
     180, 180, "sauté", "pan", {"doneness_cue": "Onions should be translucent", "icon_keys": ["pan", "stir"]}),
    ("Add garlic and cook for 30 seconds until fragrant.", "加入大蒜炒30秒直到出香味",
     30, 30, "sauté", "pan", {"icon_keys": ["garlic", "timer"]}),
    ("Add main protein and cook until done.", "加入主料并烹饪至熟",
     480, 480, "cook", "pan", {"doneness_cue": "Internal temp 165°F for chicken", "icon_keys": ["pan", "thermometer"]}),
    ("Plate and serve immediately. Enjoy!", "装盘并立即享用！",
     60, 0, "plate", "plate", {"cleanup_hint": "Let pan cool before washing", "icon_keys": ["plate", "serve"]}),
]


def placeholder_timeline(recipe_id: str) -> list[TimelineStep]:
    """Deterministic generic timeline used when a recipe has no stored steps."""
    return [
        TimelineStep(
            id=f"{recipe_id}-step-{order}",
            step_order=order,
            instruction=instruction,
            instruction_zh=instruction_zh,
            duration_sec=duration,
            timer_sec=timer,
            method=method,
            equipment=equipment,
            **extras,
        )
        for order, (instruction, instruction_zh, duration, timer, method, equipment, extras)
        in enumerate(_PLACEHOLDER_STEPS, start=1)
    ]


def fetch_timeline(db: Session, recipe_id: str) -> list[TimelineStep]:
    """Stored steps for a recipe, ordered by step_order. Errors propagate."""
    rows = db.scalars(
        select(RecipeStep)
        .where(RecipeStep.recipe_id == recipe_id)
        .order_by(RecipeStep.step_order)
    ).all()
    return [TimelineStep.model_validate(row) for row in rows]


def load_timeline(db: Session | None, recipe_id: str) -> list[TimelineStep]:
    """Timeline for a cook session; never fails for lack of step data."""
    if db is None:
        return placeholder_timeline(recipe_id)

    try:
        steps = fetch_timeline(db, recipe_id)
    except SQLAlchemyError as e:
        logger.error(f"Timeline lookup failed for recipe {recipe_id}, using placeholder: {e}")
        db.rollback()
        return placeholder_timeline(recipe_id)

    if not steps:
        logger.info(f"No stored steps for recipe {recipe_id}, using placeholder timeline")
        return placeholder_timeline(recipe_id)
    return steps
