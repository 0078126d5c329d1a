import logging

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from ..models import Substitution
from ..schemas import SubstitutionSuggestion, SubstitutionApplied

logger = logging.getLogger("weeknight.subs")

LEVEL_ORDER = {"allowable": 0, "risky": 1, "baking_sensitive": 2}
OMIT = "omit"


def _risk_filter(options: list[Substitution], risk: str) -> list[Substitution]:
    if risk == "low":
        return [o for o in options if o.level == "allowable"]
    if risk == "medium":
        return [o for o in options if o.level != "baking_sensitive"]
    return options


def suggest_substitutions(db: Session, missing: list[str], risk: str = "low") -> list[SubstitutionSuggestion]:
    """Best substitute per missing ingredient, or ``omit`` when none is known."""
    if not missing:
        return []

    lowered = [m.lower() for m in missing]
    rows = db.scalars(
        select(Substitution).where(func.lower(Substitution.original_ingredient).in_(lowered))
    ).all()

    suggestions = []
    for ingredient in missing:
        options = [r for r in rows if r.original_ingredient.lower() == ingredient.lower()]
        if not options:
            suggestions.append(SubstitutionSuggestion(
                original_ingredient=ingredient,
                substitute_ingredient=OMIT,
                level="allowable",
                ratio=0,
                notes="No substitute found, consider omitting if optional",
            ))
            continue

        preferred = _risk_filter(options, risk)
        if not preferred:
            preferred = sorted(options, key=lambda o: LEVEL_ORDER.get(o.level, len(LEVEL_ORDER)))

        best = preferred[0]
        suggestions.append(SubstitutionSuggestion(
            original_ingredient=best.original_ingredient,
            substitute_ingredient=best.substitute_ingredient,
            level=best.level,
            ratio=best.ratio or 1,
            delta_timeline_sec=best.delta_timeline_sec or 0,
            delta_nutrition=best.delta_nutrition or {},
            notes=best.notes,
        ))

    logger.info(f"[subs.suggest] missing={len(missing)} risk={risk}")
    return suggestions


def allowable_applied(suggestions: list[SubstitutionSuggestion]) -> list[SubstitutionApplied]:
    """Substitutions safe to apply automatically (omits are left to the cook)."""
    return [
        SubstitutionApplied(original=s.original_ingredient, substitute=s.substitute_ingredient, level=s.level)
        for s in suggestions
        if s.level == "allowable" and s.substitute_ingredient != OMIT
    ]
