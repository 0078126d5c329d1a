"""intent_normalizer: free-text dinner request -> DinnerIntent (Dinner-DSL).

``AI_MODE=gemini`` asks Gemini for the DSL; ``AI_MODE=mock`` (and tests)
use the keyword rules below. Any AI failure degrades to a conservative
fallback intent, never to an error.
"""

import logging
import re

from pydantic import ValidationError

from ..core.ai_client import ai_client
from ..schemas import DinnerIntent, IntentResult

logger = logging.getLogger("weeknight.ai")

DEFAULT_DSL = {
    "time_max": 30,
    "dish_count_max": 1,
    "cookware_max": 3,
    "oil_level": 1,
    "spice_level": 0,
    "cook_type": [],
    "equipment": [],
    "family": {"kid_friendly": False},
    "must_use": [],
    "avoid": [],
    "cuisine": [],
}

SYSTEM_PROMPT = """You are a dinner planning assistant. Parse the user's natural language input into a structured Dinner-DSL.

Output JSON with these fields:
{
  "dsl": {
    "time_max": number (minutes, default 30),
    "dish_count_max": number (default 1),
    "cookware_max": number (default 3),
    "oil_level": number (0-3, 0=no oil, 1=light, 2=normal, 3=heavy),
    "spice_level": number (0-3, 0=none, 1=mild, 2=medium, 3=hot),
    "cook_type": string[] (e.g. ["one-pot", "stir-fry", "air-fry", "steam", "boil", "sheet-pan"]),
    "equipment": string[] (e.g. ["air-fryer", "sheet-pan", "instant-pot"]),
    "family": {"kid_friendly": boolean},
    "must_use": string[] (ingredients to use),
    "avoid": string[] (ingredients to avoid),
    "cuisine": string[] (e.g. ["chinese", "italian", "mexican"])
  },
  "confidence": {"field_name": number (0-1)},
  "clarifying_question": string or null
}

Rules:
- If "清淡" or "light": oil_level=0-1, spice_level=0-1
- If "孩子能吃" or "kid-friendly": kid_friendly=true, spice_level=0
- If "少洗碗" or "one pot": cookware_max=1-2, prefer one-pot/sheet-pan
- If "快" or "<=30 min": time_max=30 or less
- If ingredients mentioned with "use up/use/have": add to must_use
- Only ask clarifying_question if critical info is missing AND affects executability
- Most inputs should result in clarifying_question=null

Return JSON ONLY."""


def fallback_intent() -> IntentResult:
    dsl = dict(DEFAULT_DSL, cook_type=["one-pot", "steam"], cuisine=["chinese", "japanese", "italian"])
    return IntentResult(dsl=DinnerIntent.model_validate(dsl), confidence={"fallback": 1.0})


def merge_with_defaults(raw_dsl: dict) -> DinnerIntent:
    # Explicit nulls from the model do not erase defaults.
    overrides = {k: v for k, v in (raw_dsl or {}).items() if v is not None}
    return DinnerIntent.model_validate({**DEFAULT_DSL, **overrides})


# --- Mock keyword rules ---

_MINUTES = re.compile(r"(\d+)\s*(?:min|mins|minutes|分钟)")
_USE = re.compile(r"\buse(?:\s+up)?\s+(?:the\s+|my\s+|some\s+)?([a-z][a-z ]*?)(?=\s*(?:,|\.|;|!|\band\b|\bno\b|\bwith\b|\bfor\b|$))")
_AVOID = re.compile(r"\b(?:no|without)\s+([a-z][a-z ]*?)(?=\s*(?:,|\.|;|!|\band\b|\bplease\b|$))")

_CUISINES = ("chinese", "japanese", "italian", "mexican", "korean", "thai", "indian")
_EQUIPMENT = {
    "air fryer": "air-fryer",
    "air-fryer": "air-fryer",
    "sheet pan": "sheet-pan",
    "sheet-pan": "sheet-pan",
    "instant pot": "instant-pot",
    "instant-pot": "instant-pot",
}


def parse_with_rules(text: str) -> IntentResult:
    """Deterministic keyword parser used when Gemini is not configured."""
    lowered = text.lower()
    dsl = dict(DEFAULT_DSL)
    confidence: dict[str, float] = {}

    if "light" in lowered or "清淡" in text:
        dsl["oil_level"] = 1
        dsl["spice_level"] = 0
        confidence["oil_level"] = 0.8

    if "spicy" in lowered or "辣" in text:
        dsl["spice_level"] = 2
        confidence["spice_level"] = 0.7

    if "kid" in lowered or "孩子" in text:
        dsl["family"] = {"kid_friendly": True}
        dsl["spice_level"] = 0
        confidence["family"] = 0.9

    if "one pot" in lowered or "one-pot" in lowered or "少洗碗" in text:
        dsl["cookware_max"] = 2
        dsl["cook_type"] = ["one-pot", "sheet-pan"]
        confidence["cookware_max"] = 0.8

    minutes = _MINUTES.search(lowered)
    if minutes:
        dsl["time_max"] = int(minutes.group(1))
        confidence["time_max"] = 0.9
    elif "quick" in lowered or "fast" in lowered or "快" in text:
        dsl["time_max"] = 20
        confidence["time_max"] = 0.6

    must_use = [m.strip() for m in _USE.findall(lowered) if m.strip()]
    if must_use:
        dsl["must_use"] = must_use
        confidence["must_use"] = 0.7

    avoid = [m.strip() for m in _AVOID.findall(lowered) if m.strip()]
    if avoid:
        dsl["avoid"] = avoid
        confidence["avoid"] = 0.8

    cuisine = [c for c in _CUISINES if c in lowered]
    if cuisine:
        dsl["cuisine"] = cuisine

    equipment = []
    for phrase, key in _EQUIPMENT.items():
        if phrase in lowered and key not in equipment:
            equipment.append(key)
    if equipment:
        dsl["equipment"] = equipment

    return IntentResult(dsl=DinnerIntent.model_validate(dsl), confidence=confidence)


async def normalize_intent(text: str) -> IntentResult:
    if not ai_client.is_available():
        return parse_with_rules(text)

    raw = await ai_client.generate_json(prompt=text, system_instruction=SYSTEM_PROMPT)
    if raw is None:
        logger.warning("[intent_normalizer] AI returned nothing, using fallback intent")
        return fallback_intent()

    try:
        return IntentResult(
            dsl=merge_with_defaults(raw.get("dsl") or {}),
            confidence=raw.get("confidence") or {},
            clarifying_question=raw.get("clarifying_question") or None,
        )
    except ValidationError as e:
        logger.error(f"[intent_normalizer] Invalid DSL from AI, using fallback: {e}")
        return fallback_intent()
