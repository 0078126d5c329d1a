"""Pydantic schemas for Weeknight API.

Request/response models for:
- Dinner intent (DSL) and ranking context
- Suggestion cards
- Timeline steps and step icon cards
- Cook session start/action/status
- Tonight flow
"""

from datetime import datetime
from typing import Any, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Dinner intent (DSL) ---

class FamilyPrefs(BaseModel):
    kid_friendly: Optional[bool] = None
    diet_restrictions: list[str] = []


class DinnerIntent(BaseModel):
    """Structured dinner request. Every field is optional; None = no constraint."""
    model_config = ConfigDict(extra="ignore")

    time_max: Optional[int] = Field(None, ge=0)
    dish_count_max: Optional[int] = Field(None, ge=0)
    cookware_max: Optional[int] = Field(None, ge=0)
    oil_level: Optional[int] = Field(None, ge=0, le=3)
    spice_level: Optional[int] = Field(None, ge=0, le=3)
    cook_type: list[str] = []
    equipment: list[str] = []
    family: Optional[FamilyPrefs] = None
    must_use: list[str] = []
    avoid: list[str] = []
    cuisine: list[str] = []

    @property
    def wants_kid_friendly(self) -> bool:
        return bool(self.family and self.family.kid_friendly)


class IntentResult(BaseModel):
    dsl: DinnerIntent
    confidence: dict[str, float] = {}
    clarifying_question: Optional[str] = None


# --- Pantry / leftovers context ---

class QtyRange(BaseModel):
    lower: float = 0
    upper: float = 0


class PantrySnapshotItem(BaseModel):
    name: str
    qty_est_range: QtyRange = QtyRange()
    unit: Optional[str] = None


class LeftoverRef(BaseModel):
    id: Optional[str] = None
    name: str
    servings: Optional[float] = None
    safe_until: Optional[datetime] = None


class SearchContext(BaseModel):
    pantry_snapshot: list[PantrySnapshotItem] = []
    leftovers: list[LeftoverRef] = []
    preferred_appliance: Optional[str] = None
    limit: int = Field(10, ge=1, le=100)


# --- Recipe data fed into ranking ---

class NutritionInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    calories_kcal: Optional[int] = None
    protein_g: Optional[float] = None
    fat_g: Optional[float] = None
    carbs_g: Optional[float] = None
    fiber_g: Optional[float] = None
    sodium_mg: Optional[float] = None
    retention_applied: Optional[bool] = None
    confidence_pct: Optional[int] = None
    source: Optional[str] = None


class RecipeRecord(BaseModel):
    """Plain view of a recipe row; keeps ranking independent of the ORM."""
    id: str
    title: str
    hero_image_url: Optional[str] = None
    time_total_min: Optional[int] = None
    cookware_count: Optional[int] = None
    servings: Optional[int] = None
    oil_level: Optional[int] = None
    spice_level: Optional[int] = None
    kid_friendly: bool = False
    tags: list[str] = []
    equipment: list[str] = []
    cook_type: list[str] = []
    cuisine: Optional[str] = None
    ingredients: list[str] = []
    nutrition: Optional[NutritionInfo] = None

    @classmethod
    def from_orm_recipe(cls, recipe) -> "RecipeRecord":
        return cls(
            id=recipe.id,
            title=recipe.title,
            hero_image_url=recipe.hero_image_url,
            time_total_min=recipe.time_total_min,
            cookware_count=recipe.cookware_count,
            servings=recipe.servings,
            oil_level=recipe.oil_level,
            spice_level=recipe.spice_level,
            kid_friendly=bool(recipe.kid_friendly),
            tags=recipe.tags or [],
            equipment=recipe.equipment or [],
            cook_type=recipe.cook_type or [],
            cuisine=recipe.cuisine,
            ingredients=[i.name for i in recipe.ingredients],
            nutrition=NutritionInfo.model_validate(recipe.nutrition) if recipe.nutrition else None,
        )


# --- Suggestion cards ---

class SubstitutionApplied(BaseModel):
    original: str
    substitute: str
    level: str


class LeftoverPotential(BaseModel):
    suitable: bool = False
    transformation: Optional[str] = None
    safe_hours: int = 72


class SuggestionCard(BaseModel):
    recipe_id: str
    title: str
    hero_image_url: Optional[str] = None
    time_total_min: int
    cookware_count: int
    servings: int
    tags: list[str] = []
    kid_friendly: bool = False
    equipment: list[str] = []
    substitutions_applied: list[SubstitutionApplied] = []
    leftover_potential: LeftoverPotential = LeftoverPotential()
    nutrition: Optional[NutritionInfo] = None
    score: float
    rank_reasons: list[str] = []


class SearchResult(BaseModel):
    candidates: list[SuggestionCard] = []
    decision_time_ms: int = 0
    error: Optional[str] = None


# --- Timeline ---

class TimelineStep(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    step_order: int
    instruction: str
    instruction_zh: Optional[str] = None
    duration_sec: Optional[int] = None
    timer_sec: int = 0
    method: Optional[str] = None
    equipment: Optional[str] = None
    concurrent_group: Optional[str] = None
    cleanup_hint: Optional[str] = None
    temperature_f: Optional[int] = None
    doneness_cue: Optional[str] = None
    icon_keys: list[str] = []
    panic_fix: Optional[str] = None

    @field_validator("timer_sec", mode="before")
    @classmethod
    def _timer_default(cls, v):
        return v or 0

    @field_validator("icon_keys", mode="before")
    @classmethod
    def _icons_default(cls, v):
        return v or []


class StepIconCard(BaseModel):
    step_id: str
    icon_keys: list[str]
    title: str
    subtitle: str
    badges: list[str] = []
    cues: list[str] = []


# --- Cook sessions ---

CookStatus = Literal["idle", "cooking", "paused", "completed"]


class CookStartRequest(BaseModel):
    recipe_id: Optional[str] = None
    user_id: Optional[str] = None
    variant_id: Optional[str] = None
    leftover_mode: bool = False


class CookStartResponse(BaseModel):
    ok: bool = True
    session_id: str
    steps: list[TimelineStep]
    current_step: int
    status: CookStatus
    timer_sec: int


class CookActionRequest(BaseModel):
    session_id: Optional[str] = None
    action: Optional[str] = None
    value: Optional[Any] = None


class CookActionResponse(BaseModel):
    ok: bool = True
    message: str
    current_step: int
    status: CookStatus
    timer_remaining_sec: int


class CookSessionOut(BaseModel):
    session_id: str
    recipe_id: str
    current_step: int
    status: CookStatus
    timer_remaining_sec: int
    steps: list[TimelineStep]
    current_step_data: Optional[TimelineStep] = None


class CookSessionStatusResponse(BaseModel):
    ok: bool = True
    data: CookSessionOut


# --- Tonight ---

class TonightRequest(BaseModel):
    user_id: Optional[str] = None
    text_input: Optional[str] = None
    pantry_snapshot: list[PantrySnapshotItem] = []


class SideDish(BaseModel):
    name: str
    time_min: int
    equipment: list[str] = []
    steps: list[str] = []
    insert_window: Optional[str] = None


class TonightResponse(BaseModel):
    ok: bool = True
    suggestions: list[SuggestionCard] = []
    timeline: list[TimelineStep] = []
    side_dishes: list[SideDish] = []
    clarifying_question: Optional[str] = None
    message: Optional[str] = None
    trace_id: Optional[str] = None
    decision_time_ms: int = 0


class SubstitutionSuggestion(BaseModel):
    original_ingredient: str
    substitute_ingredient: str
    level: str
    ratio: float = 1.0
    delta_timeline_sec: int = 0
    delta_nutrition: dict = {}
    notes: Optional[str] = None
