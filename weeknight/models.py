"""SQLAlchemy ORM models for Weeknight.

Tables:
- households: Pantry/leftover ownership (resolved via X-Household-Id)
- recipes: Published recipe library with ranking attributes
- recipe_steps: Ordered timeline steps consumed by cook sessions
- recipe_ingredients: Structured ingredients (avoid/pantry/leftover matching)
- nutrition_snapshots: Per-recipe nutrition summary
- pantry_items / leftovers: Household inventory
- substitutions: Ingredient substitution library
- dinner_suggestions: Log of each Tonight decision

Cook sessions are intentionally NOT persisted; see weeknight/cook/store.py.
"""

from __future__ import annotations

import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Text,
    Integer,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Numeric,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON

from .db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class Household(Base):
    """Household owning pantry items and leftovers."""
    __tablename__ = "households"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    slug: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Recipe(Base):
    """Recipe with the attributes used by hard filters and scoring."""
    __tablename__ = "recipes"
    __table_args__ = (
        Index("ix_recipes_status", "status"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    title_zh: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    cook_type: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True, default=list)
    equipment: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True, default=list)
    cookware_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=1)

    time_prep_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    time_cook_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    time_total_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    servings: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=2)
    difficulty: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, default="easy")

    # 0-3 scales
    oil_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=1)
    spice_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=0)

    kid_friendly: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tags: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True, default=list)
    cuisine: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    hero_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # draft | published | archived
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    steps: Mapped[list["RecipeStep"]] = relationship(
        "RecipeStep", back_populates="recipe", cascade="all, delete-orphan",
        order_by="RecipeStep.step_order"
    )
    ingredients: Mapped[list["RecipeIngredient"]] = relationship(
        "RecipeIngredient", back_populates="recipe", cascade="all, delete-orphan",
        order_by="RecipeIngredient.sort_order"
    )
    nutrition: Mapped[Optional["NutritionSnapshot"]] = relationship(
        "NutritionSnapshot", back_populates="recipe", uselist=False,
        cascade="all, delete-orphan"
    )


class RecipeStep(Base):
    """One timeline step. ``timer_sec`` of 0/None means no countdown."""
    __tablename__ = "recipe_steps"
    __table_args__ = (
        Index("ix_recipe_steps_recipe_id_order", "recipe_id", "step_order"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )

    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    instruction: Mapped[str] = mapped_column(Text, nullable=False)
    instruction_zh: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_sec: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    timer_sec: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    equipment: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    concurrent_group: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    cleanup_hint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    temperature_f: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    doneness_cue: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    icon_keys: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True, default=list)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="steps")


class RecipeIngredient(Base):
    """Structured ingredient for a recipe."""
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        Index("ix_recipe_ingredients_recipe_id", "recipe_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    name_zh: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    qty: Mapped[Optional[float]] = mapped_column(Numeric, nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_optional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    substitutes: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True, default=list)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="ingredients")


class NutritionSnapshot(Base):
    __tablename__ = "nutrition_snapshots"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    calories_kcal: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    protein_g: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    fat_g: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    carbs_g: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    fiber_g: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sodium_mg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    retention_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    confidence_pct: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=80)
    # usda | manual | estimated | mock
    source: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="nutrition")


class PantryItem(Base):
    """Pantry item for inventory management."""
    __tablename__ = "pantry_items"
    __table_args__ = (
        Index("ix_pantry_items_household_id", "household_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    household_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    qty_est_lower: Mapped[Optional[float]] = mapped_column(Numeric, nullable=True)
    qty_est_upper: Mapped[Optional[float]] = mapped_column(Numeric, nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    expire_on: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    # manual | voice | ocr
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="manual")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Leftover(Base):
    """Cooked, not-yet-eaten dish tracked with a safety expiry."""
    __tablename__ = "leftovers"
    __table_args__ = (
        Index("ix_leftovers_household_active", "household_id", postgresql_where=text("is_consumed = false")),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    household_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    recipe_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    servings: Mapped[Optional[float]] = mapped_column(Numeric, nullable=True)
    safe_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Substitution(Base):
    """Substitution library entry: original -> substitute at a risk level."""
    __tablename__ = "substitutions"
    __table_args__ = (
        Index("ix_substitutions_original", "original_ingredient"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    original_ingredient: Mapped[str] = mapped_column(String(200), nullable=False)
    substitute_ingredient: Mapped[str] = mapped_column(String(200), nullable=False)
    # allowable | risky | baking_sensitive
    level: Mapped[str] = mapped_column(String(30), nullable=False, default="allowable")
    ratio: Mapped[Optional[float]] = mapped_column(Float, nullable=True, default=1.0)
    delta_timeline_sec: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, default=0)
    delta_nutrition: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class DinnerSuggestion(Base):
    """Log of one Tonight decision (intent, top candidates, leftovers used)."""
    __tablename__ = "dinner_suggestions"
    __table_args__ = (
        Index("ix_dinner_suggestions_household_id", "household_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    household_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("households.id", ondelete="CASCADE"), nullable=False
    )
    input_text: Mapped[str] = mapped_column(Text, nullable=False)
    dsl: Mapped[dict] = mapped_column(JSONB, nullable=False)
    candidates: Mapped[list] = mapped_column(JSONB, nullable=False)
    selected_recipe_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True
    )
    leftovers_used: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    substitutions_applied: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    decision_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
