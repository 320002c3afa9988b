from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Impact(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FreshnessBand(StrEnum):
    NONE = "none"
    FRESH = "fresh"
    RECENT = "recent"
    STALE = "stale"
    EXPIRED = "expired"


class SchedulerState(StrEnum):
    IDLE = "idle"
    ELIGIBLE = "eligible"
    RUNNING = "running"
    CACHED = "cached"


def _coerce_level(value: Any, allowed: set[str], default: str) -> str:
    s = str(value or "").strip().lower()
    if s == "moderate":
        s = "medium"
    return s if s in allowed else default


class _InsightModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SavingsOpportunity(_InsightModel):
    title: str
    description: str = ""
    why_it_saves: str | None = None
    steps: list[str] = Field(default_factory=list)
    potential_savings: float = 0.0
    difficulty: Difficulty = Difficulty.MEDIUM
    impact: Impact = Impact.MEDIUM
    category: str | None = None

    @field_validator("difficulty", mode="before")
    @classmethod
    def coerce_difficulty(cls, value: Any) -> str:
        return _coerce_level(value, {d.value for d in Difficulty}, Difficulty.MEDIUM.value)

    @field_validator("impact", mode="before")
    @classmethod
    def coerce_impact(cls, value: Any) -> str:
        return _coerce_level(value, {i.value for i in Impact}, Impact.MEDIUM.value)


class CategoryInsight(_InsightModel):
    category: str
    total_spent: float = 0.0
    transaction_count: int = 0
    percentage_of_total: float = 0.0
    key_insights: list[str] = Field(default_factory=list)
    optimization_strategies: list[str] = Field(default_factory=list)
    potential_monthly_savings: float = 0.0


class SpendingPattern(_InsightModel):
    pattern: str
    description: str = ""
    frequency: str | None = None
    severity: str = "info"
    financial_impact: float = 0.0
    recommendations: list[str] = Field(default_factory=list)


class ActionItem(_InsightModel):
    title: str
    description: str = ""
    difficulty: Difficulty = Difficulty.MEDIUM
    potential_monthly_savings: float = 0.0

    @field_validator("difficulty", mode="before")
    @classmethod
    def coerce_difficulty(cls, value: Any) -> str:
        return _coerce_level(value, {d.value for d in Difficulty}, Difficulty.MEDIUM.value)


class InsightsSnapshot(_InsightModel):
    generated_at: datetime
    expense_count: int
    total_potential_savings: float = 0.0
    spending_efficiency_score: float | None = Field(default=None, ge=0, le=100)
    top_category: str | None = None
    savings_opportunities: list[SavingsOpportunity] = Field(default_factory=list)
    category_insights: list[CategoryInsight] = Field(default_factory=list)
    spending_patterns: list[SpendingPattern] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)


class InsightsOut(BaseModel):
    state: SchedulerState
    freshness: FreshnessBand
    next_refresh: str
    snapshot: InsightsSnapshot | None = None
