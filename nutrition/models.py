"""
Pydantic data models for food photo analysis.
"""
from __future__ import annotations
from enum import Enum
from typing import List, Optional, Dict, Any, Union
from pydantic import BaseModel, ConfigDict, Field


# Whole numbers stay ints so cards read "95 cal", not "95.0 cal".
Number = Union[int, float]


# ── Food Item (single detected item) ───────────────────────────────────

class FoodItem(BaseModel):
    """A single food item detected in the photo."""
    name: str
    calories: Number = 0
    protein: Number = 0
    carbs: Number = 0
    fat: Number = 0


# ── Analysis Result (output of the vision model) ───────────────────────

class AnalysisResult(BaseModel):
    """
    Structured output of a vision analysis.

    Totals are taken as the model stated them and are not reconciled
    with the per-item values.
    """
    model_config = ConfigDict(populate_by_name=True)

    contains_food: bool = Field(False, alias="containsFood")
    items: List[FoodItem] = Field(default_factory=list)
    total_calories: Number = Field(0, alias="totalCalories")
    total_protein: Number = Field(0, alias="totalProtein")
    total_carbs: Number = Field(0, alias="totalCarbs")
    total_fat: Number = Field(0, alias="totalFat")
    healthier_alternatives: Optional[str] = Field(None, alias="healthierAlternatives")
    error: Optional[str] = None          # Set when analysis failed outright
    message: Optional[str] = None        # Human-readable detail for `error`

    @classmethod
    def no_food(cls) -> "AnalysisResult":
        return cls(containsFood=False)

    @classmethod
    def failed(cls, error: str, message: Optional[str] = None) -> "AnalysisResult":
        return cls(containsFood=False, error=error, message=message)

    def to_wire(self) -> Dict[str, Any]:
        """camelCase dict as exchanged with the model and API clients."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ParsedAnalysis(BaseModel):
    """
    Tagged outcome of parsing model output.

    ok=False always carries a no-food result so callers can render it
    without a separate failure branch.
    """
    ok: bool
    result: AnalysisResult
    reason: Optional[str] = None


# ── Request / Orchestration ────────────────────────────────────────────

class AnalysisRequest(BaseModel):
    """Identifies one image to analyze; lives for a single orchestration pass."""
    content_id: str
    user_id: Optional[str] = None
    reply_token: Optional[str] = None
    image: Optional[bytes] = None


class PipelineState(str, Enum):
    RECEIVED = "RECEIVED"
    FETCHING = "FETCHING"
    ANALYZING = "ANALYZING"
    RENDERING = "RENDERING"
    DISPATCHING = "DISPATCHING"
    DONE = "DONE"
    FAILED = "FAILED"


class OrchestrationOutcome(BaseModel):
    """Where a pipeline run ended and what it produced."""
    state: PipelineState
    failed_stage: Optional[PipelineState] = None
    result: Optional[AnalysisResult] = None
