"""Schemas for categorization endpoints (/v1/categorize)."""

from typing import Any

from pydantic import BaseModel, Field

from expense_categorizer.schemas.transactions import TransactionIn


class CategoryScoreOut(BaseModel):
    category_id: int = Field(alias="categoryId")
    score: float
    pattern_ids: list[int] = Field(alias="patternIds", default_factory=list)

    model_config = {"populate_by_name": True}


class CategorizeResponse(BaseModel):
    """Best category for a transaction, or method="no_match"."""

    category_id: int | None = Field(alias="categoryId", default=None)
    confidence: float = Field(ge=0, le=1)
    method: str
    matched_pattern_ids: list[int] = Field(alias="matchedPatternIds", default_factory=list)
    alternatives: list[CategoryScoreOut] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class FeedbackRequest(BaseModel):
    """Which patterns fired and what the right category turned out to be.

    correctCategoryId=null rejects the categorization outright. When the correct
    category differs from predictedCategoryId and the transaction is included,
    merchant and description patterns are learned from it.
    """

    pattern_ids: list[int] = Field(alias="patternIds", min_length=1, max_length=100)
    correct_category_id: int | None = Field(alias="correctCategoryId", default=None)
    predicted_category_id: int | None = Field(alias="predictedCategoryId", default=None)
    transaction: TransactionIn | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class FeedbackOutcomeOut(BaseModel):
    pattern_id: int = Field(alias="patternId")
    was_correct: bool = Field(alias="wasCorrect")
    usage_count: int = Field(alias="usageCount")
    success_rate: float = Field(alias="successRate")
    active: bool
    deactivated: bool

    model_config = {"populate_by_name": True}


class FeedbackResponse(BaseModel):
    outcomes: list[FeedbackOutcomeOut]
    deactivated_pattern_ids: list[int] = Field(alias="deactivatedPatternIds", default_factory=list)
    learned_pattern_ids: list[int] = Field(alias="learnedPatternIds", default_factory=list)

    model_config = {"populate_by_name": True}
