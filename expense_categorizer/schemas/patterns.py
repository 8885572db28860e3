"""Schemas for pattern endpoints (/v1/patterns)."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from expense_categorizer.schemas.transactions import TransactionIn
from expense_categorizer.services.confidence import effective_confidence


class PatternCreate(BaseModel):
    """New pattern definition. Type and value are validated by the service layer."""

    category_id: int = Field(alias="categoryId", ge=1)
    pattern_type: str = Field(alias="patternType")
    pattern_value: str = Field(alias="patternValue")
    confidence_weight: float | None = Field(alias="confidenceWeight", default=None)
    user_created: bool = Field(alias="userCreated", default=True)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


class PatternUpdate(BaseModel):
    """Partial update. `active` is the only way to re-activate a retired pattern."""

    pattern_type: str | None = Field(alias="patternType", default=None)
    pattern_value: str | None = Field(alias="patternValue", default=None)
    confidence_weight: float | None = Field(alias="confidenceWeight", default=None)
    active: bool | None = None
    metadata: dict[str, Any] | None = None

    model_config = {"populate_by_name": True}


class PatternOut(BaseModel):
    id: int
    category_id: int = Field(alias="categoryId")
    pattern_type: str = Field(alias="patternType")
    pattern_value: str = Field(alias="patternValue")
    confidence_weight: float = Field(alias="confidenceWeight")
    effective_confidence: float = Field(alias="effectiveConfidence")
    usage_count: int = Field(alias="usageCount", ge=0)
    success_count: int = Field(alias="successCount", ge=0)
    success_rate: float = Field(alias="successRate", ge=0, le=1)
    active: bool
    user_created: bool = Field(alias="userCreated")
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = Field(alias="createdAt", default=None)
    updated_at: datetime | None = Field(alias="updatedAt", default=None)

    model_config = {"populate_by_name": True}

    @classmethod
    def from_pattern(cls, pattern: Any) -> "PatternOut":
        pattern_type = getattr(pattern.pattern_type, "value", pattern.pattern_type)
        return cls(
            id=pattern.id,
            category_id=pattern.category_id,
            pattern_type=pattern_type,
            pattern_value=pattern.pattern_value,
            confidence_weight=pattern.confidence_weight,
            effective_confidence=effective_confidence(pattern),
            usage_count=pattern.usage_count or 0,
            success_count=pattern.success_count or 0,
            success_rate=pattern.success_rate or 0.0,
            active=pattern.active,
            user_created=pattern.user_created,
            metadata=getattr(pattern, "metadata_", None) or {},
            created_at=getattr(pattern, "created_at", None),
            updated_at=getattr(pattern, "updated_at", None),
        )


class PatternListResponse(BaseModel):
    patterns: list[PatternOut]
    count: int


class UsageRequest(BaseModel):
    was_successful: bool = Field(alias="wasSuccessful")

    model_config = {"populate_by_name": True}


class UsageResponse(BaseModel):
    pattern_id: int = Field(alias="patternId")
    usage_count: int = Field(alias="usageCount")
    success_count: int = Field(alias="successCount")
    success_rate: float = Field(alias="successRate")
    active: bool
    deactivated: bool

    model_config = {"populate_by_name": True}


class PatternTestRequest(BaseModel):
    """Check an unsaved pattern definition against a sample transaction."""

    pattern_type: str = Field(alias="patternType")
    pattern_value: str = Field(alias="patternValue")
    transaction: TransactionIn

    model_config = {"populate_by_name": True}


class PatternTestResponse(BaseModel):
    matches: bool
    normalized_value: str = Field(alias="normalizedValue")

    model_config = {"populate_by_name": True}
