"""Schemas for merchant alias endpoints (/v1/merchants)."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from expense_categorizer.services.merchant_aliases import is_high_confidence, is_trustworthy


class AliasOut(BaseModel):
    id: int
    raw_name: str = Field(alias="rawName")
    normalized_name: str | None = Field(alias="normalizedName", default=None)
    canonical_merchant_id: int = Field(alias="canonicalMerchantId")
    confidence: float = Field(ge=0, le=1)
    match_count: int = Field(alias="matchCount", ge=0)
    last_seen_at: datetime | None = Field(alias="lastSeenAt", default=None)
    high_confidence: bool = Field(alias="highConfidence")
    trustworthy: bool

    model_config = {"populate_by_name": True}

    @classmethod
    def from_alias(cls, alias: Any) -> "AliasOut":
        return cls(
            id=alias.id,
            raw_name=alias.raw_name,
            normalized_name=alias.normalized_name,
            canonical_merchant_id=alias.canonical_merchant_id,
            confidence=alias.confidence,
            match_count=alias.match_count or 0,
            last_seen_at=alias.last_seen_at,
            high_confidence=is_high_confidence(alias),
            trustworthy=is_trustworthy(alias),
        )


class CanonicalMerchantOut(BaseModel):
    id: int
    name: str
    display_name: str | None = Field(alias="displayName", default=None)
    category_hint: str | None = Field(alias="categoryHint", default=None)
    usage_count: int = Field(alias="usageCount", ge=0)

    model_config = {"populate_by_name": True}

    @classmethod
    def from_merchant(cls, merchant: Any) -> "CanonicalMerchantOut":
        return cls(
            id=merchant.id,
            name=merchant.name,
            display_name=merchant.display_name,
            category_hint=merchant.category_hint,
            usage_count=merchant.usage_count or 0,
        )


class ResolveRequest(BaseModel):
    """Resolve a raw merchant string. With create=true an unknown merchant is registered."""

    raw_name: str = Field(alias="rawName", max_length=255)
    create: bool = False

    model_config = {"populate_by_name": True}


class ResolveResponse(BaseModel):
    matched: bool
    method: str | None = None
    score: float | None = None
    alias: AliasOut | None = None
    canonical_merchant: CanonicalMerchantOut | None = Field(alias="canonicalMerchant", default=None)

    model_config = {"populate_by_name": True}


class AliasCreate(BaseModel):
    raw_name: str = Field(alias="rawName", min_length=1, max_length=255)
    canonical_merchant_id: int = Field(alias="canonicalMerchantId", ge=1)
    confidence: float | None = Field(default=None, ge=0, le=1)

    model_config = {"populate_by_name": True}


class MergeRequest(BaseModel):
    other_alias_id: int = Field(alias="otherAliasId", ge=1)

    model_config = {"populate_by_name": True}


class MergeResponse(BaseModel):
    """merged=false means nothing changed (same alias or different merchants)."""

    merged: bool
    alias: AliasOut
