"""Merchant alias endpoints.

POST /v1/merchants/resolve                - Raw merchant string -> alias / canonical merchant
POST /v1/merchants/aliases                - Record an alias for a known canonical merchant
GET  /v1/merchants/aliases/{id}           - Get one alias
POST /v1/merchants/aliases/{id}/merge     - Fold another alias of the same merchant into this one
"""

import logging

from fastapi import APIRouter, Path

from expense_categorizer.schemas import api_error
from expense_categorizer.schemas.merchants import (
    AliasCreate,
    AliasOut,
    CanonicalMerchantOut,
    MergeRequest,
    MergeResponse,
    ResolveRequest,
    ResolveResponse,
)
from expense_categorizer.services.merchant_aliases import (
    find_or_create_canonical,
    lookup_alias,
    merge_aliases,
    record_alias,
)
from expense_categorizer.stores.aliases import AliasRepository
from expense_categorizer.stores.postgres import get_session

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def _alias_not_found(alias_id: int):
    return api_error(404, "ALIAS_NOT_FOUND", f"Alias {alias_id} not found", {"alias_id": alias_id})


@router.post("/resolve", response_model=ResolveResponse)
async def resolve(request: ResolveRequest) -> ResolveResponse:
    """Find the alias for a raw merchant string (exact, normalized, fuzzy).

    With create=true the string is recorded, creating a canonical merchant if needed.
    """
    async with get_session() as session:
        store = AliasRepository(session)

        if request.create:
            resolution = await find_or_create_canonical(store, request.raw_name)
            if resolution is None:
                return ResolveResponse(matched=False)
            return ResolveResponse(
                matched=True,
                method=resolution.method,
                score=resolution.score,
                alias=AliasOut.from_alias(resolution.alias) if resolution.alias is not None else None,
                canonical_merchant=CanonicalMerchantOut.from_merchant(resolution.canonical_merchant),
            )

        found = await lookup_alias(store, request.raw_name)
        if found is None:
            return ResolveResponse(matched=False)

        alias, method, score = found
        merchant = await store.get_canonical(alias.canonical_merchant_id)
        return ResolveResponse(
            matched=True,
            method=method,
            score=score,
            alias=AliasOut.from_alias(alias),
            canonical_merchant=CanonicalMerchantOut.from_merchant(merchant) if merchant is not None else None,
        )


@router.post("/aliases", response_model=AliasOut, status_code=201)
async def create_alias(request: AliasCreate) -> AliasOut:
    """Record (or re-observe) an alias for an existing canonical merchant."""
    if not request.raw_name.strip():
        raise api_error(422, "INVALID_ALIAS", "rawName can't be blank", {"field": "rawName"})

    async with get_session() as session:
        store = AliasRepository(session)
        merchant = await store.get_canonical(request.canonical_merchant_id)
        if merchant is None:
            raise api_error(
                404,
                "MERCHANT_NOT_FOUND",
                f"Canonical merchant {request.canonical_merchant_id} not found",
                {"canonical_merchant_id": request.canonical_merchant_id},
            )
        alias = await record_alias(store, request.raw_name, merchant, request.confidence)
        if alias is None:
            raise api_error(409, "ALIAS_CONFLICT", "Alias could not be recorded, retry the request")
        return AliasOut.from_alias(alias)


@router.get("/aliases/{alias_id}", response_model=AliasOut)
async def get_alias(alias_id: int = Path(..., ge=1)) -> AliasOut:
    async with get_session() as session:
        alias = await AliasRepository(session).get_alias(alias_id)
        if alias is None:
            raise _alias_not_found(alias_id)
        return AliasOut.from_alias(alias)


@router.post("/aliases/{alias_id}/merge", response_model=MergeResponse)
async def merge(request: MergeRequest, alias_id: int = Path(..., ge=1)) -> MergeResponse:
    """Merge `otherAliasId` into this alias. Aliases of different merchants are left untouched."""
    async with get_session() as session:
        store = AliasRepository(session)
        alias = await store.get_alias(alias_id)
        if alias is None:
            raise _alias_not_found(alias_id)
        other = await store.get_alias(request.other_alias_id)
        if other is None:
            raise _alias_not_found(request.other_alias_id)

        mergeable = alias.id != other.id and alias.canonical_merchant_id == other.canonical_merchant_id
        result = await merge_aliases(store, alias, other)
        merged = mergeable and await store.get_alias(request.other_alias_id) is None
        return MergeResponse(merged=merged, alias=AliasOut.from_alias(result))
