"""Pattern management endpoints.

GET   /v1/patterns              - List patterns (filters: categoryId, patternType, active)
POST  /v1/patterns              - Create a pattern
POST  /v1/patterns/test         - Check an unsaved pattern against a sample transaction
GET   /v1/patterns/{id}         - Get one pattern
PATCH /v1/patterns/{id}         - Edit definition / weight / metadata, or (re)activate
POST  /v1/patterns/{id}/usage   - Record one match outcome

Routers are thin: validation, counters and deactivation live in services.
"""

import logging

from fastapi import APIRouter, Path, Query

from expense_categorizer.schemas import api_error
from expense_categorizer.schemas.patterns import (
    PatternCreate,
    PatternListResponse,
    PatternOut,
    PatternTestRequest,
    PatternTestResponse,
    PatternUpdate,
    UsageRequest,
    UsageResponse,
)
from expense_categorizer.services.categorization import invalidate_pattern_cache
from expense_categorizer.services.errors import DuplicatePatternError, PatternFormatError
from expense_categorizer.services.pattern_lifecycle import (
    create_pattern,
    record_usage,
    set_active,
    update_pattern,
)
from expense_categorizer.services.pattern_matcher import PatternRule, PatternType, matches, validate_pattern_value
from expense_categorizer.stores.patterns import PatternRepository
from expense_categorizer.stores.postgres import get_session

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def _invalid_pattern(e: PatternFormatError):
    return api_error(
        422,
        "INVALID_PATTERN",
        f"{e.field} {e.reason}",
        {"field": e.field, "reason": e.reason},
    )


def _pattern_not_found(pattern_id: int):
    return api_error(404, "PATTERN_NOT_FOUND", f"Pattern {pattern_id} not found", {"pattern_id": pattern_id})


@router.get("", response_model=PatternListResponse)
async def list_patterns(
    category_id: int | None = Query(default=None, alias="categoryId", ge=1),
    pattern_type: PatternType | None = Query(default=None, alias="patternType"),
    active: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> PatternListResponse:
    async with get_session() as session:
        store = PatternRepository(session)
        patterns = await store.list_patterns(
            category_id=category_id,
            pattern_type=pattern_type,
            active=active,
            limit=limit,
            offset=offset,
        )
        items = [PatternOut.from_pattern(p) for p in patterns]
    return PatternListResponse(patterns=items, count=len(items))


@router.post("", response_model=PatternOut, status_code=201)
async def create(request: PatternCreate) -> PatternOut:
    """Create a pattern.

    Raises:
        HTTPException 404: Category does not exist.
        HTTPException 409: Same (category, type, value) already exists.
        HTTPException 422: Malformed pattern value / type / weight.
    """
    async with get_session() as session:
        store = PatternRepository(session)
        if not await store.category_exists(request.category_id):
            raise api_error(
                404,
                "CATEGORY_NOT_FOUND",
                f"Category {request.category_id} not found",
                {"category_id": request.category_id},
            )
        try:
            pattern = await create_pattern(
                store,
                category_id=request.category_id,
                pattern_type=request.pattern_type,
                pattern_value=request.pattern_value,
                confidence_weight=request.confidence_weight,
                user_created=request.user_created,
                metadata=request.metadata,
            )
        except PatternFormatError as e:
            raise _invalid_pattern(e)
        except DuplicatePatternError as e:
            raise api_error(409, "DUPLICATE_PATTERN", str(e))
        out = PatternOut.from_pattern(pattern)

    await invalidate_pattern_cache()
    return out


@router.post("/test", response_model=PatternTestResponse)
async def test_pattern(request: PatternTestRequest) -> PatternTestResponse:
    """Validate a definition and report whether it matches the sample transaction."""
    try:
        value = validate_pattern_value(request.pattern_type, request.pattern_value)
    except PatternFormatError as e:
        raise _invalid_pattern(e)

    rule = PatternRule(pattern_type=PatternType(request.pattern_type), pattern_value=value)
    return PatternTestResponse(matches=matches(rule, request.transaction), normalized_value=value)


@router.get("/{pattern_id}", response_model=PatternOut)
async def get_pattern(pattern_id: int = Path(..., ge=1)) -> PatternOut:
    async with get_session() as session:
        pattern = await PatternRepository(session).get(pattern_id)
        if pattern is None:
            raise _pattern_not_found(pattern_id)
        return PatternOut.from_pattern(pattern)


@router.patch("/{pattern_id}", response_model=PatternOut)
async def patch_pattern(request: PatternUpdate, pattern_id: int = Path(..., ge=1)) -> PatternOut:
    async with get_session() as session:
        store = PatternRepository(session)
        try:
            pattern = await update_pattern(
                store,
                pattern_id,
                pattern_type=request.pattern_type,
                pattern_value=request.pattern_value,
                confidence_weight=request.confidence_weight,
                metadata=request.metadata,
            )
        except PatternFormatError as e:
            raise _invalid_pattern(e)
        except DuplicatePatternError as e:
            raise api_error(409, "DUPLICATE_PATTERN", str(e))
        if pattern is None:
            raise _pattern_not_found(pattern_id)

        if request.active is not None and request.active != pattern.active:
            pattern = await set_active(store, pattern_id, request.active)
        out = PatternOut.from_pattern(pattern)

    await invalidate_pattern_cache()
    return out


@router.post("/{pattern_id}/usage", response_model=UsageResponse)
async def post_usage(request: UsageRequest, pattern_id: int = Path(..., ge=1)) -> UsageResponse:
    """Record whether a pattern's match was correct; may retire the pattern."""
    async with get_session() as session:
        outcome = await record_usage(PatternRepository(session), pattern_id, request.was_successful)
    if outcome is None:
        raise _pattern_not_found(pattern_id)

    await invalidate_pattern_cache()

    return UsageResponse(
        pattern_id=outcome.pattern_id,
        usage_count=outcome.usage_count,
        success_count=outcome.success_count,
        success_rate=outcome.success_rate,
        active=outcome.active,
        deactivated=outcome.deactivated,
    )
