"""Categorization endpoints.

POST /v1/categorize           - Best category for a transaction
POST /v1/categorize/feedback  - Report which category was right; updates pattern counters
                                and learns patterns from corrected transactions
"""

import logging

from fastapi import APIRouter

from expense_categorizer.schemas import TransactionIn, api_error
from expense_categorizer.schemas.categorize import (
    CategorizeResponse,
    CategoryScoreOut,
    FeedbackOutcomeOut,
    FeedbackRequest,
    FeedbackResponse,
)
from expense_categorizer.services.categorization import (
    apply_feedback,
    categorize,
    invalidate_pattern_cache,
    load_active_patterns,
)
from expense_categorizer.services.pattern_learning import learn_from_correction
from expense_categorizer.stores.patterns import PatternRepository
from expense_categorizer.stores.postgres import get_session

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


@router.post("", response_model=CategorizeResponse)
async def categorize_transaction(transaction: TransactionIn) -> CategorizeResponse:
    async with get_session() as session:
        patterns = await load_active_patterns(PatternRepository(session))

    result = categorize(transaction, patterns)
    logger.debug(
        f"[categorize] merchant={transaction.merchant_name!r} -> category={result.category_id} "
        f"confidence={result.confidence:.2f} patterns={result.matched_pattern_ids}"
    )
    return CategorizeResponse(
        category_id=result.category_id,
        confidence=result.confidence,
        method=result.method,
        matched_pattern_ids=result.matched_pattern_ids,
        alternatives=[
            CategoryScoreOut(category_id=a.category_id, score=a.score, pattern_ids=a.pattern_ids)
            for a in result.alternatives
        ],
        reasons=result.reasons,
    )


@router.post("/feedback", response_model=FeedbackResponse)
async def post_feedback(request: FeedbackRequest) -> FeedbackResponse:
    """Record feedback for the patterns that fired, then learn from a correction.

    Raises:
        HTTPException 404: correctCategoryId does not exist (only checked when learning).
    """
    learn = (
        request.transaction is not None
        and request.correct_category_id is not None
        and request.correct_category_id != request.predicted_category_id
    )

    async with get_session() as session:
        store = PatternRepository(session)
        if learn and not await store.category_exists(request.correct_category_id):
            raise api_error(
                404,
                "CATEGORY_NOT_FOUND",
                f"Category {request.correct_category_id} not found",
                {"category_id": request.correct_category_id},
            )
        outcomes = await apply_feedback(
            store,
            store,
            request.pattern_ids,
            request.correct_category_id,
            context=request.context,
        )
        learned_ids: list[int] = []
        if learn:
            learned = await learn_from_correction(
                store,
                request.transaction,
                request.correct_category_id,
                predicted_category_id=request.predicted_category_id,
            )
            learned_ids = learned.pattern_ids

    # Runs after commit. Cached snapshots carry usage counters.
    if outcomes or learned_ids:
        await invalidate_pattern_cache()

    return FeedbackResponse(
        outcomes=[
            FeedbackOutcomeOut(
                pattern_id=o.pattern_id,
                was_correct=o.was_correct,
                usage_count=o.usage.usage_count,
                success_rate=o.usage.success_rate,
                active=o.usage.active,
                deactivated=o.usage.deactivated,
            )
            for o in outcomes
        ],
        deactivated_pattern_ids=[o.pattern_id for o in outcomes if o.usage.deactivated],
        learned_pattern_ids=learned_ids,
    )
