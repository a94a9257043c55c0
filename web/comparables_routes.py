"""
Comparables Routes - Web API for Saved Comparables

Read and upsert each user's selected comparables per subject property,
plus a stateless valuation endpoint over posted transactions.

Access Control:
- Session resolution happens upstream; the resolved user arrives in
  the X-User-Id header
- Requests without a user are rejected with 401
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.comp_engine import (
    FilterCriteria,
    FilterSortPipeline,
    SelectionState,
    SortKey,
    TransactionNormalizer,
    ValuationCalculator,
    ValuationStrategy,
)
from core.persistence import (
    ComparablesPayload,
    ComparablesRepository,
    PersistedComparablesRecord,
    PersistenceError,
    get_comparables_repository,
)
from utils.config import Config


logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(tags=["comparables"])


def get_repository() -> ComparablesRepository:
    """Repository dependency (overridable in tests)."""
    return get_comparables_repository()


def require_user(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Resolve the calling user.

    Raises:
        HTTPException(401) if no user is attached to the request
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


# =============================================================================
# Request Models
# =============================================================================


class ComparablesWriteRequest(BaseModel):
    """Request body for saving comparables."""
    uprn: Optional[str] = None
    selected_comparable_ids: List[str] = []
    valuation_strategy: Optional[str] = None
    calculated_valuation: Optional[float] = None


class ValuationRequest(BaseModel):
    """Request body for a one-off valuation over posted transactions."""
    transactions: List[dict]
    selected_comparable_ids: List[str] = []
    valuation_strategy: str = ValuationStrategy.AVERAGE.value
    subject_area_sqm: float = 0.0
    subject_street: str = ""
    filters: Optional[dict] = None
    sort: str = SortKey.NEWEST.value


def _parse_strategy_or_400(value: Optional[str]) -> ValuationStrategy:
    if not value:
        return ValuationStrategy.AVERAGE
    strategy = ValuationStrategy.from_string(value)
    if strategy is None:
        raise HTTPException(status_code=400, detail="Invalid valuation strategy")
    return strategy


# =============================================================================
# Saved Comparables
# =============================================================================


@router.get("/api/db/comparables")
async def get_comparables(
    uprn: Optional[str] = Query(None, description="Subject property UPRN"),
    user_id: str = Depends(require_user),
    repo: ComparablesRepository = Depends(get_repository),
):
    """
    Get saved comparables for the subject property.

    Returns the default structure when nothing has been saved yet.
    """
    if not uprn:
        raise HTTPException(status_code=400, detail="UPRN is required")

    record = repo.load(user_id, uprn)
    if record is None:
        return JSONResponse(PersistedComparablesRecord.default_dict(uprn))

    return JSONResponse(record.to_dict())


@router.post("/api/db/comparables")
async def save_comparables(
    body: ComparablesWriteRequest,
    user_id: str = Depends(require_user),
    repo: ComparablesRepository = Depends(get_repository),
):
    """Upsert saved comparables for the subject property."""
    if not body.uprn:
        raise HTTPException(status_code=400, detail="UPRN is required")

    payload = ComparablesPayload(
        selected_ids=tuple(body.selected_comparable_ids),
        strategy=_parse_strategy_or_400(body.valuation_strategy),
        cached_valuation=body.calculated_valuation,
    )

    try:
        record = repo.save(user_id, body.uprn, payload)
    except PersistenceError:
        logger.exception("Error saving comparables data for %s", body.uprn)
        raise HTTPException(status_code=500, detail="Failed to save comparables data")

    return JSONResponse(record.to_dict())


# =============================================================================
# Stateless Valuation
# =============================================================================


@router.post("/api/comparables/valuation")
async def value_comparables(body: ValuationRequest):
    """
    Normalize, filter and value posted transactions.

    Returns the filtered comparables, the valuation and its basis count.
    """
    strategy = _parse_strategy_or_400(body.valuation_strategy)

    try:
        criteria = FilterCriteria.from_dict(body.filters)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    sort_key = SortKey.from_string(body.sort)
    if sort_key is None:
        raise HTTPException(status_code=400, detail=f"Unknown sort order: {body.sort}")

    transactions = TransactionNormalizer().normalize(body.transactions)
    pipeline = FilterSortPipeline(
        subject_street=body.subject_street,
        tz_name=Config.load().reference_timezone,
    )
    filtered = pipeline.apply(transactions, criteria, sort_key)

    selection = SelectionState(
        selected_ids=tuple(dict.fromkeys(body.selected_comparable_ids)),
        strategy=strategy,
    )
    valuation = ValuationCalculator().compute(selection, transactions, body.subject_area_sqm)

    return JSONResponse({
        "transactions": [t.to_dict() for t in filtered],
        "normalized_count": len(transactions),
        "duplicates_removed": transactions.duplicates_removed,
        "valuation": valuation.to_dict(),
    })
