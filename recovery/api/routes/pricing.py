"""
Pricing API Routes
==================

  POST /pricing/estimate  -- Price a recovery before submitting a report
"""

from __future__ import annotations

from fastapi import APIRouter

from recovery.api.deps import Rates
from recovery.api.schemas.pricing import EstimateOut, EstimateRequest
from recovery.core.config import settings
from recovery.services.costEstimator import deposit_for, estimate

router = APIRouter(prefix="/pricing", tags=["Pricing"])


@router.post(
    "/estimate",
    response_model=EstimateOut,
    summary="Estimate recovery cost",
    description=(
        "Returns the travel, labour, equipment and finder's-fee breakdown "
        "and the deposit due at checkout. Deterministic for identical inputs."
    ),
)
async def estimate_cost(body: EstimateRequest, rates: Rates) -> EstimateOut:
    quote = estimate(body.travel_distance_km, body.labour_hours, body.item_value, rates)
    return EstimateOut(
        travel_distance_km=quote.travel_distance_km,
        travel_cost=quote.travel_cost,
        labour_hours=quote.labour_hours,
        labour_cost=quote.labour_cost,
        equipment_fee=quote.equipment_fee,
        finders_fee_percent=quote.finders_fee_percent,
        finders_fee=quote.finders_fee,
        subtotal=quote.subtotal,
        total=quote.total,
        deposit_amount=deposit_for(quote.total, settings.deposit_percent),
    )
