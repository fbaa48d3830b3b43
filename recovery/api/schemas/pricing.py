"""
Pydantic schemas for the Pricing API.
"""

from pydantic import BaseModel, Field


class EstimateRequest(BaseModel):
    """Inputs for a recovery cost estimate."""

    travel_distance_km: float = Field(ge=0, description="Trip distance in km")
    labour_hours: float = Field(default=2.0, gt=0, le=24, description="Expected search hours")
    item_value: float = Field(default=0, ge=0, description="Declared item value")


class EstimateOut(BaseModel):
    travel_distance_km: float
    travel_cost: float
    labour_hours: float
    labour_cost: float
    equipment_fee: float
    finders_fee_percent: float
    finders_fee: float
    subtotal: float
    total: float
    deposit_amount: float
