"""
Cost Estimator
==============

Prices a recovery job from three inputs:

- Travel distance (km) at ``travel_rate_per_km``
- Labour hours at ``base_rate_per_hour``
- Declared item value, charged a success-contingent finder's fee of
  ``finders_fee_percent`` percent

plus a fixed ``equipment_fee``. The estimate is a pure function of its
arguments: no I/O and no clock, so identical inputs always produce
identical output.

Inputs are validated by the caller (the API schemas enforce non-negative
distance and value, and positive hours).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from recovery.core.config import Settings


@dataclass(frozen=True)
class PricingRates:
    """Configured rate constants applied by ``estimate``."""
    base_rate_per_hour: float = 75.0
    travel_rate_per_km: float = 2.0
    finders_fee_percent: float = 10.0
    equipment_fee: float = 50.0


DEFAULT_RATES = PricingRates()

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class CostEstimate:
    """Priced breakdown returned by ``estimate``."""
    travel_distance_km: float
    travel_cost: float
    labour_hours: float
    labour_cost: float
    equipment_fee: float
    finders_fee_percent: float
    finders_fee: float
    subtotal: float
    total: float


def estimate(
    travel_distance_km: float,
    labour_hours: float,
    item_value: float,
    rates: PricingRates = DEFAULT_RATES,
) -> CostEstimate:
    """Compute a cost estimate.

    Args:
        travel_distance_km: Trip distance in kilometres (>= 0).
        labour_hours: Expected search time in hours (> 0).
        item_value: Declared value of the lost item (>= 0). Zero means no
            finder's fee is charged.
        rates: Rate constants to apply.

    Returns:
        A ``CostEstimate`` with every component and the grand total.
    """
    travel_cost = travel_distance_km * rates.travel_rate_per_km
    labour_cost = labour_hours * rates.base_rate_per_hour
    finders_fee = (
        item_value * rates.finders_fee_percent / 100 if item_value > 0 else 0.0
    )
    subtotal = travel_cost + labour_cost + rates.equipment_fee
    total = subtotal + finders_fee

    return CostEstimate(
        travel_distance_km=travel_distance_km,
        travel_cost=travel_cost,
        labour_hours=labour_hours,
        labour_cost=labour_cost,
        equipment_fee=rates.equipment_fee,
        finders_fee_percent=rates.finders_fee_percent,
        finders_fee=finders_fee,
        subtotal=subtotal,
        total=total,
    )


def rates_from_settings(settings: Settings) -> PricingRates:
    """Build ``PricingRates`` from application settings."""
    return PricingRates(
        base_rate_per_hour=settings.base_rate_per_hour,
        travel_rate_per_km=settings.travel_rate_per_km,
        finders_fee_percent=settings.finders_fee_percent,
        equipment_fee=settings.equipment_fee,
    )


def deposit_for(total: float, deposit_percent: float) -> float:
    """Deposit due at checkout, rounded half-up to the cent."""
    deposit = Decimal(str(total)) * Decimal(str(deposit_percent)) / 100
    return float(deposit.quantize(_CENT, rounding=ROUND_HALF_UP))


def to_cents(amount: float) -> int:
    """Convert a major-unit amount to integer cents, rounding half-up.

    Stored job amounts go through here once, at submission.
    """
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
