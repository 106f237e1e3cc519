"""
Pricing calculator - recommended USD resale price for one variant.

Business rules:
1. base = cost (JPY -> USD) + handling
2. gross up by target margin (clamped to 0..0.95), then by payment fees + fixed fee
3. round up to whole cents, then to the rounding grid (.00 / .49 / .99)
4. never below base + fixed fee (safety floor)
5. clamp to the rule's min/max bounds
6. unless overridden, limit the move from the current price to the weekly max

All prices are integer USD cents; breakdown fields are USD for display.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from app.models.pricing import RoundingStrategy

MAX_MARGIN = 0.95
DEFAULT_FEE_RATE = 0.035
DEFAULT_FIXED_FEE_CENTS = 30
DEFAULT_HANDLING_CENTS = 150


class InvalidPricingInput(ValueError):
    """Raised when cost or FX inputs cannot produce a meaningful price."""


@dataclass
class CalcInput:
    current_price_usd_cents: int
    cost_jpy_per_pack: float
    jpy_per_usd: float
    target_gross_margin: float
    min_price_usd_cents: int
    max_price_usd_cents: int
    rounding: RoundingStrategy
    max_weekly_change_pct: float
    fee_rate: Optional[float] = None
    fixed_fee_usd_cents: Optional[int] = None
    handling_usd_cents: Optional[int] = None
    allow_override: bool = False


@dataclass
class PricingBreakdown:
    jpy_per_usd: float
    cost_jpy_per_pack: float
    cost_usd: float
    handling_usd: float
    base_usd: float
    target_margin: float
    fee_rate: float
    fixed_fee_usd: float
    price_before_fees: float
    price_with_fees: float
    rounding: str
    min_safe_floor_usd: float
    clamped_min_max: bool
    weekly_change_clamped: bool
    min_safe_floor_applied: bool
    final_usd: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CalcResult:
    recommended_price_usd_cents: int
    breakdown: PricingBreakdown


def cents_to_usd(cents: float) -> float:
    return cents / 100


def usd_to_cents(usd: float) -> int:
    return int(Decimal(str(usd)).scaleb(2).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_by_strategy(cents: int, strategy: RoundingStrategy) -> int:
    strategy = RoundingStrategy(strategy)
    if strategy is RoundingStrategy.USD_0_00:
        dollars = int(Decimal(cents).scaleb(-2).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        return max(0, dollars * 100)
    if strategy is RoundingStrategy.USD_0_49:
        return max(0, math.ceil((cents - 49) / 100) * 100 + 49)
    return max(0, math.ceil(cents / 100) * 100 - 1)


def round_up_by_strategy(cents: int, strategy: RoundingStrategy) -> int:
    """Like round_by_strategy but never lands below `cents`."""
    rounded = round_by_strategy(cents, strategy)
    while rounded < cents:
        rounded = round_by_strategy(rounded + 100, strategy)
    return rounded


def _resolve_fee_params(data: CalcInput):
    fee_rate = data.fee_rate if data.fee_rate is not None else DEFAULT_FEE_RATE
    fixed_fee = data.fixed_fee_usd_cents if data.fixed_fee_usd_cents is not None else DEFAULT_FIXED_FEE_CENTS
    handling = data.handling_usd_cents if data.handling_usd_cents is not None else DEFAULT_HANDLING_CENTS
    return float(fee_rate), int(fixed_fee), int(handling)


def calc_recommended_price(data: CalcInput) -> CalcResult:
    if not math.isfinite(data.jpy_per_usd) or data.jpy_per_usd <= 0:
        raise InvalidPricingInput(f"Invalid FX rate: {data.jpy_per_usd!r}")
    if not math.isfinite(data.cost_jpy_per_pack) or data.cost_jpy_per_pack <= 0:
        raise InvalidPricingInput(f"Invalid cost: {data.cost_jpy_per_pack!r}")

    fee_rate, fixed_fee_cents, handling_cents = _resolve_fee_params(data)
    if not 0 <= fee_rate < 1:
        raise InvalidPricingInput(f"Invalid fee rate: {fee_rate!r}")
    rounding = RoundingStrategy(data.rounding)

    cost_usd = data.cost_jpy_per_pack / data.jpy_per_usd
    base_cents = usd_to_cents(cost_usd) + handling_cents
    margin = min(MAX_MARGIN, max(0.0, data.target_gross_margin))
    price_before_fees_cents = base_cents / (1 - margin)
    price_with_fees_cents = (price_before_fees_cents + fixed_fee_cents) / (1 - fee_rate)

    candidate = round_by_strategy(math.ceil(price_with_fees_cents), rounding)

    clamped_min_max = False
    weekly_change_clamped = False
    min_safe_floor_applied = False

    min_safe_floor = base_cents + fixed_fee_cents
    if candidate < min_safe_floor:
        candidate = round_up_by_strategy(min_safe_floor, rounding)
        min_safe_floor_applied = True

    if candidate < data.min_price_usd_cents:
        candidate = data.min_price_usd_cents
        clamped_min_max = True
    if candidate > data.max_price_usd_cents:
        candidate = data.max_price_usd_cents
        clamped_min_max = True

    current = data.current_price_usd_cents
    max_pct = data.max_weekly_change_pct
    if not data.allow_override and current > 0 and max_pct > 0:
        if abs(candidate - current) / current > max_pct:
            direction = 1 if candidate >= current else -1
            limited = int(Decimal(str(current * (1 + direction * max_pct))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
            candidate = round_by_strategy(limited, rounding)
            weekly_change_clamped = True

    # The floor outranks bounds and the weekly limit
    if candidate < min_safe_floor:
        candidate = round_up_by_strategy(min_safe_floor, rounding)
        min_safe_floor_applied = True

    breakdown = PricingBreakdown(
        jpy_per_usd=data.jpy_per_usd,
        cost_jpy_per_pack=data.cost_jpy_per_pack,
        cost_usd=cost_usd,
        handling_usd=cents_to_usd(handling_cents),
        base_usd=cents_to_usd(base_cents),
        target_margin=margin,
        fee_rate=fee_rate,
        fixed_fee_usd=cents_to_usd(fixed_fee_cents),
        price_before_fees=cents_to_usd(price_before_fees_cents),
        price_with_fees=cents_to_usd(price_with_fees_cents),
        rounding=rounding.value,
        min_safe_floor_usd=cents_to_usd(min_safe_floor),
        clamped_min_max=clamped_min_max,
        weekly_change_clamped=weekly_change_clamped,
        min_safe_floor_applied=min_safe_floor_applied,
        final_usd=cents_to_usd(candidate),
    )
    return CalcResult(recommended_price_usd_cents=candidate, breakdown=breakdown)
