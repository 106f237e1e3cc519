"""
Pricing inputs - selects the FX rate, pricing rule and cost basis used to
reprice a variant.

Business rules:
1. FX: latest JPYUSD rate; missing or non-positive stops the reprice
2. Rule precedence: variant > size (case-insensitive) > category > global,
   newest update wins within a scope; a safe global default is created if
   nothing is configured
3. Cost basis: among recent non-backorder records prefer the cheapest, then
   supplier offers, then the newest (confidence "high"); otherwise fall back
   to the latest record of any age (confidence "low")
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.config.defaults_loader import get_pricing_defaults
from app.models import CostBasis, FxRate, PricingRule
from app.models.pricing import CostSource, PricingScope, RoundingStrategy
from app.models.supplier import Availability

logger = logging.getLogger(__name__)

FX_PAIR = "JPYUSD"
COST_BASIS_SCAN_LIMIT = 200


class MissingFxRateError(ValueError):
    """Raised when no usable JPYUSD rate has been captured."""


class MissingCostBasisError(ValueError):
    """Raised when a variant has no cost history at all."""


@dataclass
class SelectedFx:
    jpy_per_usd: float
    fx_rate: FxRate


@dataclass
class SelectedCost:
    cost_basis: CostBasis
    confidence: str  # "high" | "low"


def select_latest_fx_rate(db: Session) -> SelectedFx:
    fx = (
        db.query(FxRate)
        .filter(FxRate.pair == FX_PAIR)
        .order_by(FxRate.captured_at.desc())
        .first()
    )
    if fx is None:
        raise MissingFxRateError(f"FX rate not set ({FX_PAIR}). Record one via POST /api/pricing/fx.")
    if fx.rate is None or not math.isfinite(fx.rate) or fx.rate <= 0:
        raise MissingFxRateError(f"Invalid FX rate: {fx.rate!r}")
    return SelectedFx(jpy_per_usd=float(fx.rate), fx_rate=fx)


def create_default_rule(db: Session) -> PricingRule:
    defaults = get_pricing_defaults()["default_rule"]
    rule = PricingRule(
        scope=PricingScope.GLOBAL.value,
        target_gross_margin=defaults["target_gross_margin"],
        min_price_usd_cents=defaults["min_price_usd_cents"],
        max_price_usd_cents=defaults["max_price_usd_cents"],
        rounding=RoundingStrategy(defaults["rounding"]),
        max_weekly_change_pct=defaults["max_weekly_change_pct"],
    )
    db.add(rule)
    db.flush()
    logger.info("No pricing rule configured; created default global rule %s", rule.id)
    return rule


def select_pricing_rule_for_variant(db: Session, variant) -> PricingRule:
    """Most specific rule for a Variant row (with its product loaded)."""
    product = variant.product
    rules = db.query(PricingRule).order_by(PricingRule.updated_at.desc()).all()

    def first(predicate):
        return next((r for r in rules if predicate(r)), None)

    rule = (
        first(lambda r: PricingScope(r.scope) is PricingScope.VARIANT and r.variant_id == variant.id)
        or first(
            lambda r: PricingScope(r.scope) is PricingScope.SIZE
            and r.size is not None
            and r.size.upper() == product.size.upper()
        )
        or first(lambda r: PricingScope(r.scope) is PricingScope.CATEGORY and r.category == product.category)
        or first(lambda r: PricingScope(r.scope) is PricingScope.GLOBAL)
    )
    if rule is not None:
        return rule
    return create_default_rule(db)


def _is_acceptable_availability(availability) -> bool:
    return availability is None or Availability(availability) is not Availability.BACKORDER


def choose_cost_basis(records: Iterable[CostBasis], since: datetime) -> Optional[CostBasis]:
    """Pick the preferred recent record, or None when nothing recent is usable."""
    recent = [
        r for r in records
        if r.captured_at >= since and _is_acceptable_availability(r.availability)
    ]
    if not recent:
        return None

    # Stable passes: newest, then supplier offers, then cheapest on top
    recent.sort(key=lambda r: r.captured_at, reverse=True)
    recent.sort(key=lambda r: 0 if r.source == CostSource.SUPPLIER_OFFER.value else 1)
    recent.sort(key=lambda r: r.cost_jpy_per_pack)
    return recent[0]


def select_cost_basis_for_variant(
    db: Session,
    variant_id: str,
    lookback_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> SelectedCost:
    if lookback_days is None:
        lookback_days = get_pricing_defaults()["cost_basis_lookback_days"]
    now = now or datetime.utcnow()
    since = now - timedelta(days=lookback_days)

    recent = (
        db.query(CostBasis)
        .filter(CostBasis.variant_id == variant_id, CostBasis.captured_at >= since)
        .order_by(CostBasis.captured_at.desc())
        .limit(COST_BASIS_SCAN_LIMIT)
        .all()
    )
    chosen = choose_cost_basis(recent, since)
    if chosen is not None:
        return SelectedCost(cost_basis=chosen, confidence="high")

    latest = (
        db.query(CostBasis)
        .filter(CostBasis.variant_id == variant_id)
        .order_by(CostBasis.captured_at.desc())
        .first()
    )
    if latest is None:
        raise MissingCostBasisError(f"No cost basis for variant {variant_id}")
    logger.warning("Variant %s priced from stale cost basis captured %s", variant_id, latest.captured_at)
    return SelectedCost(cost_basis=latest, confidence="low")
