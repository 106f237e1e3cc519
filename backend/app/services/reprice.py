"""
Reprice orchestrator - batch preview and apply of recommended variant prices.

Preview is read-only (apart from creating the default pricing rule when none
exists) and idempotent for unchanged inputs. Apply re-runs the preview and
writes one PriceChangeLog per changed variant in a single transaction.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from app.config.defaults_loader import get_pricing_defaults
from app.models import PriceChangeLog, Product, Variant
from app.models.catalog import ProductCategory
from app.models.shipping import ShippingRuleBand
from app.services.pricing_calc import CalcInput, calc_recommended_price
from app.services.pricing_inputs import (
    select_cost_basis_for_variant,
    select_latest_fx_rate,
    select_pricing_rule_for_variant,
)
from app.services.shipping_bands import band_for_pack_type

logger = logging.getLogger(__name__)


@dataclass
class PreviewOptions:
    category: Optional[ProductCategory] = None
    size: Optional[str] = None
    limit: Optional[int] = None
    allow_override: bool = False


@dataclass
class RepriceRow:
    variant_id: str
    slug: str
    category: str
    size: str
    pack_type: str
    current_price_usd_cents: int
    recommended_price_usd_cents: int
    pct_change: float
    breakdown: Dict[str, Any] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return self.current_price_usd_cents != self.recommended_price_usd_cents


@dataclass
class ApplyResult:
    updated_count: int
    preview: List[RepriceRow]


def pct_change(current: int, recommended: int) -> float:
    if not current:
        return 0.0
    return (recommended - current) / current


def handling_for_band(band: ShippingRuleBand) -> int:
    by_band = get_pricing_defaults()["handling_usd_cents_by_band"]
    return int(by_band[ShippingRuleBand(band).value])


def resolve_limit(limit: Optional[int]) -> int:
    defaults = get_pricing_defaults()
    if limit is None:
        limit = defaults["reprice_default_limit"]
    return min(defaults["reprice_max_limit"], max(1, int(limit)))


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _rule_section(rule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "scope": getattr(rule.scope, "value", rule.scope),
        "category": getattr(rule.category, "value", rule.category),
        "size": rule.size,
        "variant_id": rule.variant_id,
        "target_gross_margin": rule.target_gross_margin,
        "min_price_usd_cents": rule.min_price_usd_cents,
        "max_price_usd_cents": rule.max_price_usd_cents,
        "rounding": getattr(rule.rounding, "value", rule.rounding),
        "max_weekly_change_pct": rule.max_weekly_change_pct,
        "updated_at": _isoformat(rule.updated_at),
    }


def _cost_section(selected) -> Dict[str, Any]:
    cost = selected.cost_basis
    return {
        "id": cost.id,
        "supplier_id": cost.supplier_id,
        "cost_jpy_per_pack": cost.cost_jpy_per_pack,
        "source": cost.source,
        "availability": getattr(cost.availability, "value", cost.availability),
        "lead_time_days": cost.lead_time_days,
        "confidence": selected.confidence,
        "captured_at": _isoformat(cost.captured_at),
    }


def _load_variants(db: Session, opts: PreviewOptions) -> List[Variant]:
    query = (
        db.query(Variant)
        .join(Product, Variant.product_id == Product.id)
        .options(joinedload(Variant.product))
        .filter(Variant.active.is_(True), Product.active.is_(True))
    )
    if opts.category:
        query = query.filter(Product.category == ProductCategory(opts.category))
    if opts.size:
        query = query.filter(Product.size == opts.size)
    return query.order_by(Variant.updated_at.desc()).limit(resolve_limit(opts.limit)).all()


def preview_reprice(db: Session, opts: Optional[PreviewOptions] = None) -> List[RepriceRow]:
    """
    Compute recommended prices for the selected variants.

    FX is resolved once for the batch. Missing FX or cost basis propagates as
    an error; nothing is written in that case.
    """
    opts = opts or PreviewOptions()
    started = time.perf_counter()
    fx = select_latest_fx_rate(db)
    fx_section = {"jpy_per_usd": fx.jpy_per_usd, "captured_at": _isoformat(fx.fx_rate.captured_at)}
    defaults = get_pricing_defaults()

    rows: List[RepriceRow] = []
    for variant in _load_variants(db, opts):
        cost = select_cost_basis_for_variant(db, variant.id)
        rule = select_pricing_rule_for_variant(db, variant)
        result = calc_recommended_price(
            CalcInput(
                current_price_usd_cents=variant.price_usd_cents,
                cost_jpy_per_pack=cost.cost_basis.cost_jpy_per_pack,
                jpy_per_usd=fx.jpy_per_usd,
                target_gross_margin=rule.target_gross_margin,
                min_price_usd_cents=rule.min_price_usd_cents,
                max_price_usd_cents=rule.max_price_usd_cents,
                rounding=rule.rounding,
                max_weekly_change_pct=rule.max_weekly_change_pct,
                fee_rate=defaults["fee_rate"],
                fixed_fee_usd_cents=defaults["fixed_fee_usd_cents"],
                handling_usd_cents=handling_for_band(band_for_pack_type(variant.pack_type)),
                allow_override=opts.allow_override,
            )
        )
        product = variant.product
        rows.append(
            RepriceRow(
                variant_id=variant.id,
                slug=variant.slug,
                category=ProductCategory(product.category).value,
                size=product.size,
                pack_type=getattr(variant.pack_type, "value", variant.pack_type),
                current_price_usd_cents=variant.price_usd_cents,
                recommended_price_usd_cents=result.recommended_price_usd_cents,
                pct_change=pct_change(variant.price_usd_cents, result.recommended_price_usd_cents),
                breakdown={
                    "fx": fx_section,
                    "cost": _cost_section(cost),
                    "rule": _rule_section(rule),
                    "calc": result.breakdown.to_dict(),
                },
            )
        )

    logger.info(
        "Reprice preview: %d variants, %d changed in %.3fs",
        len(rows),
        sum(1 for r in rows if r.changed),
        time.perf_counter() - started,
    )
    return rows


def apply_reprice(db: Session, admin_user_id: str, opts: Optional[PreviewOptions] = None) -> ApplyResult:
    rows = preview_reprice(db, opts)
    to_apply = [r for r in rows if r.changed]

    try:
        for row in to_apply:
            db.add(
                PriceChangeLog(
                    variant_id=row.variant_id,
                    old_price_usd_cents=row.current_price_usd_cents,
                    new_price_usd_cents=row.recommended_price_usd_cents,
                    reason_json=row.breakdown,
                    applied_by_admin_id=admin_user_id,
                )
            )
            db.query(Variant).filter(Variant.id == row.variant_id).update(
                {Variant.price_usd_cents: row.recommended_price_usd_cents},
                synchronize_session="fetch",
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Reprice applied by %s: %d of %d variants updated", admin_user_id, len(to_apply), len(rows))
    return ApplyResult(updated_count=len(to_apply), preview=rows)


def summarize_preview(rows: List[RepriceRow]) -> Dict[str, Any]:
    return {
        "count": len(rows),
        "changed": sum(1 for r in rows if r.changed),
        "max_abs_pct_change": max((abs(r.pct_change) for r in rows), default=0.0),
    }
