"""
Shipping quote service - resolves the destination zone and prices a cart.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from app.config.defaults_loader import get_shipping_defaults
from app.models import CarrierPolicy, Product, ShippingRule, ShippingZone, ShippingZoneCountry, Variant
from app.models.shipping import ShippingRuleBand
from app.services.carrier_selector import CarrierSelection, select_carrier
from app.services.shipping_bands import band_for_pack_type

logger = logging.getLogger(__name__)

FALLBACK_ZONE_ID = "fallback_other"
DEFAULT_WEIGHT_KG_PER_PACK = 0.5


@dataclass
class CartLine:
    variant_slug: str
    quantity: int


@dataclass
class ShippingQuote:
    zone_id: str
    zone_name: str
    subtotal_usd_cents: int
    weight_kg: float
    selection: CarrierSelection
    warning_note: Optional[str] = None
    bands: List[ShippingRuleBand] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {
            "zone": {"id": self.zone_id, "name": self.zone_name},
            "subtotal_usd_cents": self.subtotal_usd_cents,
            "weight_kg": self.weight_kg,
            "warning_note": self.warning_note,
        }
        data.update(self.selection.to_dict())
        return data


def normalize_country_code(code: str) -> str:
    return code.strip().upper()


def resolve_zone(db: Session, country_code: str) -> ShippingZone:
    """Active zone listing the country, else the active fallback zone, else a rule-less placeholder."""
    code = normalize_country_code(country_code)
    fallback_name = get_shipping_defaults()["fallback_zone_name"]

    direct = (
        db.query(ShippingZone)
        .join(ShippingZoneCountry, ShippingZoneCountry.zone_id == ShippingZone.id)
        .filter(ShippingZone.is_active.is_(True), ShippingZoneCountry.code == code)
        .first()
    )
    if direct:
        return direct

    other = (
        db.query(ShippingZone)
        .filter(ShippingZone.is_active.is_(True), ShippingZone.name == fallback_name)
        .first()
    )
    if other:
        return other

    logger.warning("No shipping zone for %s and no active '%s' zone configured", code, fallback_name)
    return ShippingZone(id=FALLBACK_ZONE_ID, name=fallback_name, is_active=True)


def _zone_inputs(db: Session, zone: ShippingZone):
    policy = db.query(CarrierPolicy).filter(CarrierPolicy.zone_id == zone.id).first()
    rules = (
        db.query(ShippingRule)
        .filter(ShippingRule.zone_id == zone.id)
        .order_by(ShippingRule.created_at, ShippingRule.id)
        .all()
    )
    return policy, rules


def _base_rule_note(rules: Iterable[ShippingRule], selection: CarrierSelection) -> Optional[str]:
    for rule in rules:
        if (
            rule.carrier == selection.carrier
            and rule.band == selection.band_breakdown.base_band
        ):
            return rule.notes
    return None


def _surcharge() -> int:
    return int(get_shipping_defaults()["surcharge_per_extra_band_usd_cents"])


def preview_carrier(
    db: Session,
    country_code: str,
    bands: List[ShippingRuleBand],
    subtotal_usd_cents: int,
    weight_kg: float,
) -> ShippingQuote:
    """Carrier selection for explicit bands, subtotal and weight (admin preview)."""
    zone = resolve_zone(db, country_code)
    policy, rules = _zone_inputs(db, zone)
    selection = select_carrier(zone.name, bands, subtotal_usd_cents, weight_kg, policy, rules, _surcharge())
    return ShippingQuote(
        zone_id=zone.id,
        zone_name=zone.name,
        subtotal_usd_cents=subtotal_usd_cents,
        weight_kg=weight_kg,
        selection=selection,
        warning_note=_base_rule_note(rules, selection),
        bands=list(bands),
    )


def quote_shipping(db: Session, country_code: str, items: List[CartLine]) -> ShippingQuote:
    """Quote shipping for cart lines keyed by variant slug."""
    slugs = [item.variant_slug for item in items]
    variants = (
        db.query(Variant)
        .join(Product, Variant.product_id == Product.id)
        .options(joinedload(Variant.product))
        .filter(Variant.slug.in_(slugs), Variant.active.is_(True), Product.active.is_(True))
        .all()
    )
    by_slug = {v.slug: v for v in variants}
    weight_per_pack = get_shipping_defaults()["est_weight_kg_per_pack"]

    subtotal = 0
    weight_kg = 0.0
    bands: List[ShippingRuleBand] = []
    for item in items:
        variant = by_slug.get(item.variant_slug)
        if variant is None:
            raise ValueError(f"Unknown variant: {item.variant_slug}")
        subtotal += variant.price_usd_cents * item.quantity
        band = band_for_pack_type(variant.pack_type)
        bands.append(band)
        weight_kg += weight_per_pack.get(band.value, DEFAULT_WEIGHT_KG_PER_PACK) * item.quantity

    return preview_carrier(db, country_code, bands, subtotal, round(weight_kg, 3))
