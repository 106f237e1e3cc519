"""
Offer matcher - ranks supplier offers against one order line.

Match passes, highest priority first:
1. exact (1.0): offer scoped to this variant, pack qty unset or equal
2. partial (0.6): unscoped offer whose every set spec field equals the line
3. partial (0.6): unscoped offer with explicit category + size and compatible pack
4. fallback (0.3): unscoped supplier default (category unset or equal, size unset)

Results are de-duplicated by offer id (first pass wins) and sorted by match
score, then availability, then most recently updated.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Union

from app.models.catalog import ProductCategory
from app.models.supplier import Availability
from app.services.shipping_bands import pack_qty_for_pack_type


class _AnyValue:
    """Wildcard for an offer spec field that was left blank."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ANY"

    def __reduce__(self):
        return (_AnyValue, ())


ANY = _AnyValue()


class MatchQuality(str, enum.Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    FALLBACK = "fallback"
    NONE = "none"


AVAILABILITY_SCORES = {
    Availability.IN_STOCK: 1.0,
    Availability.LIMITED: 0.7,
    Availability.UNKNOWN: 0.4,
    Availability.BACKORDER: 0.2,
}


def availability_score(availability: Union[Availability, str, None]) -> float:
    try:
        return AVAILABILITY_SCORES[Availability(availability)]
    except ValueError:
        return AVAILABILITY_SCORES[Availability.UNKNOWN]


@dataclass(frozen=True)
class OrderLineSpec:
    variant_id: str
    category: ProductCategory
    size: str
    length_mm: Optional[int]
    strength_class: Optional[str]
    finish: str
    pack_qty: int


@dataclass(frozen=True)
class OfferSnapshot:
    id: str
    supplier_id: str
    unit_cost_jpy: int
    updated_at: datetime
    variant_id: Optional[str] = None
    category: Any = ANY
    size: Any = ANY
    length_mm: Any = ANY
    strength_class: Any = ANY
    finish: Any = ANY
    pack_qty: Any = ANY
    min_order_packs: int = 1
    lead_time_days: Optional[int] = None
    availability: Availability = Availability.UNKNOWN


@dataclass(frozen=True)
class MatchedOffer:
    offer: OfferSnapshot
    match_quality: MatchQuality
    match_score: float
    matched_by: str


def _wild(value: Any) -> Any:
    return ANY if value is None else value


def offer_snapshot(row) -> OfferSnapshot:
    """Build an OfferSnapshot from a SupplierOffer row; NULL spec columns become ANY."""
    return OfferSnapshot(
        id=row.id,
        supplier_id=row.supplier_id,
        unit_cost_jpy=row.unit_cost_jpy,
        updated_at=row.updated_at,
        variant_id=row.variant_id,
        category=ANY if row.category is None else ProductCategory(row.category),
        size=_wild(row.size),
        length_mm=_wild(row.length_mm),
        strength_class=_wild(row.strength_class),
        finish=_wild(row.finish),
        pack_qty=_wild(row.pack_qty),
        min_order_packs=row.min_order_packs or 1,
        lead_time_days=row.lead_time_days,
        availability=Availability(row.availability or Availability.UNKNOWN),
    )


def line_spec_from_variant(variant, pack_qty: Optional[int] = None) -> OrderLineSpec:
    """Snapshot what must be procured for a Variant row (with its product loaded)."""
    product = variant.product
    return OrderLineSpec(
        variant_id=variant.id,
        category=ProductCategory(product.category),
        size=product.size,
        length_mm=product.length,
        strength_class=product.strength_class,
        finish=product.finish,
        pack_qty=pack_qty if pack_qty is not None else pack_qty_for_pack_type(variant.pack_type),
    )


def _field_matches(offer_value: Any, line_value: Any, normalize: Callable[[Any], Any] = lambda v: v) -> bool:
    if offer_value is ANY:
        return True
    if line_value is None:
        return False
    return normalize(offer_value) == normalize(line_value)


def _upper(value: Any) -> str:
    return str(value).upper()


def _lower(value: Any) -> str:
    return str(value).lower()


def _pack_compatible(offer: OfferSnapshot, line: OrderLineSpec) -> bool:
    return offer.pack_qty is ANY or offer.pack_qty == line.pack_qty


def is_wildcard_match(line: OrderLineSpec, offer: OfferSnapshot) -> bool:
    return (
        _field_matches(offer.category, line.category)
        and _field_matches(offer.size, line.size, _upper)
        and _field_matches(offer.length_mm, line.length_mm)
        and _field_matches(offer.finish, line.finish, _lower)
        and _field_matches(offer.strength_class, line.strength_class)
        and _pack_compatible(offer, line)
    )


def _is_exact(line: OrderLineSpec, offer: OfferSnapshot) -> bool:
    return offer.variant_id == line.variant_id and _pack_compatible(offer, line)


def _is_category_size_pack(line: OrderLineSpec, offer: OfferSnapshot) -> bool:
    return (
        offer.category is not ANY
        and offer.category == line.category
        and offer.size is not ANY
        and _upper(offer.size) == _upper(line.size)
        and _pack_compatible(offer, line)
    )


def _is_supplier_default(line: OrderLineSpec, offer: OfferSnapshot) -> bool:
    return (
        (offer.category is ANY or offer.category == line.category)
        and offer.size is ANY
        and _pack_compatible(offer, line)
    )


MATCH_PASSES = (
    (_is_exact, MatchQuality.EXACT, 1.0, "variant_id", False),
    (is_wildcard_match, MatchQuality.PARTIAL, 0.6, "spec_wildcards", True),
    (_is_category_size_pack, MatchQuality.PARTIAL, 0.6, "category_size_pack", True),
    (_is_supplier_default, MatchQuality.FALLBACK, 0.3, "supplier_default", True),
)


def match_supplier_offers(line: OrderLineSpec, offers: Iterable[OfferSnapshot]) -> List[MatchedOffer]:
    """Return every viable offer for `line`, ranked deterministically."""
    offers = list(offers)

    matched: List[MatchedOffer] = []
    seen = set()
    for predicate, quality, score, rule_name, unscoped_only in MATCH_PASSES:
        for offer in offers:
            if offer.id in seen:
                continue
            if unscoped_only and offer.variant_id is not None:
                continue
            if predicate(line, offer):
                seen.add(offer.id)
                matched.append(MatchedOffer(offer, quality, score, rule_name))

    # Two stable passes: newest first, then score and availability on top
    matched.sort(key=lambda m: m.offer.updated_at, reverse=True)
    matched.sort(key=lambda m: (m.match_score, availability_score(m.offer.availability)), reverse=True)
    return matched
