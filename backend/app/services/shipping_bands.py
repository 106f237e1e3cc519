"""
Shipping bands - map pack sizes to weight/price bands and price multi-band carts.

Business rules:
1. 10 pcs -> BAND_A (small), 20 pcs -> BAND_B (medium), 50/100 pcs -> BAND_C (bulk)
2. A cart pays the most expensive band it contains ("base")
3. Every additional distinct band adds a flat surcharge ($5.00 by default)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from app.models.catalog import PackType
from app.models.shipping import ShippingRuleBand

DEFAULT_SURCHARGE_PER_EXTRA_BAND_CENTS = 500

PACK_QTY_BY_TYPE: Dict[PackType, int] = {
    PackType.PACK_10: 10,
    PackType.PACK_20: 20,
    PackType.PACK_50: 50,
    PackType.PACK_100: 100,
}

BAND_BY_PACK_QTY: Dict[int, ShippingRuleBand] = {
    10: ShippingRuleBand.BAND_A_10PCS,
    20: ShippingRuleBand.BAND_B_20PCS,
    50: ShippingRuleBand.BAND_C_BULK,
    100: ShippingRuleBand.BAND_C_BULK,
}


class InvalidPackQuantity(ValueError):
    """Raised for pack sizes outside the catalog's 10/20/50/100 range."""


def band_for_pack_qty(pack_qty: int) -> ShippingRuleBand:
    band = BAND_BY_PACK_QTY.get(pack_qty)
    if band is None:
        raise InvalidPackQuantity(f"Unsupported pack quantity: {pack_qty!r}")
    return band


def pack_qty_for_pack_type(pack_type: PackType) -> int:
    return PACK_QTY_BY_TYPE[PackType(pack_type)]


def band_for_pack_type(pack_type: PackType) -> ShippingRuleBand:
    return band_for_pack_qty(pack_qty_for_pack_type(pack_type))


def distinct_bands(bands: Iterable[ShippingRuleBand]) -> List[ShippingRuleBand]:
    """Deduplicate bands, keeping first-seen order."""
    return list(dict.fromkeys(ShippingRuleBand(b) for b in bands))


@dataclass
class BandPriceBreakdown:
    distinct_bands: List[ShippingRuleBand] = field(default_factory=list)
    base_band: ShippingRuleBand = ShippingRuleBand.BAND_A_10PCS
    base_price_usd_cents: int = 0
    surcharge_usd_cents: int = 0
    total_usd_cents: int = 0

    def to_dict(self) -> dict:
        return {
            "distinct_bands": [b.value for b in self.distinct_bands],
            "base_band": self.base_band.value,
            "base_price_usd_cents": self.base_price_usd_cents,
            "surcharge_usd_cents": self.surcharge_usd_cents,
            "total_usd_cents": self.total_usd_cents,
        }


def compute_flat_band_shipping(
    bands: Iterable[ShippingRuleBand],
    price_by_band: Dict[ShippingRuleBand, int],
    surcharge_per_extra_band_cents: int = DEFAULT_SURCHARGE_PER_EXTRA_BAND_CENTS,
) -> BandPriceBreakdown:
    """
    Price a cart that spans one or more bands.

    Returns a zero breakdown for an empty cart. Raises ValueError when a band
    has no price.
    """
    required = distinct_bands(bands)
    if not required:
        return BandPriceBreakdown()

    priced = []
    for band in required:
        price = price_by_band.get(band)
        if price is None:
            raise ValueError(f"Missing price for band {band.value}")
        priced.append((band, price))

    # Stable: among equal prices the first-seen band is the base
    base_band, base_price = max(priced, key=lambda item: item[1])
    surcharge = surcharge_per_extra_band_cents * (len(required) - 1)
    return BandPriceBreakdown(
        distinct_bands=required,
        base_band=base_band,
        base_price_usd_cents=base_price,
        surcharge_usd_cents=surcharge,
        total_usd_cents=base_price + surcharge,
    )
