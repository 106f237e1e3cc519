"""
Carrier selection - picks one carrier for a cart and prices it across bands.

Business rules:
1. A carrier is a candidate only if it has a rule for EVERY required band
2. Price = most expensive band + flat surcharge per extra distinct band
3. ETA = slowest band for that carrier, tracking only if all bands are tracked
4. Weight/subtotal thresholds force DHL when a DHL candidate exists
5. Otherwise dispatch on policy: CHEAPEST, FASTEST or DEFAULT
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol

from app.models.shipping import CarrierPolicyType, ShippingCarrier, ShippingRuleBand
from app.services.shipping_bands import (
    DEFAULT_SURCHARGE_PER_EXTRA_BAND_CENTS,
    BandPriceBreakdown,
    compute_flat_band_shipping,
    distinct_bands,
)

PREMIUM_CARRIER = ShippingCarrier.DHL
STANDARD_CARRIER = ShippingCarrier.JP_POST


class NoShippingRulesError(ValueError):
    """Raised when no carrier covers every band required by a cart in a zone."""


class RuleRow(Protocol):
    band: ShippingRuleBand
    carrier: ShippingCarrier
    price_usd_cents: int
    eta_min_days: int
    eta_max_days: int
    tracking_included: bool


class PolicyRow(Protocol):
    policy: CarrierPolicyType
    default_carrier: Optional[ShippingCarrier]
    force_dhl_over_weight_kg: Optional[float]
    force_dhl_over_subtotal_usd_cents: Optional[int]


@dataclass
class CarrierCandidate:
    carrier: ShippingCarrier
    shipping_price_usd_cents: int
    eta_min_days: int
    eta_max_days: int
    tracking_included: bool
    band_breakdown: BandPriceBreakdown


@dataclass
class CarrierSelection:
    carrier: ShippingCarrier
    shipping_price_usd_cents: int
    eta_min_days: int
    eta_max_days: int
    tracking_included: bool
    band_breakdown: BandPriceBreakdown
    applied_policy: CarrierPolicyType
    forced_dhl: bool = False
    forced_reason: Optional[str] = None  # "weight" | "subtotal"

    @classmethod
    def from_candidate(
        cls,
        candidate: CarrierCandidate,
        applied_policy: CarrierPolicyType,
        forced_reason: Optional[str] = None,
    ) -> "CarrierSelection":
        return cls(
            carrier=candidate.carrier,
            shipping_price_usd_cents=candidate.shipping_price_usd_cents,
            eta_min_days=candidate.eta_min_days,
            eta_max_days=candidate.eta_max_days,
            tracking_included=candidate.tracking_included,
            band_breakdown=candidate.band_breakdown,
            applied_policy=applied_policy,
            forced_dhl=forced_reason is not None,
            forced_reason=forced_reason,
        )

    def to_dict(self) -> dict:
        return {
            "carrier": self.carrier.value,
            "shipping_price_usd_cents": self.shipping_price_usd_cents,
            "eta_min_days": self.eta_min_days,
            "eta_max_days": self.eta_max_days,
            "tracking_included": self.tracking_included,
            "band_breakdown": self.band_breakdown.to_dict(),
            "applied_policy": self.applied_policy.value,
            "forced_dhl": self.forced_dhl,
            "forced_reason": self.forced_reason,
        }


def carrier_fallback_for_zone(zone_name: str) -> ShippingCarrier:
    # DHL for Oceania, Japan Post everywhere else
    return PREMIUM_CARRIER if zone_name == "Oceania" else STANDARD_CARRIER


def build_candidates(
    zone_name: str,
    bands: Iterable[ShippingRuleBand],
    rules: Iterable[RuleRow],
    surcharge_per_extra_band_cents: int = DEFAULT_SURCHARGE_PER_EXTRA_BAND_CENTS,
) -> List[CarrierCandidate]:
    required = distinct_bands(bands)

    by_carrier: Dict[ShippingCarrier, Dict[ShippingRuleBand, RuleRow]] = {}
    for rule in rules:
        by_carrier.setdefault(ShippingCarrier(rule.carrier), {})[ShippingRuleBand(rule.band)] = rule

    candidates: List[CarrierCandidate] = []
    for carrier, band_map in by_carrier.items():
        if any(band not in band_map for band in required):
            continue

        breakdown = compute_flat_band_shipping(
            required,
            {band: band_map[band].price_usd_cents for band in required},
            surcharge_per_extra_band_cents,
        )
        covered = [band_map[band] for band in required]
        candidates.append(
            CarrierCandidate(
                carrier=carrier,
                shipping_price_usd_cents=breakdown.total_usd_cents,
                eta_min_days=max((r.eta_min_days for r in covered), default=0),
                eta_max_days=max((r.eta_max_days for r in covered), default=0),
                tracking_included=all(r.tracking_included for r in covered),
                band_breakdown=breakdown,
            )
        )

    return candidates


def select_carrier(
    zone_name: str,
    bands: Iterable[ShippingRuleBand],
    subtotal_usd_cents: int,
    weight_kg: float,
    policy: Optional[PolicyRow],
    rules: Iterable[RuleRow],
    surcharge_per_extra_band_cents: int = DEFAULT_SURCHARGE_PER_EXTRA_BAND_CENTS,
) -> CarrierSelection:
    """
    Select the carrier for a cart shipping to `zone_name`.

    Raises NoShippingRulesError when no carrier covers all required bands;
    that is a zone setup gap and must not be defaulted away.
    """
    candidates = build_candidates(zone_name, bands, rules, surcharge_per_extra_band_cents)
    if not candidates:
        raise NoShippingRulesError(f"No shipping rules available for zone={zone_name}")

    policy_type = CarrierPolicyType(policy.policy) if policy and policy.policy else CarrierPolicyType.DEFAULT
    force_weight = policy.force_dhl_over_weight_kg if policy else None
    force_subtotal = policy.force_dhl_over_subtotal_usd_cents if policy else None

    forced_reason = None
    if force_weight is not None and weight_kg > force_weight:
        forced_reason = "weight"
    elif force_subtotal is not None and subtotal_usd_cents > force_subtotal:
        forced_reason = "subtotal"

    if forced_reason:
        premium = next((c for c in candidates if c.carrier == PREMIUM_CARRIER), None)
        if premium:
            return CarrierSelection.from_candidate(premium, policy_type, forced_reason)

    if policy_type == CarrierPolicyType.CHEAPEST:
        best = min(candidates, key=lambda c: c.shipping_price_usd_cents)
        return CarrierSelection.from_candidate(best, policy_type)

    if policy_type == CarrierPolicyType.FASTEST:
        best = min(candidates, key=lambda c: (c.eta_min_days, c.shipping_price_usd_cents))
        return CarrierSelection.from_candidate(best, policy_type)

    preferred = (
        ShippingCarrier(policy.default_carrier)
        if policy and policy.default_carrier
        else carrier_fallback_for_zone(zone_name)
    )
    direct = next((c for c in candidates if c.carrier == preferred), None)
    return CarrierSelection.from_candidate(direct or candidates[0], CarrierPolicyType.DEFAULT)
