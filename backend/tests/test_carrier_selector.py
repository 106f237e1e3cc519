from dataclasses import dataclass
from typing import Optional

import pytest

from app.models.shipping import CarrierPolicyType, ShippingCarrier, ShippingRuleBand
from app.services.carrier_selector import NoShippingRulesError, build_candidates, select_carrier

A = ShippingRuleBand.BAND_A_10PCS
B = ShippingRuleBand.BAND_B_20PCS
C = ShippingRuleBand.BAND_C_BULK
JP_POST = ShippingCarrier.JP_POST
DHL = ShippingCarrier.DHL


@dataclass
class Rule:
    band: ShippingRuleBand
    carrier: ShippingCarrier
    price_usd_cents: int
    eta_min_days: int
    eta_max_days: int
    tracking_included: bool = True


@dataclass
class Policy:
    policy: CarrierPolicyType = CarrierPolicyType.DEFAULT
    default_carrier: Optional[ShippingCarrier] = None
    force_dhl_over_weight_kg: Optional[float] = None
    force_dhl_over_subtotal_usd_cents: Optional[int] = None


RULES = [
    Rule(A, JP_POST, 1200, 7, 14),
    Rule(B, JP_POST, 1800, 8, 15, tracking_included=False),
    Rule(A, DHL, 2500, 2, 4),
    Rule(B, DHL, 3800, 3, 5),
]


def test_candidate_requires_every_band():
    rules = RULES + [Rule(C, DHL, 5500, 3, 6)]
    candidates = build_candidates("Asia", [A, C], rules)
    assert [c.carrier for c in candidates] == [DHL]


def test_candidate_eta_and_tracking_follow_slowest_band():
    candidates = {c.carrier: c for c in build_candidates("Asia", [A, B], RULES)}

    jp = candidates[JP_POST]
    assert (jp.eta_min_days, jp.eta_max_days) == (8, 15)
    assert jp.tracking_included is False
    assert jp.shipping_price_usd_cents == 1800 + 500


def test_forced_dhl_by_subtotal():
    selection = select_carrier(
        "Asia",
        [A, B],
        subtotal_usd_cents=25000,
        weight_kg=1.0,
        policy=Policy(policy=CarrierPolicyType.CHEAPEST, force_dhl_over_subtotal_usd_cents=20000),
        rules=RULES,
    )

    assert selection.carrier == DHL
    assert selection.forced_dhl is True
    assert selection.forced_reason == "subtotal"
    assert selection.shipping_price_usd_cents == 3800 + 500


def test_weight_forcing_is_checked_before_subtotal():
    selection = select_carrier(
        "Asia",
        [A],
        subtotal_usd_cents=25000,
        weight_kg=12.0,
        policy=Policy(force_dhl_over_weight_kg=10.0, force_dhl_over_subtotal_usd_cents=20000),
        rules=RULES,
    )
    assert selection.forced_reason == "weight"


def test_forcing_without_dhl_candidate_falls_back_to_policy():
    jp_only = [r for r in RULES if r.carrier == JP_POST]
    selection = select_carrier(
        "Asia",
        [A],
        subtotal_usd_cents=25000,
        weight_kg=1.0,
        policy=Policy(force_dhl_over_subtotal_usd_cents=20000),
        rules=jp_only,
    )
    assert selection.carrier == JP_POST
    assert selection.forced_dhl is False


def test_cheapest_policy():
    selection = select_carrier("Asia", [A, B], 1000, 1.0, Policy(policy=CarrierPolicyType.CHEAPEST), RULES)
    assert selection.carrier == JP_POST
    assert selection.applied_policy == CarrierPolicyType.CHEAPEST


def test_fastest_policy():
    selection = select_carrier("Asia", [A], 1000, 1.0, Policy(policy=CarrierPolicyType.FASTEST), RULES)
    assert selection.carrier == DHL
    assert selection.applied_policy == CarrierPolicyType.FASTEST


def test_default_policy_uses_configured_default_carrier():
    selection = select_carrier("Asia", [A], 1000, 1.0, Policy(default_carrier=DHL), RULES)
    assert selection.carrier == DHL
    assert selection.applied_policy == CarrierPolicyType.DEFAULT


@pytest.mark.parametrize("zone_name,expected", [("Oceania", DHL), ("ASEAN", JP_POST)])
def test_default_policy_zone_heuristic(zone_name, expected):
    selection = select_carrier(zone_name, [A], 1000, 1.0, None, RULES)
    assert selection.carrier == expected


def test_default_policy_falls_back_to_any_candidate():
    dhl_only = [r for r in RULES if r.carrier == DHL]
    selection = select_carrier("ASEAN", [A], 1000, 1.0, None, dhl_only)
    assert selection.carrier == DHL


def test_duplicate_bands_are_deduplicated():
    selection = select_carrier("ASEAN", [A, A, A], 1000, 1.0, None, RULES)
    assert selection.shipping_price_usd_cents == 1200
    assert selection.band_breakdown.surcharge_usd_cents == 0


def test_no_candidates_raises():
    with pytest.raises(NoShippingRulesError):
        select_carrier("Nowhere", [C], 1000, 1.0, None, RULES)
