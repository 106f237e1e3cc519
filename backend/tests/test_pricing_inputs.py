from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from app.models import PricingRule
from app.models.catalog import ProductCategory
from app.models.pricing import CostSource, PricingScope, RoundingStrategy
from app.models.supplier import Availability
from app.services.pricing_inputs import (
    MissingCostBasisError,
    MissingFxRateError,
    choose_cost_basis,
    select_cost_basis_for_variant,
    select_latest_fx_rate,
    select_pricing_rule_for_variant,
)

NOW = datetime(2025, 3, 1, 9, 0, 0)
SINCE = NOW - timedelta(days=30)


def record(id, cost, days_ago=1, source=CostSource.SUPPLIER_OFFER.value, availability=None):
    return SimpleNamespace(
        id=id,
        cost_jpy_per_pack=cost,
        captured_at=NOW - timedelta(days=days_ago),
        source=source,
        availability=availability,
    )


def add_rule(db, scope, margin, minutes_old=0, **fields):
    rule = PricingRule(
        scope=scope,
        target_gross_margin=margin,
        min_price_usd_cents=100,
        max_price_usd_cents=100000,
        rounding=RoundingStrategy.USD_0_99,
        max_weekly_change_pct=0.15,
        updated_at=NOW - timedelta(minutes=minutes_old),
        **fields,
    )
    db.add(rule)
    db.commit()
    return rule


# ---------------------------------------------------------------- FX


def test_missing_fx_rate_raises(db):
    with pytest.raises(MissingFxRateError):
        select_latest_fx_rate(db)


def test_latest_fx_rate_wins(db, record_fx):
    record_fx(140.0, captured_at=NOW - timedelta(days=2))
    record_fx(155.5, captured_at=NOW)

    assert select_latest_fx_rate(db).jpy_per_usd == 155.5


def test_non_positive_fx_rate_raises(db, record_fx):
    record_fx(0.0)
    with pytest.raises(MissingFxRateError):
        select_latest_fx_rate(db)


# ---------------------------------------------------------------- rules


def test_rule_precedence(db, make_variant):
    variant = make_variant(category=ProductCategory.BOLT, size="M6")
    add_rule(db, PricingScope.GLOBAL, 0.1)
    add_rule(db, PricingScope.CATEGORY, 0.2, category=ProductCategory.BOLT)

    assert select_pricing_rule_for_variant(db, variant).target_gross_margin == 0.2

    add_rule(db, PricingScope.SIZE, 0.3, size="m6")
    assert select_pricing_rule_for_variant(db, variant).target_gross_margin == 0.3

    add_rule(db, PricingScope.VARIANT, 0.4, variant_id=variant.id)
    assert select_pricing_rule_for_variant(db, variant).target_gross_margin == 0.4


def test_rules_for_other_targets_are_ignored(db, make_variant):
    variant = make_variant(category=ProductCategory.NUT, size="M8")
    other = make_variant(category=ProductCategory.NUT, size="M8")
    add_rule(db, PricingScope.GLOBAL, 0.1)
    add_rule(db, PricingScope.CATEGORY, 0.2, category=ProductCategory.BOLT)
    add_rule(db, PricingScope.SIZE, 0.3, size="M10")
    add_rule(db, PricingScope.VARIANT, 0.4, variant_id=other.id)

    assert select_pricing_rule_for_variant(db, variant).target_gross_margin == 0.1


def test_newest_rule_wins_within_scope(db, make_variant):
    variant = make_variant()
    add_rule(db, PricingScope.GLOBAL, 0.1, minutes_old=60)
    add_rule(db, PricingScope.GLOBAL, 0.25, minutes_old=5)

    assert select_pricing_rule_for_variant(db, variant).target_gross_margin == 0.25


def test_default_rule_created_when_none_configured(db, make_variant):
    variant = make_variant()
    rule = select_pricing_rule_for_variant(db, variant)

    assert PricingScope(rule.scope) is PricingScope.GLOBAL
    assert rule.target_gross_margin == 0.55
    assert rule.min_price_usd_cents == 500
    assert rule.max_price_usd_cents == 50000
    assert RoundingStrategy(rule.rounding) is RoundingStrategy.USD_0_99
    assert rule.max_weekly_change_pct == 0.15

    # Reused on the next lookup rather than created twice
    assert select_pricing_rule_for_variant(db, variant).id == rule.id
    assert db.query(PricingRule).count() == 1


# ---------------------------------------------------------------- cost basis


def test_cheapest_recent_record_wins():
    chosen = choose_cost_basis([record("a", 500), record("b", 400, days_ago=5, source="manual")], SINCE)
    assert chosen.id == "b"


def test_supplier_offer_breaks_cost_ties():
    records = [record("manual", 400, days_ago=1, source="manual"), record("offer", 400, days_ago=3)]
    assert choose_cost_basis(records, SINCE).id == "offer"


def test_newest_breaks_remaining_ties():
    records = [record("old", 400, days_ago=10), record("new", 400, days_ago=2)]
    assert choose_cost_basis(records, SINCE).id == "new"


def test_backorder_and_stale_records_are_skipped():
    records = [
        record("backorder", 100, availability=Availability.BACKORDER),
        record("stale", 50, days_ago=45),
        record("ok", 900, availability=Availability.LIMITED),
    ]
    assert choose_cost_basis(records, SINCE).id == "ok"
    assert choose_cost_basis(records[:2], SINCE) is None


def test_cost_basis_high_confidence(db, make_variant, record_cost):
    variant = make_variant()
    record_cost(variant, 900, days_ago=3)
    record_cost(variant, 700, days_ago=10)

    selected = select_cost_basis_for_variant(db, variant.id)
    assert selected.confidence == "high"
    assert selected.cost_basis.cost_jpy_per_pack == 700


def test_cost_basis_falls_back_to_latest_with_low_confidence(db, make_variant, record_cost):
    variant = make_variant()
    record_cost(variant, 300, days_ago=90)
    record_cost(variant, 800, days_ago=45)
    record_cost(variant, 100, days_ago=2, availability=Availability.BACKORDER)

    selected = select_cost_basis_for_variant(db, variant.id)
    assert selected.confidence == "low"
    assert selected.cost_basis.cost_jpy_per_pack == 100


def test_missing_cost_basis_raises(db, make_variant):
    variant = make_variant()
    with pytest.raises(MissingCostBasisError):
        select_cost_basis_for_variant(db, variant.id)
