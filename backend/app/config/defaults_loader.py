"""
Utilities for loading business default configuration.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

import yaml

CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "business_defaults.yaml"

BUILTIN_DEFAULTS: Dict[str, Any] = {
    "pricing": {
        "fee_rate": 0.035,
        "fixed_fee_usd_cents": 30,
        "handling_usd_cents_by_band": {
            "BAND_A_10PCS": 150,
            "BAND_B_20PCS": 200,
            "BAND_C_BULK": 200,
        },
        "cost_basis_lookback_days": 30,
        "reprice_default_limit": 200,
        "reprice_max_limit": 500,
        "default_rule": {
            "target_gross_margin": 0.55,
            "min_price_usd_cents": 500,
            "max_price_usd_cents": 50000,
            "rounding": "USD_0_99",
            "max_weekly_change_pct": 0.15,
        },
    },
    "routing": {
        "default_weights": {"cost": 0.5, "lead": 0.3, "availability": 0.2, "match": 0.1},
    },
    "shipping": {
        "surcharge_per_extra_band_usd_cents": 500,
        "fallback_zone_name": "Other",
        "est_weight_kg_per_pack": {
            "BAND_A_10PCS": 0.3,
            "BAND_B_20PCS": 0.6,
            "BAND_C_BULK": 1.5,
        },
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@lru_cache()
def load_business_defaults() -> Dict[str, Any]:
    if not CONFIG_PATH.exists():
        return BUILTIN_DEFAULTS
    with open(CONFIG_PATH, "r", encoding="utf-8") as fh:
        return _merge(BUILTIN_DEFAULTS, yaml.safe_load(fh) or {})


def get_pricing_defaults() -> Dict[str, Any]:
    return load_business_defaults()["pricing"]


def get_routing_defaults() -> Dict[str, Any]:
    return load_business_defaults()["routing"]


def get_shipping_defaults() -> Dict[str, Any]:
    return load_business_defaults()["shipping"]
