"""
Shipping configuration service - zones and their countries, per-band carrier
rules, carrier policies, and the rules CSV import.

Business rules:
1. Zone names are unique; a country code belongs to at most one zone
2. Rules are keyed by (zone, band, carrier); saving an existing key updates it
3. A zone has at most one carrier policy; omitted policy fields keep their value
4. Rules CSV rows are validated one by one; bad rows are reported, never fatal

Rules CSV columns:
zone_name, band, carrier, price_usd, eta_min_days, eta_max_days,
tracking_included, notes
"""
from __future__ import annotations

import io
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd
from sqlalchemy.orm import Session, joinedload

from app.models import CarrierPolicy, ShippingRule, ShippingZone, ShippingZoneCountry
from app.models.shipping import CarrierPolicyType, ShippingCarrier, ShippingRuleBand
from app.services.pricing_calc import usd_to_cents

logger = logging.getLogger(__name__)

RULE_CSV_COLUMNS = [
    "zone_name",
    "band",
    "carrier",
    "price_usd",
    "eta_min_days",
    "eta_max_days",
    "tracking_included",
    "notes",
]

UNSET = object()


class ShippingConfigNotFoundError(ValueError):
    """Raised when a zone, rule or policy does not exist."""


class ShippingConfigConflictError(ValueError):
    """Raised when a change would break zone name or country uniqueness."""


@dataclass
class RuleImportReport:
    upserted: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"upserted": self.upserted, "failed": self.failed, "errors": self.errors}


# ---------------------------------------------------------------- zones


def _normalize_countries(countries: Optional[Iterable[str]]) -> List[str]:
    codes = []
    for code in countries or []:
        code = str(code).strip().upper()
        if len(code) != 2 or not code.isalpha():
            raise ValueError(f"Invalid country code: {code!r}")
        if code not in codes:
            codes.append(code)
    return codes


def get_zone(db: Session, zone_id: str) -> ShippingZone:
    zone = db.query(ShippingZone).filter(ShippingZone.id == zone_id).first()
    if zone is None:
        raise ShippingConfigNotFoundError(f"Shipping zone {zone_id} not found")
    return zone


def list_zones(db: Session) -> List[ShippingZone]:
    return (
        db.query(ShippingZone)
        .options(joinedload(ShippingZone.countries), joinedload(ShippingZone.policy))
        .order_by(ShippingZone.name)
        .all()
    )


def _check_zone_unique(db: Session, name: str, codes: List[str], zone_id: Optional[str] = None) -> None:
    clash = db.query(ShippingZone).filter(ShippingZone.name == name)
    if zone_id:
        clash = clash.filter(ShippingZone.id != zone_id)
    if clash.first():
        raise ShippingConfigConflictError(f"Shipping zone {name!r} already exists")

    if codes:
        taken = db.query(ShippingZoneCountry).filter(ShippingZoneCountry.code.in_(codes))
        if zone_id:
            taken = taken.filter(ShippingZoneCountry.zone_id != zone_id)
        taken_codes = sorted(row.code for row in taken.all())
        if taken_codes:
            raise ShippingConfigConflictError(
                f"Country already assigned to another zone: {', '.join(taken_codes)}"
            )


def create_zone(
    db: Session,
    name: str,
    is_active: bool = True,
    countries: Optional[Iterable[str]] = None,
) -> ShippingZone:
    name = name.strip()
    codes = _normalize_countries(countries)
    _check_zone_unique(db, name, codes)

    zone = ShippingZone(name=name, is_active=is_active)
    zone.countries = [ShippingZoneCountry(code=code) for code in codes]
    db.add(zone)
    db.commit()
    db.refresh(zone)
    logger.info("Created shipping zone %s (%s)", zone.name, ", ".join(codes) or "no countries")
    return zone


def update_zone(
    db: Session,
    zone_id: str,
    name: str,
    is_active: bool,
    countries: Optional[Iterable[str]] = None,
) -> ShippingZone:
    """Rename or (de)activate a zone and replace its country list."""
    zone = get_zone(db, zone_id)
    name = name.strip()
    codes = _normalize_countries(countries)
    _check_zone_unique(db, name, codes, zone_id=zone.id)

    zone.name = name
    zone.is_active = is_active
    zone.countries.clear()
    db.flush()
    zone.countries.extend(ShippingZoneCountry(code=code) for code in codes)
    db.commit()
    db.refresh(zone)
    logger.info("Updated shipping zone %s", zone.id)
    return zone


def delete_zone(db: Session, zone_id: str) -> None:
    zone = get_zone(db, zone_id)
    db.delete(zone)
    db.commit()
    logger.info("Deleted shipping zone %s", zone_id)


# ---------------------------------------------------------------- rules


def list_rules(db: Session, zone_id: Optional[str] = None) -> List[ShippingRule]:
    query = db.query(ShippingRule)
    if zone_id:
        query = query.filter(ShippingRule.zone_id == zone_id)
    return query.order_by(ShippingRule.zone_id, ShippingRule.band, ShippingRule.carrier).all()


def _validate_rule(price_usd_cents: int, eta_min_days: int, eta_max_days: int) -> None:
    if price_usd_cents <= 0:
        raise ValueError("Invalid price_usd")
    if eta_min_days <= 0:
        raise ValueError("Invalid eta_min_days")
    if eta_max_days <= 0:
        raise ValueError("Invalid eta_max_days")
    if eta_min_days > eta_max_days:
        raise ValueError("eta_min_days must not exceed eta_max_days")


def _save_rule(
    db: Session,
    zone_id: str,
    band: ShippingRuleBand,
    carrier: ShippingCarrier,
    price_usd_cents: int,
    eta_min_days: int,
    eta_max_days: int,
    tracking_included: bool,
    notes: Optional[str],
) -> ShippingRule:
    _validate_rule(price_usd_cents, eta_min_days, eta_max_days)
    band = ShippingRuleBand(band)
    carrier = ShippingCarrier(carrier)
    rule = (
        db.query(ShippingRule)
        .filter(
            ShippingRule.zone_id == zone_id,
            ShippingRule.band == band,
            ShippingRule.carrier == carrier,
        )
        .first()
    )
    if rule is None:
        rule = ShippingRule(zone_id=zone_id, band=band, carrier=carrier)
        db.add(rule)
    rule.price_usd_cents = price_usd_cents
    rule.eta_min_days = eta_min_days
    rule.eta_max_days = eta_max_days
    rule.tracking_included = tracking_included
    rule.notes = (notes or "").strip() or None
    db.flush()
    return rule


def upsert_rule(
    db: Session,
    zone_id: str,
    band: ShippingRuleBand,
    carrier: ShippingCarrier,
    price_usd_cents: int,
    eta_min_days: int,
    eta_max_days: int,
    tracking_included: bool = True,
    notes: Optional[str] = None,
) -> ShippingRule:
    get_zone(db, zone_id)
    try:
        rule = _save_rule(
            db, zone_id, band, carrier, price_usd_cents, eta_min_days, eta_max_days, tracking_included, notes
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(rule)
    logger.info("Saved shipping rule %s/%s for zone %s", rule.band, rule.carrier, zone_id)
    return rule


def delete_rule(db: Session, rule_id: str) -> None:
    rule = db.query(ShippingRule).filter(ShippingRule.id == rule_id).first()
    if rule is None:
        raise ShippingConfigNotFoundError(f"Shipping rule {rule_id} not found")
    db.delete(rule)
    db.commit()


# ---------------------------------------------------------------- policies


def list_policies(db: Session) -> List[CarrierPolicy]:
    return db.query(CarrierPolicy).order_by(CarrierPolicy.updated_at.desc()).all()


def upsert_policy(
    db: Session,
    zone_id: str,
    policy: Any = UNSET,
    default_carrier: Any = UNSET,
    force_dhl_over_weight_kg: Any = UNSET,
    force_dhl_over_subtotal_usd_cents: Any = UNSET,
) -> CarrierPolicy:
    """Create the zone's policy or update the fields that were passed."""
    zone = get_zone(db, zone_id)
    row = zone.policy
    if row is None:
        row = CarrierPolicy(
            zone_id=zone.id,
            policy=CarrierPolicyType.DEFAULT,
            default_carrier=ShippingCarrier.JP_POST,
        )
        db.add(row)

    if policy is not UNSET and policy is not None:
        row.policy = CarrierPolicyType(policy)
    if default_carrier is not UNSET and default_carrier is not None:
        row.default_carrier = ShippingCarrier(default_carrier)
    if force_dhl_over_weight_kg is not UNSET:
        row.force_dhl_over_weight_kg = force_dhl_over_weight_kg
    if force_dhl_over_subtotal_usd_cents is not UNSET:
        row.force_dhl_over_subtotal_usd_cents = force_dhl_over_subtotal_usd_cents

    db.commit()
    db.refresh(row)
    logger.info("Saved carrier policy for zone %s: %s", zone.name, row.policy)
    return row


# ---------------------------------------------------------------- CSV import


def read_rules_csv(source: Union[str, bytes, io.IOBase]) -> pd.DataFrame:
    """Read a CSV path or raw bytes into a string-typed DataFrame."""
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    df = pd.read_csv(source, dtype=str, keep_default_na=False, skip_blank_lines=True)
    df.columns = [str(col).strip().lower() for col in df.columns]
    return df


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _number(value: Any, column: str) -> float:
    try:
        number = float(_text(value))
    except ValueError:
        raise ValueError(f"Invalid {column}") from None
    if not math.isfinite(number) or number <= 0:
        raise ValueError(f"Invalid {column}")
    return number


def _enum(enum_cls, value: Any, column: str):
    try:
        return enum_cls(_text(value).upper())
    except ValueError:
        raise ValueError(f"Invalid {column}") from None


def import_rules(db: Session, df: pd.DataFrame) -> RuleImportReport:
    """Upsert shipping rules from a parsed sheet, zones looked up by name."""
    started = time.perf_counter()
    report = RuleImportReport()

    missing = [col for col in RULE_CSV_COLUMNS[:6] if col not in df.columns]
    if missing:
        raise ValueError(f"Missing required column(s): {', '.join(missing)}")

    zones = {zone.name: zone.id for zone in db.query(ShippingZone).all()}
    try:
        for idx, raw in enumerate(df.to_dict(orient="records")):
            row_number = idx + 2  # header is line 1
            try:
                zone_name = _text(raw.get("zone_name"))
                if not zone_name:
                    raise ValueError("Missing zone_name")
                if zone_name not in zones:
                    raise ValueError(f"Unknown zone: {zone_name}")
                _save_rule(
                    db,
                    zones[zone_name],
                    _enum(ShippingRuleBand, raw.get("band"), "band"),
                    _enum(ShippingCarrier, raw.get("carrier"), "carrier"),
                    usd_to_cents(_number(raw.get("price_usd"), "price_usd")),
                    int(_number(raw.get("eta_min_days"), "eta_min_days")),
                    int(_number(raw.get("eta_max_days"), "eta_max_days")),
                    _text(raw.get("tracking_included") or "true").lower() != "false",
                    _text(raw.get("notes")),
                )
            except ValueError as e:
                report.failed += 1
                report.errors.append({"row": row_number, "error": str(e)})
                continue
            report.upserted += 1
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Imported shipping rules: %d upserted, %d failed in %.2fs",
        report.upserted,
        report.failed,
        time.perf_counter() - started,
    )
    return report
