"""
Supplier offer import - parses supplier price sheets (CSV) into offers and
cost-basis history.

Expected columns:
supplier_name, variant_id (variant slug), category, size, length_mm,
strength_class, finish, pack_qty, unit_cost_jpy, lead_time_days, availability

Rows are validated one by one; a bad row is reported and skipped, it never
aborts the import.
"""
from __future__ import annotations

import io
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import pandas as pd
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import CostBasis, Product, Supplier, SupplierOffer, Variant
from app.models.catalog import PackType, ProductCategory
from app.models.pricing import CostSource
from app.models.supplier import Availability

logger = logging.getLogger(__name__)

EXPECTED_COLUMNS = [
    "supplier_name",
    "variant_id",
    "category",
    "size",
    "length_mm",
    "strength_class",
    "finish",
    "pack_qty",
    "unit_cost_jpy",
    "lead_time_days",
    "availability",
]

PACK_TYPE_BY_QTY = {
    10: PackType.PACK_10,
    20: PackType.PACK_20,
    50: PackType.PACK_50,
    100: PackType.PACK_100,
}

COST_BASIS_VARIANT_LIMIT = 200


@dataclass
class ParsedOfferRow:
    row: int
    supplier_name: str
    variant_slug: Optional[str]
    category: Optional[ProductCategory]
    size: Optional[str]
    length_mm: Optional[int]
    strength_class: Optional[str]
    finish: Optional[str]
    pack_qty: Optional[int]
    unit_cost_jpy: int
    lead_time_days: Optional[int]
    availability: Availability


@dataclass
class ImportReport:
    created: int = 0
    updated: int = 0
    failed: int = 0
    cost_basis_written: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "cost_basis_written": self.cost_basis_written,
            "errors": self.errors,
        }


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _to_int(value: Any) -> Optional[int]:
    text = _text(value)
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def _availability(value: Any) -> Availability:
    try:
        return Availability(_text(value).lower())
    except ValueError:
        return Availability.UNKNOWN


def parse_offer_row(raw: Dict[str, Any], row_number: int) -> ParsedOfferRow:
    """Normalize one CSV record. Raises ValueError describing the first problem found."""
    supplier_name = _text(raw.get("supplier_name"))
    if not supplier_name:
        raise ValueError("supplier_name required")

    category_text = _text(raw.get("category")).lower()
    category = None
    if category_text:
        try:
            category = ProductCategory(category_text)
        except ValueError:
            raise ValueError("invalid category") from None

    unit_cost = _to_int(raw.get("unit_cost_jpy"))
    if not unit_cost or unit_cost <= 0:
        raise ValueError("unit_cost_jpy required")

    return ParsedOfferRow(
        row=row_number,
        supplier_name=supplier_name,
        variant_slug=_text(raw.get("variant_id")) or None,
        category=category,
        size=_text(raw.get("size")).upper() or None,
        length_mm=_to_int(raw.get("length_mm")),
        strength_class=_text(raw.get("strength_class")) or None,
        finish=_text(raw.get("finish")).lower() or None,
        pack_qty=_to_int(raw.get("pack_qty")),
        unit_cost_jpy=unit_cost,
        lead_time_days=_to_int(raw.get("lead_time_days")),
        availability=_availability(raw.get("availability")),
    )


def read_offer_csv(source: Union[str, bytes, io.IOBase]) -> pd.DataFrame:
    """Read a CSV path or raw bytes into a string-typed DataFrame."""
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    df = pd.read_csv(source, dtype=str, keep_default_na=False, skip_blank_lines=True)
    df.columns = [str(col).strip().lower() for col in df.columns]
    return df


def _find_or_create_supplier(db: Session, name: str) -> Supplier:
    supplier = (
        db.query(Supplier)
        .filter(func.lower(Supplier.name) == name.lower())
        .order_by(Supplier.created_at)
        .first()
    )
    if supplier is None:
        supplier = Supplier(name=name)
        db.add(supplier)
        db.flush()
    return supplier


def _match_column(column, value):
    return column.is_(None) if value is None else column == value


def _upsert_offer(db: Session, supplier: Supplier, variant: Optional[Variant], row: ParsedOfferRow) -> bool:
    """Create or update the offer keyed by supplier, variant and spec columns. Returns True if created."""
    variant_id = variant.id if variant else None
    existing = (
        db.query(SupplierOffer)
        .filter(
            SupplierOffer.supplier_id == supplier.id,
            _match_column(SupplierOffer.variant_id, variant_id),
            _match_column(SupplierOffer.category, row.category),
            _match_column(SupplierOffer.size, row.size),
            _match_column(SupplierOffer.length_mm, row.length_mm),
            _match_column(SupplierOffer.finish, row.finish),
            _match_column(SupplierOffer.strength_class, row.strength_class),
            _match_column(SupplierOffer.pack_qty, row.pack_qty),
        )
        .first()
    )
    if existing:
        existing.unit_cost_jpy = row.unit_cost_jpy
        existing.lead_time_days = row.lead_time_days
        existing.availability = row.availability.value
        existing.updated_at = datetime.utcnow()
        return False

    db.add(
        SupplierOffer(
            supplier_id=supplier.id,
            variant_id=variant_id,
            category=row.category,
            size=row.size,
            length_mm=row.length_mm,
            strength_class=row.strength_class,
            finish=row.finish,
            pack_qty=row.pack_qty,
            unit_cost_jpy=row.unit_cost_jpy,
            lead_time_days=row.lead_time_days,
            availability=row.availability.value,
        )
    )
    return True


def _variants_for_cost_basis(db: Session, variant: Optional[Variant], row: ParsedOfferRow) -> List[Variant]:
    if variant is not None:
        return [variant]
    pack_type = PACK_TYPE_BY_QTY.get(row.pack_qty)
    if not (row.category and row.size and pack_type):
        return []

    query = (
        db.query(Variant)
        .join(Product, Variant.product_id == Product.id)
        .filter(
            Variant.pack_type == pack_type,
            Product.category == row.category,
            Product.size == row.size,
        )
    )
    if row.length_mm is not None:
        query = query.filter(Product.length == row.length_mm)
    if row.finish:
        query = query.filter(Product.finish.ilike(f"%{row.finish}%"))
    if row.strength_class:
        query = query.filter(Product.strength_class == row.strength_class)
    return query.limit(COST_BASIS_VARIANT_LIMIT).all()


def import_offers(db: Session, df: pd.DataFrame) -> ImportReport:
    """Upsert supplier offers from a parsed sheet and record cost-basis history."""
    started = time.perf_counter()
    report = ImportReport()
    now = datetime.utcnow()

    missing = [col for col in ("supplier_name", "unit_cost_jpy") if col not in df.columns]
    if missing:
        raise ValueError(f"Missing required column(s): {', '.join(missing)}")
    absent = [col for col in EXPECTED_COLUMNS if col not in df.columns]
    if absent:
        logger.info("Offer sheet has no %s column(s); treating them as blank", ", ".join(absent))

    try:
        for idx, raw in enumerate(df.to_dict(orient="records")):
            row_number = idx + 2  # header is line 1
            try:
                row = parse_offer_row(raw, row_number)
            except ValueError as e:
                report.failed += 1
                report.errors.append({"row": row_number, "error": str(e)})
                continue

            supplier = _find_or_create_supplier(db, row.supplier_name)
            variant = (
                db.query(Variant).filter(Variant.slug == row.variant_slug).first()
                if row.variant_slug
                else None
            )
            if _upsert_offer(db, supplier, variant, row):
                report.created += 1
            else:
                report.updated += 1

            for target in _variants_for_cost_basis(db, variant, row):
                db.add(
                    CostBasis(
                        variant_id=target.id,
                        supplier_id=supplier.id,
                        cost_jpy_per_pack=row.unit_cost_jpy,
                        lead_time_days=row.lead_time_days,
                        availability=row.availability.value,
                        source=CostSource.SUPPLIER_OFFER.value,
                        captured_at=now,
                    )
                )
                report.cost_basis_written += 1
            db.flush()
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Imported supplier offers: %d created, %d updated, %d failed, %d cost basis rows in %.2fs",
        report.created,
        report.updated,
        report.failed,
        report.cost_basis_written,
        time.perf_counter() - started,
    )
    return report
