"""
Export services for reprice previews, routing decisions and shipping rules (CSV and Excel).
"""
import io
import logging
from typing import List

import pandas as pd
from openpyxl.styles import Font, PatternFill
from sqlalchemy.orm import Session

from app.models import Order, RoutingDecision, ShippingRule, ShippingZone
from app.services.reprice import RepriceRow, summarize_preview

logger = logging.getLogger(__name__)

PREVIEW_COLUMNS = [
    "variant_id",
    "slug",
    "category",
    "size",
    "pack_type",
    "current_usd",
    "recommended_usd",
    "pct_change",
]

DECISION_COLUMNS = [
    "order_item_id",
    "variant_id",
    "chosen_supplier_id",
    "chosen_offer_id",
    "strategy",
    "final_score",
    "estimated_cost_jpy",
    "reason_text",
]

SHIPPING_RULE_COLUMNS = [
    "zone_name",
    "band",
    "carrier",
    "price_usd",
    "eta_min_days",
    "eta_max_days",
    "tracking_included",
    "notes",
]

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="305496", end_color="305496", fill_type="solid")


def reprice_preview_dataframe(rows: List[RepriceRow]) -> pd.DataFrame:
    data = [
        {
            "variant_id": r.variant_id,
            "slug": r.slug,
            "category": r.category,
            "size": r.size,
            "pack_type": r.pack_type,
            "current_usd": f"{r.current_price_usd_cents / 100:.2f}",
            "recommended_usd": f"{r.recommended_price_usd_cents / 100:.2f}",
            "pct_change": f"{r.pct_change:.4f}",
        }
        for r in rows
    ]
    return pd.DataFrame(data, columns=PREVIEW_COLUMNS)


def reprice_preview_csv(rows: List[RepriceRow]) -> str:
    return reprice_preview_dataframe(rows).to_csv(index=False, lineterminator="\n")


def reprice_preview_xlsx(rows: List[RepriceRow]) -> bytes:
    """
    Workbook with two sheets:
    - Summary (count, changed, max absolute change)
    - Preview (one row per variant)
    """
    summary = summarize_preview(rows)
    summary_df = pd.DataFrame(
        {
            "Metric": ["Variants", "Changed", "Max abs % change"],
            "Value": [summary["count"], summary["changed"], f"{summary['max_abs_pct_change'] * 100:.2f}%"],
        }
    )

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        summary_df.to_excel(writer, sheet_name="Summary", index=False)
        reprice_preview_dataframe(rows).to_excel(writer, sheet_name="Preview", index=False)

        for ws in writer.book.worksheets:
            for cell in ws[1]:
                cell.font = HEADER_FONT
                cell.fill = HEADER_FILL
            for column in ws.columns:
                width = max(len(str(cell.value or "")) for cell in column)
                ws.column_dimensions[column[0].column_letter].width = min(width + 2, 60)

    logger.info("Built reprice preview workbook with %d rows", len(rows))
    return buffer.getvalue()


def routing_decisions_dataframe(db: Session, order_id: str) -> pd.DataFrame:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise ValueError(f"Order {order_id} not found")

    decisions = (
        db.query(RoutingDecision)
        .filter(RoutingDecision.order_id == order_id)
        .order_by(RoutingDecision.created_at, RoutingDecision.id)
        .all()
    )
    data = []
    for d in decisions:
        chosen = next(
            (c for c in (d.score_json or {}).get("candidates", []) if c.get("offer_id") == d.chosen_offer_id),
            {},
        )
        data.append({
            "order_item_id": d.order_item_id,
            "variant_id": d.variant_id,
            "chosen_supplier_id": d.chosen_supplier_id or "",
            "chosen_offer_id": d.chosen_offer_id or "",
            "strategy": getattr(d.strategy, "value", d.strategy),
            "final_score": chosen.get("final_score", ""),
            "estimated_cost_jpy": chosen.get("estimated_cost_jpy", ""),
            "reason_text": d.reason_text or "",
        })
    return pd.DataFrame(data, columns=DECISION_COLUMNS)


def routing_decisions_csv(db: Session, order_id: str) -> str:
    return routing_decisions_dataframe(db, order_id).to_csv(index=False, lineterminator="\n")


def shipping_rules_dataframe(db: Session) -> pd.DataFrame:
    rules = (
        db.query(ShippingRule)
        .join(ShippingZone, ShippingRule.zone_id == ShippingZone.id)
        .order_by(ShippingZone.name, ShippingRule.band, ShippingRule.carrier)
        .all()
    )
    data = [
        {
            "zone_name": r.zone.name,
            "band": getattr(r.band, "value", r.band),
            "carrier": getattr(r.carrier, "value", r.carrier),
            "price_usd": f"{r.price_usd_cents / 100:.2f}",
            "eta_min_days": r.eta_min_days,
            "eta_max_days": r.eta_max_days,
            "tracking_included": "true" if r.tracking_included else "false",
            "notes": r.notes or "",
        }
        for r in rules
    ]
    return pd.DataFrame(data, columns=SHIPPING_RULE_COLUMNS)


def shipping_rules_csv(db: Session) -> str:
    """Same columns the rules import reads, so an export can be edited and re-imported."""
    return shipping_rules_dataframe(db).to_csv(index=False, lineterminator="\n")
