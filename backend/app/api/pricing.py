"""
Dynamic pricing API endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List
import logging
from dataclasses import asdict
from app.db.database import get_db
from app.models import FxRate, PricingRule
from app.models.pricing import PricingScope
from app.schemas.pricing import (
    FxRateCreate,
    FxRateResponse,
    PricingRuleCreate,
    PricingRuleResponse,
    RepriceRequest,
    ApplyRepriceRequest,
    RepricePreviewResponse,
    ApplyRepriceResponse,
)
from app.services.pricing_calc import InvalidPricingInput, usd_to_cents
from app.services.pricing_inputs import MissingCostBasisError, MissingFxRateError
from app.services.reprice import PreviewOptions, apply_reprice, preview_reprice, summarize_preview
from app.services.export import reprice_preview_csv, reprice_preview_xlsx

router = APIRouter()
logger = logging.getLogger(__name__)

PRICING_INPUT_ERRORS = (MissingFxRateError, MissingCostBasisError, InvalidPricingInput)


def _options(request: RepriceRequest) -> PreviewOptions:
    return PreviewOptions(
        category=request.category,
        size=request.size.strip() if request.size else None,
        limit=request.limit,
        allow_override=request.allow_override,
    )


def _run_preview(db: Session, request: RepriceRequest):
    try:
        rows = preview_reprice(db, _options(request))
        # Persist the default rule if preview had to create one
        db.commit()
        return rows
    except PRICING_INPUT_ERRORS as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Reprice preview failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Reprice preview failed: {str(e)}"
        )


@router.post("/fx", response_model=FxRateResponse, status_code=status.HTTP_201_CREATED)
async def record_fx_rate(
    fx_data: FxRateCreate,
    db: Session = Depends(get_db)
):
    """Record a JPY per USD exchange rate."""
    fx = FxRate(pair="JPYUSD", rate=fx_data.jpy_per_usd, source=fx_data.source)
    db.add(fx)
    db.commit()
    db.refresh(fx)
    logger.info("Recorded FX rate %.4f JPY/USD (%s)", fx.rate, fx.source)
    return fx


@router.get("/rules", response_model=List[PricingRuleResponse])
async def list_rules(
    db: Session = Depends(get_db)
):
    """List pricing rules, most recently updated first."""
    return db.query(PricingRule).order_by(PricingRule.updated_at.desc()).all()


@router.post("/rules", response_model=PricingRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    rule_data: PricingRuleCreate,
    db: Session = Depends(get_db)
):
    """Create a pricing rule. Only the field matching the scope is kept."""
    if rule_data.min_price_usd > rule_data.max_price_usd:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="min_price_usd must not exceed max_price_usd"
        )
    scope = rule_data.scope
    if scope is PricingScope.CATEGORY and not rule_data.category:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="category required for category scope")
    if scope is PricingScope.SIZE and not (rule_data.size and rule_data.size.strip()):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="size required for size scope")
    if scope is PricingScope.VARIANT and not rule_data.variant_id:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="variant_id required for variant scope")

    rule = PricingRule(
        scope=scope,
        category=rule_data.category if scope is PricingScope.CATEGORY else None,
        size=rule_data.size.strip().upper() if scope is PricingScope.SIZE else None,
        variant_id=rule_data.variant_id if scope is PricingScope.VARIANT else None,
        target_gross_margin=rule_data.target_gross_margin,
        min_price_usd_cents=usd_to_cents(rule_data.min_price_usd),
        max_price_usd_cents=usd_to_cents(rule_data.max_price_usd),
        rounding=rule_data.rounding,
        max_weekly_change_pct=rule_data.max_weekly_change_pct,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    logger.info("Created %s pricing rule %s", scope.value, rule.id)
    return rule


@router.delete("/rules/{rule_id}", status_code=status.HTTP_200_OK)
async def delete_rule(
    rule_id: str,
    db: Session = Depends(get_db)
):
    """Delete a pricing rule."""
    rule = db.query(PricingRule).filter(PricingRule.id == rule_id).first()
    if not rule:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Pricing rule {rule_id} not found"
        )
    db.delete(rule)
    db.commit()
    return {"ok": True}


@router.post("/preview", response_model=RepricePreviewResponse)
async def preview(
    request: RepriceRequest,
    db: Session = Depends(get_db)
):
    """Preview recommended prices without changing anything."""
    rows = _run_preview(db, request)
    return {**summarize_preview(rows), "rows": [asdict(r) for r in rows]}


@router.post("/apply", response_model=ApplyRepriceResponse)
async def apply(
    request: ApplyRepriceRequest,
    db: Session = Depends(get_db)
):
    """Apply recommended prices and log every change."""
    try:
        result = apply_reprice(db, request.admin_user_id, _options(request))
        return {"ok": True, "updated": result.updated_count}
    except PRICING_INPUT_ERRORS as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Reprice apply failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Reprice apply failed: {str(e)}"
        )


@router.post("/preview.csv")
async def preview_csv(
    request: RepriceRequest,
    db: Session = Depends(get_db)
):
    """Download the reprice preview as CSV."""
    rows = _run_preview(db, request)
    return Response(
        content=reprice_preview_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": 'attachment; filename="pricing-preview.csv"',
            "Cache-Control": "private, max-age=0, no-store",
        },
    )


@router.post("/preview.xlsx")
async def preview_xlsx(
    request: RepriceRequest,
    db: Session = Depends(get_db)
):
    """Download the reprice preview as an Excel workbook."""
    rows = _run_preview(db, request)
    return Response(
        content=reprice_preview_xlsx(rows),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="pricing-preview.xlsx"'},
    )
