"""
Shipping API endpoints - quotes plus zone, rule and carrier policy configuration.
"""
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File as FastAPIFile
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List, Optional
import logging
from app.db.database import get_db
from app.schemas.shipping import (
    ShippingPreviewRequest,
    ShippingQuoteRequest,
    ShippingQuoteResponse,
    ShippingZoneCreate,
    ShippingZoneUpdate,
    ShippingZoneResponse,
    ShippingRuleUpsert,
    ShippingRuleResponse,
    CarrierPolicyUpsert,
    CarrierPolicyResponse,
    RuleImportResponse,
)
from app.services import shipping_admin
from app.services.export import shipping_rules_csv
from app.services.carrier_selector import NoShippingRulesError
from app.services.pricing_calc import usd_to_cents
from app.services.shipping_quote import CartLine, preview_carrier, quote_shipping

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/preview", response_model=ShippingQuoteResponse)
async def preview(
    request: ShippingPreviewRequest,
    db: Session = Depends(get_db)
):
    """Preview carrier selection for explicit bands, subtotal and weight."""
    try:
        quote = preview_carrier(
            db,
            request.country_code,
            request.bands,
            usd_to_cents(request.subtotal_usd),
            request.weight_kg,
        )
        return quote.to_dict()
    except NoShippingRulesError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )


@router.post("/quote", response_model=ShippingQuoteResponse)
async def quote(
    request: ShippingQuoteRequest,
    db: Session = Depends(get_db)
):
    """Quote shipping for a cart of variant slugs."""
    try:
        result = quote_shipping(
            db,
            request.country_code,
            [CartLine(variant_slug=item.variant_id, quantity=item.quantity) for item in request.items],
        )
        return result.to_dict()
    except NoShippingRulesError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


def _config_error(e: ValueError) -> HTTPException:
    if isinstance(e, shipping_admin.ShippingConfigNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    if isinstance(e, shipping_admin.ShippingConfigConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=str(e)
    )


# ---------------------------------------------------------------- zones


@router.get("/zones", response_model=List[ShippingZoneResponse])
async def list_zones(
    db: Session = Depends(get_db)
):
    """List shipping zones with their countries and carrier policy."""
    return shipping_admin.list_zones(db)


@router.post("/zones", response_model=ShippingZoneResponse, status_code=status.HTTP_201_CREATED)
async def create_zone(
    zone_data: ShippingZoneCreate,
    db: Session = Depends(get_db)
):
    """Create a shipping zone and assign its countries."""
    try:
        return shipping_admin.create_zone(db, zone_data.name, zone_data.is_active, zone_data.countries)
    except ValueError as e:
        db.rollback()
        raise _config_error(e)


@router.put("/zones/{zone_id}", response_model=ShippingZoneResponse)
async def update_zone(
    zone_id: str,
    zone_data: ShippingZoneUpdate,
    db: Session = Depends(get_db)
):
    """Update a zone's name and active flag and replace its countries."""
    try:
        return shipping_admin.update_zone(db, zone_id, zone_data.name, zone_data.is_active, zone_data.countries)
    except ValueError as e:
        db.rollback()
        raise _config_error(e)


@router.delete("/zones/{zone_id}")
async def delete_zone(
    zone_id: str,
    db: Session = Depends(get_db)
):
    """Delete a zone together with its countries, rules and policy."""
    try:
        shipping_admin.delete_zone(db, zone_id)
    except ValueError as e:
        raise _config_error(e)
    return {"ok": True}


# ---------------------------------------------------------------- rules


@router.get("/rules", response_model=List[ShippingRuleResponse])
async def list_rules(
    zone_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """List shipping rules, optionally for one zone."""
    return shipping_admin.list_rules(db, zone_id)


@router.post("/rules", response_model=ShippingRuleResponse)
async def upsert_rule(
    rule_data: ShippingRuleUpsert,
    db: Session = Depends(get_db)
):
    """Create or update the rule for a zone, band and carrier."""
    try:
        return shipping_admin.upsert_rule(
            db,
            rule_data.zone_id,
            rule_data.band,
            rule_data.carrier,
            usd_to_cents(rule_data.price_usd),
            rule_data.eta_min_days,
            rule_data.eta_max_days,
            tracking_included=rule_data.tracking_included,
            notes=rule_data.notes,
        )
    except ValueError as e:
        raise _config_error(e)


@router.delete("/rules/{rule_id}")
async def delete_rule(
    rule_id: str,
    db: Session = Depends(get_db)
):
    """Delete a shipping rule."""
    try:
        shipping_admin.delete_rule(db, rule_id)
    except ValueError as e:
        raise _config_error(e)
    return {"ok": True}


@router.post("/rules/import", response_model=RuleImportResponse)
async def import_rules(
    file: UploadFile = FastAPIFile(...),
    db: Session = Depends(get_db)
):
    """Import shipping rules from CSV. Bad rows are reported, not fatal."""
    content = await file.read()
    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="file required"
        )
    try:
        df = shipping_admin.read_rules_csv(content)
        report = shipping_admin.import_rules(db, df)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Shipping rule import failed for {file.filename}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Shipping rule import failed: {str(e)}"
        )
    return report.to_dict()


@router.get("/rules/export.csv")
async def export_rules(
    db: Session = Depends(get_db)
):
    """Download every shipping rule in the import CSV format."""
    return Response(
        content=shipping_rules_csv(db),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="shipping_rules.csv"'},
    )


# ---------------------------------------------------------------- policies


@router.get("/policies", response_model=List[CarrierPolicyResponse])
async def list_policies(
    db: Session = Depends(get_db)
):
    """List carrier policies, most recently updated first."""
    return shipping_admin.list_policies(db)


@router.post("/policies", response_model=CarrierPolicyResponse)
async def upsert_policy(
    policy_data: CarrierPolicyUpsert,
    db: Session = Depends(get_db)
):
    """Create or update a zone's carrier policy. Omitted fields are left unchanged."""
    sent = policy_data.model_fields_set
    changes = {
        key: getattr(policy_data, key)
        for key in ("policy", "default_carrier", "force_dhl_over_weight_kg")
        if key in sent
    }
    if "force_dhl_over_subtotal_usd" in sent:
        subtotal = policy_data.force_dhl_over_subtotal_usd
        changes["force_dhl_over_subtotal_usd_cents"] = usd_to_cents(subtotal) if subtotal is not None else None
    try:
        return shipping_admin.upsert_policy(db, policy_data.zone_id, **changes)
    except ValueError as e:
        db.rollback()
        raise _config_error(e)
