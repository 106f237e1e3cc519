"""
Supplier offer API endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File as FastAPIFile
from sqlalchemy.orm import Session
from typing import List, Optional
import logging
from app.db.database import get_db
from app.models import SupplierOffer
from app.schemas.offers import SupplierOfferResponse, OfferImportResponse
from app.services.offer_import import import_offers, read_offer_csv

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/import", response_model=OfferImportResponse)
async def import_offer_sheet(
    file: UploadFile = FastAPIFile(...),
    db: Session = Depends(get_db)
):
    """Import a supplier offer CSV. Bad rows are reported, not fatal."""
    content = await file.read()
    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="file required"
        )
    try:
        df = read_offer_csv(content)
        report = import_offers(db, df)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Offer import failed for {file.filename}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Offer import failed: {str(e)}"
        )
    return report.to_dict()


@router.get("/", response_model=List[SupplierOfferResponse])
async def list_offers(
    supplier_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """List supplier offers, most recently updated first."""
    query = db.query(SupplierOffer)
    if supplier_id:
        query = query.filter(SupplierOffer.supplier_id == supplier_id)
    return query.order_by(SupplierOffer.updated_at.desc()).all()
