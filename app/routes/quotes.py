import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..db import get_db
from ..models.models import Quote, User
from ..schemas.quotes import QuoteCreate, QuoteStatusUpdate
from ..services import quote_service
from ..services.formatting import iso, money, uid
from ..services.reference import Role

router = APIRouter(prefix="/quotes", tags=["quotes"])


def serialize_quote(quote: Quote) -> dict:
    trade = quote.trade
    return {
        "id": str(quote.id),
        "quote_number": quote.quote_number,
        "job_id": str(quote.job_id),
        "trade_id": str(quote.trade_id),
        "trade_company_name": trade.company_name if trade else None,
        "trade_rating": money(trade.rating) if trade else None,
        "amount": money(quote.amount),
        "description": quote.description,
        "estimated_duration": quote.estimated_duration,
        "estimated_start_date": iso(quote.estimated_start_date),
        "validity_days": quote.validity_days,
        "valid_until": iso(quote_service.valid_until(quote)),
        "status": quote.status,
        "approved_by": uid(quote.approved_by),
        "approved_at": iso(quote.approved_at),
        "rejection_reason": quote.rejection_reason,
        "notes": quote.notes,
        "created_at": iso(quote.created_at),
        "updated_at": iso(quote.updated_at),
        "items": [
            {
                "id": str(item.id),
                "description": item.description,
                "quantity": money(item.quantity),
                "unit_price": money(item.unit_price),
                "total_price": money(item.total_price),
                "sort_order": item.sort_order,
            }
            for item in quote.items
        ],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_quote(payload: QuoteCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    quote = quote_service.create_quote(db, user, payload)
    return {
        "message": "Quote submitted successfully",
        "quote": {"id": str(quote.id), "quote_number": quote.quote_number},
    }


@router.get("/job/{job_id}")
def list_job_quotes(job_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [serialize_quote(q) for q in quote_service.list_quotes_for_job(db, user, job_id)]


@router.get("/job/{job_id}/comparison")
def compare_job_quotes(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(Role.STAFF)),
):
    result = quote_service.compare_quotes(db, job_id)
    return {
        "quotes": [serialize_quote(q) for q in result["quotes"]],
        "comparison": result["comparison"],
    }


@router.put("/{quote_id}/status")
def update_quote_status(
    quote_id: uuid.UUID,
    payload: QuoteStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    quote = quote_service.resolve_quote(db, user, quote_id, payload)
    return {"message": f"Quote {quote.status} successfully", "quote": serialize_quote(quote)}


@router.put("/{quote_id}/withdraw")
def withdraw_quote(quote_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    quote = quote_service.withdraw_quote(db, user, quote_id)
    return {"message": "Quote withdrawn successfully", "quote": serialize_quote(quote)}
