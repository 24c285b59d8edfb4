"""
Quote service.

Submission, role-filtered listing, comparison and the approve/reject/withdraw
lifecycle. Status transitions are conditional updates on the current status so
two callers resolving the same job race deterministically: the loser gets 409
and nothing it wrote survives.
"""
import uuid
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

import structlog
from fastapi import HTTPException, status
from sqlalchemy.orm import Session, joinedload

from ..config import settings
from ..db import transaction
from ..models.models import Job, Quote, QuoteItem, TradeProfile, User
from ..schemas.quotes import QuoteCreate, QuoteStatusUpdate
from .audit import record_job_history
from .formatting import money
from .job_service import generate_number, get_job_or_404
from .notifications import create_notification, notify_active_staff
from .permissions import authorize, is_customer, is_staff, is_trade
from .reference import JobStatusCode, QuoteStatus, reference_cache


logger = structlog.get_logger(__name__)

COMPETITOR_REJECTION_REASON = "Another quote was approved"
CUSTOMER_VISIBLE = (QuoteStatus.PENDING.value, QuoteStatus.APPROVED.value)


def valid_until(quote: Quote) -> Optional[datetime]:
    if quote.created_at is None:
        return None
    return quote.created_at + timedelta(days=quote.validity_days or settings.quote_validity_days)


def get_quote_or_404(db: Session, quote_id: uuid.UUID) -> Quote:
    quote = (
        db.query(Quote)
        .options(joinedload(Quote.job), joinedload(Quote.trade))
        .filter(Quote.id == quote_id)
        .first()
    )
    if not quote:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quote not found")
    return quote


def create_quote(db: Session, user: User, payload: QuoteCreate) -> Quote:
    if is_trade(user):
        trade_id = user.trade_id
    elif is_staff(user):
        trade_id = payload.trade_id
        if not trade_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="trade_id required for staff")
    else:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only trade specialists and staff can submit quotes")

    trade = db.query(TradeProfile).filter(TradeProfile.id == trade_id).first()
    if not trade:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trade specialist not found")

    job = get_job_or_404(db, payload.job_id)
    authorize(user, "job:quote", job, detail="You are not assigned to this job")

    quotes_received = reference_cache.status(JobStatusCode.QUOTES_RECEIVED, db)

    with transaction(db):
        quote = Quote(
            quote_number=generate_number("QTE"),
            job_id=job.id,
            trade_id=trade.id,
            amount=payload.amount,
            description=payload.description,
            estimated_duration=payload.estimated_duration,
            estimated_start_date=payload.estimated_start_date,
            validity_days=payload.validity_days or settings.quote_validity_days,
            status=QuoteStatus.PENDING.value,
            notes=payload.notes,
            created_at=datetime.utcnow(),
        )
        db.add(quote)
        db.flush()

        # Line items are stored as sent; totals are not recomputed
        for index, item in enumerate(payload.items):
            db.add(QuoteItem(
                quote_id=quote.id,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
                sort_order=index,
            ))

        job.status_id = quotes_received.id
        job.updated_at = datetime.utcnow()

        record_job_history(
            db, job.id, user.id, "quote_submitted",
            new_value=quote.quote_number,
            notes=f"Quote {quote.quote_number} submitted for ${quote.amount}",
        )
        notify_active_staff(
            db,
            "quote_received",
            "New Quote Received",
            f"{trade.company_name} submitted a quote of ${quote.amount} for job {job.job_number}.",
            job_id=job.id,
        )

    logger.info("quote_created", quote_id=str(quote.id), job_id=str(job.id), trade_id=str(trade.id))
    return quote


def list_quotes_for_job(db: Session, user: User, job_id: uuid.UUID) -> List[Quote]:
    job = get_job_or_404(db, job_id)
    authorize(user, "job:quotes", job)

    query = (
        db.query(Quote)
        .options(joinedload(Quote.trade), joinedload(Quote.items))
        .filter(Quote.job_id == job.id)
    )
    if is_customer(user):
        query = query.filter(Quote.status.in_(CUSTOMER_VISIBLE))
    elif is_trade(user):
        query = query.filter(Quote.trade_id == user.trade_id)
    return query.order_by(Quote.amount.asc(), Quote.created_at.asc()).all()


def compare_quotes(db: Session, job_id: uuid.UUID) -> dict:
    """
    Summarise the live quotes of a job.

    Withdrawn quotes are ignored. The recommended quote is the cheapest from a
    trade rated at least RECOMMENDED_MIN_RATING, falling back to the cheapest
    overall. An empty set gives ``{"quotes": [], "comparison": None}``.
    """
    get_job_or_404(db, job_id)
    quotes = (
        db.query(Quote)
        .options(joinedload(Quote.trade), joinedload(Quote.items))
        .filter(Quote.job_id == job_id, Quote.status != QuoteStatus.WITHDRAWN.value)
        .order_by(Quote.amount.asc(), Quote.created_at.asc())
        .all()
    )
    if not quotes:
        return {"quotes": [], "comparison": None}

    amounts = [Decimal(q.amount) for q in quotes]
    lowest = min(amounts)
    highest = max(amounts)
    average = (sum(amounts) / len(amounts)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    min_rating = Decimal(str(settings.recommended_min_rating))
    recommended = next(
        (q for q in quotes if q.trade is not None and Decimal(q.trade.rating or 0) >= min_rating),
        quotes[0],
    )

    return {
        "quotes": quotes,
        "comparison": {
            "total_quotes": len(quotes),
            "lowest_amount": money(lowest),
            "highest_amount": money(highest),
            "average_amount": money(average),
            "price_range": money(highest - lowest),
            "recommended_quote_id": str(recommended.id),
        },
    }


def _cas_quote_status(db: Session, quote_id: uuid.UUID, expected: str, values: dict) -> bool:
    updated = (
        db.query(Quote)
        .filter(Quote.id == quote_id, Quote.status == expected)
        .update(values, synchronize_session=False)
    )
    return updated == 1


def _reject_competitors(db: Session, quote: Quote, user: User) -> int:
    now = datetime.utcnow()
    return (
        db.query(Quote)
        .filter(
            Quote.job_id == quote.job_id,
            Quote.id != quote.id,
            Quote.status == QuoteStatus.PENDING.value,
        )
        .update(
            {
                "status": QuoteStatus.REJECTED.value,
                "rejection_reason": COMPETITOR_REJECTION_REASON,
                "approved_by": user.id,
                "approved_at": now,
                "updated_at": now,
            },
            synchronize_session=False,
        )
    )


def _approve(db: Session, user: User, quote: Quote) -> None:
    job = quote.job

    if quote.status == QuoteStatus.APPROVED.value:
        # Already approved: only sweep up competitors that arrived since
        rejected = _reject_competitors(db, quote, user)
        logger.info("quote_reapproved", quote_id=str(quote.id), competitors_rejected=rejected)
        return

    other_approved = (
        db.query(Quote.id)
        .filter(
            Quote.job_id == job.id,
            Quote.id != quote.id,
            Quote.status == QuoteStatus.APPROVED.value,
        )
        .first()
    )
    if other_approved:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Another quote has already been approved for this job")

    now = datetime.utcnow()
    if not _cas_quote_status(db, quote.id, QuoteStatus.PENDING.value, {
        "status": QuoteStatus.APPROVED.value,
        "approved_by": user.id,
        "approved_at": now,
        "updated_at": now,
    }):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Quote is no longer pending")

    approved_status = reference_cache.status(JobStatusCode.APPROVED, db)
    job_updated = (
        db.query(Job)
        .filter(
            Job.id == job.id,
            Job.status_id.in_(reference_cache.statuses_before(JobStatusCode.APPROVED, db)),
        )
        .update(
            {"status_id": approved_status.id, "estimated_cost": quote.amount, "updated_at": now},
            synchronize_session=False,
        )
    )
    if job_updated != 1:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job is no longer awaiting approval")

    rejected = _reject_competitors(db, quote, user)

    record_job_history(
        db, job.id, user.id, "quote_approved",
        new_value=quote.quote_number,
        notes=f"Quote {quote.quote_number} approved for ${quote.amount}",
    )
    create_notification(
        db,
        quote.trade.user_id,
        "quote_approved",
        "Quote Approved",
        f"Your quote {quote.quote_number} for job {job.job_number} has been approved.",
        job_id=job.id,
    )
    logger.info("quote_approved", quote_id=str(quote.id), job_id=str(job.id), competitors_rejected=rejected)


def _reject(db: Session, user: User, quote: Quote, reason: Optional[str]) -> None:
    now = datetime.utcnow()
    if not _cas_quote_status(db, quote.id, QuoteStatus.PENDING.value, {
        "status": QuoteStatus.REJECTED.value,
        "approved_by": user.id,
        "approved_at": now,
        "rejection_reason": reason,
        "updated_at": now,
    }):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only pending quotes can be rejected")

    record_job_history(
        db, quote.job_id, user.id, "quote_rejected",
        new_value=quote.quote_number,
        notes=reason,
    )
    logger.info("quote_rejected", quote_id=str(quote.id), job_id=str(quote.job_id))


def resolve_quote(db: Session, user: User, quote_id: uuid.UUID, payload: QuoteStatusUpdate) -> Quote:
    if payload.status not in (QuoteStatus.APPROVED.value, QuoteStatus.REJECTED.value):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status")

    quote = get_quote_or_404(db, quote_id)
    if is_trade(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Trade specialists cannot approve/reject quotes")
    authorize(user, "quote:resolve", quote)

    with transaction(db):
        if payload.status == QuoteStatus.APPROVED.value:
            _approve(db, user, quote)
        else:
            _reject(db, user, quote, payload.rejection_reason)

    db.refresh(quote)
    return quote


def withdraw_quote(db: Session, user: User, quote_id: uuid.UUID) -> Quote:
    if not is_trade(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only trade specialists can withdraw quotes")

    quote = get_quote_or_404(db, quote_id)
    authorize(user, "quote:withdraw", quote, detail="You can only withdraw your own quotes")

    if quote.status == QuoteStatus.APPROVED.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot withdraw an approved quote")

    with transaction(db):
        if not _cas_quote_status(db, quote.id, QuoteStatus.PENDING.value, {
            "status": QuoteStatus.WITHDRAWN.value,
            "updated_at": datetime.utcnow(),
        }):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only pending quotes can be withdrawn")

        record_job_history(db, quote.job_id, user.id, "quote_withdrawn", new_value=quote.quote_number)
        notify_active_staff(
            db,
            "quote_withdrawn",
            "Quote Withdrawn",
            f"Quote {quote.quote_number} for job {quote.job.job_number} has been withdrawn by {quote.trade.company_name}.",
            job_id=quote.job_id,
        )

    logger.info("quote_withdrawn", quote_id=str(quote.id), job_id=str(quote.job_id))
    db.refresh(quote)
    return quote
