import uuid
from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..auth.security import get_current_user, get_password_hash, require_roles
from ..db import get_db, transaction
from ..models.models import (
    Category,
    CustomerProfile,
    Job,
    JobStatus,
    PriorityLevel,
    TradeProfile,
    User,
    trade_categories,
)
from ..schemas.auth import AddressInput
from ..schemas.data import CategoryCreate, CategoryUpdate, TradeCreate, TradeUpdate
from ..services.formatting import iso, money, uid
from ..services.permissions import authorize, is_staff
from ..services.reference import JobStatusCode, Role

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/data", tags=["data"])


def _serialize_category(c: Category) -> dict:
    return {
        "id": str(c.id),
        "name": c.name,
        "description": c.description,
        "icon": c.icon,
        "is_active": c.is_active,
        "created_at": iso(c.created_at),
    }


def _serialize_trade(t: TradeProfile) -> dict:
    user = t.user
    return {
        "id": str(t.id),
        "user_id": str(t.user_id),
        "email": user.email if user else None,
        "first_name": user.first_name if user else None,
        "last_name": user.last_name if user else None,
        "phone": user.phone if user else None,
        "company_name": t.company_name,
        "abn": t.abn,
        "license_number": t.license_number,
        "insurance_expiry": iso(t.insurance_expiry),
        "address": {
            "line1": t.address_line1,
            "line2": t.address_line2,
            "city": t.city,
            "state": t.state,
            "postal_code": t.postal_code,
        },
        "service_areas": t.service_areas,
        "rating": money(t.rating),
        "total_jobs_completed": t.total_jobs_completed,
        "is_verified": t.is_verified,
        "is_active": t.is_active,
        "categories": [{"id": str(c.id), "name": c.name} for c in t.categories],
    }


def _serialize_customer(c: CustomerProfile, total_jobs: int) -> dict:
    user = c.user
    return {
        "id": str(c.id),
        "user_id": str(c.user_id),
        "email": user.email if user else None,
        "first_name": user.first_name if user else None,
        "last_name": user.last_name if user else None,
        "phone": user.phone if user else None,
        "user_created_at": iso(user.created_at) if user else None,
        "organization_name": c.organization_name,
        "organization_type": c.organization_type,
        "address": {
            "line1": c.address_line1,
            "line2": c.address_line2,
            "city": c.city,
            "state": c.state,
            "postal_code": c.postal_code,
        },
        "country": c.country,
        "billing_email": c.billing_email,
        "notes": c.notes,
        "total_jobs": total_jobs,
    }


def _apply_trade_address(trade: TradeProfile, address: AddressInput) -> None:
    data = address.model_dump(exclude_unset=True)
    for key, column in (
        ("line1", "address_line1"),
        ("line2", "address_line2"),
        ("city", "city"),
        ("state", "state"),
        ("postal_code", "postal_code"),
    ):
        if key in data:
            setattr(trade, column, data[key])


def _load_categories(db: Session, ids) -> list:
    unique_ids = list(dict.fromkeys(ids))
    if not unique_ids:
        return []
    found = db.query(Category).filter(Category.id.in_(unique_ids)).all()
    if len(found) != len(unique_ids):
        raise HTTPException(status_code=404, detail="Category not found")
    return found


# ---------- Categories ----------

@router.get("/categories")
def list_categories(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    rows = db.query(Category).filter(Category.is_active.is_(True)).order_by(Category.name.asc()).all()
    return [_serialize_category(c) for c in rows]


@router.post("/categories", status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.STAFF)),
):
    if db.query(Category).filter(func.lower(Category.name) == payload.name.lower()).first():
        raise HTTPException(status_code=409, detail="Category already exists")
    category = Category(
        name=payload.name,
        description=payload.description,
        icon=payload.icon,
        is_active=True,
        created_by=user.id,
    )
    try:
        with transaction(db):
            db.add(category)
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Category already exists")
    logger.info("category_created", category_id=str(category.id), name=category.name)
    return _serialize_category(category)


@router.put("/categories/{category_id}")
def update_category(
    category_id: uuid.UUID,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(Role.STAFF)),
):
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")
    if data.get("name") is None:
        data.pop("name", None)
    if data.get("is_active") is None:
        data.pop("is_active", None)
    if "name" in data:
        clash = (
            db.query(Category)
            .filter(func.lower(Category.name) == data["name"].strip().lower(), Category.id != category.id)
            .first()
        )
        if clash:
            raise HTTPException(status_code=409, detail="Category already exists")
        data["name"] = data["name"].strip()
    for key, value in data.items():
        setattr(category, key, value)
    try:
        with transaction(db):
            db.flush()
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Category already exists")
    return _serialize_category(category)


# ---------- Reference lookups ----------

@router.get("/priorities")
def list_priorities(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    rows = db.query(PriorityLevel).order_by(PriorityLevel.sort_order.asc()).all()
    return [
        {
            "id": str(p.id),
            "code": p.code,
            "name": p.name,
            "description": p.description,
            "response_time_hours": p.response_time_hours,
            "color_code": p.color_code,
            "sort_order": p.sort_order,
        }
        for p in rows
    ]


@router.get("/statuses")
def list_statuses(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    rows = db.query(JobStatus).order_by(JobStatus.sort_order.asc()).all()
    return [
        {
            "id": str(s.id),
            "code": s.code,
            "name": s.name,
            "description": s.description,
            "sort_order": s.sort_order,
            "is_final": s.is_final,
        }
        for s in rows
    ]


# ---------- Trade specialists ----------

@router.get("/trade-specialists")
def list_trade_specialists(
    category_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    query = (
        db.query(TradeProfile)
        .options(joinedload(TradeProfile.user), joinedload(TradeProfile.categories))
        .filter(TradeProfile.is_active.is_(True))
    )
    if category_id:
        query = query.filter(
            TradeProfile.id.in_(
                db.query(trade_categories.c.trade_id).filter(trade_categories.c.category_id == category_id)
            )
        )
    rows = query.order_by(TradeProfile.rating.desc(), TradeProfile.company_name.asc()).all()
    return [_serialize_trade(t) for t in rows]


@router.get("/trade-specialists/{trade_id}")
def get_trade_specialist(trade_id: uuid.UUID, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    trade = (
        db.query(TradeProfile)
        .options(joinedload(TradeProfile.user), joinedload(TradeProfile.categories))
        .filter(TradeProfile.id == trade_id)
        .first()
    )
    if not trade:
        raise HTTPException(status_code=404, detail="Trade specialist not found")
    completed = (
        db.query(Job)
        .join(JobStatus, Job.status_id == JobStatus.id)
        .filter(Job.assigned_trade_id == trade.id, JobStatus.code == JobStatusCode.COMPLETED.value)
        .count()
    )
    data = _serialize_trade(trade)
    data["completed_jobs"] = completed
    return data


@router.post("/trade-specialists", status_code=status.HTTP_201_CREATED)
def create_trade_specialist(
    payload: TradeCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles(Role.STAFF)),
):
    email = payload.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="Email already registered")
    categories = _load_categories(db, payload.categories)

    with transaction(db):
        user = User(
            email=email,
            password_hash=get_password_hash(payload.password),
            role=Role.TRADE.value,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
            is_active=True,
        )
        db.add(user)
        db.flush()
        trade = TradeProfile(
            user_id=user.id,
            company_name=payload.company_name,
            abn=payload.abn,
            license_number=payload.license_number,
            service_areas=payload.service_areas,
        )
        if payload.address:
            _apply_trade_address(trade, payload.address)
        trade.categories = categories
        db.add(trade)
        db.flush()

    logger.info("trade_created", trade_id=str(trade.id), user_id=str(user.id))
    return {
        "message": "Trade specialist created successfully",
        "trade_id": str(trade.id),
        "user_id": str(user.id),
    }


@router.put("/trade-specialists/{trade_id}")
def update_trade_specialist(
    trade_id: uuid.UUID,
    payload: TradeUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    trade = db.query(TradeProfile).filter(TradeProfile.id == trade_id).first()
    if not trade:
        raise HTTPException(status_code=404, detail="Trade specialist not found")
    authorize(user, "trade:update", trade)

    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")
    staff_only = {"is_verified", "is_active", "rating", "categories"}
    if not is_staff(user) and staff_only & data.keys():
        raise HTTPException(status_code=403, detail="Only staff can change verification, status, rating or categories")

    with transaction(db):
        for key in ("company_name", "abn", "license_number", "service_areas", "is_verified", "is_active", "rating"):
            if key in data:
                if data[key] is None and key in ("company_name", "is_verified", "is_active", "rating"):
                    continue
                setattr(trade, key, data[key])
        if payload.address is not None:
            _apply_trade_address(trade, payload.address)
        if payload.categories is not None:
            trade.categories = _load_categories(db, payload.categories)
        trade.updated_at = datetime.utcnow()

    logger.info("trade_updated", trade_id=str(trade.id), fields=sorted(data), updated_by=str(user.id))
    return {"message": "Trade specialist updated successfully", "trade": _serialize_trade(trade)}


# ---------- Customers ----------

@router.get("/customers")
def list_customers(db: Session = Depends(get_db), _: User = Depends(require_roles(Role.STAFF))):
    job_counts = (
        db.query(Job.customer_id, func.count(Job.id).label("total_jobs"))
        .group_by(Job.customer_id)
        .subquery()
    )
    rows = (
        db.query(CustomerProfile, func.coalesce(job_counts.c.total_jobs, 0))
        .join(User, CustomerProfile.user_id == User.id)
        .outerjoin(job_counts, job_counts.c.customer_id == CustomerProfile.id)
        .options(joinedload(CustomerProfile.user))
        .filter(User.is_active.is_(True))
        .order_by(CustomerProfile.organization_name.asc())
        .all()
    )
    return [_serialize_customer(c, total) for c, total in rows]


@router.get("/customers/{customer_id}")
def get_customer(customer_id: uuid.UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    customer = (
        db.query(CustomerProfile)
        .options(joinedload(CustomerProfile.user))
        .filter(CustomerProfile.id == customer_id)
        .first()
    )
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    authorize(user, "customer:view", customer)

    total_jobs = db.query(Job).filter(Job.customer_id == customer.id).count()
    recent = (
        db.query(Job)
        .options(joinedload(Job.status))
        .filter(Job.customer_id == customer.id)
        .order_by(Job.created_at.desc())
        .limit(10)
        .all()
    )
    data = _serialize_customer(customer, total_jobs)
    data["recent_jobs"] = [
        {
            "id": str(j.id),
            "job_number": j.job_number,
            "title": j.title,
            "status_name": j.status.name if j.status else None,
            "assigned_trade_id": uid(j.assigned_trade_id),
            "created_at": iso(j.created_at),
        }
        for j in recent
    ]
    return data
