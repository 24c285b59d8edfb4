from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..db import get_db, transaction
from ..models.models import CustomerProfile, User
from ..schemas.auth import (
    AddressInput,
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
)
from ..services.formatting import iso, money, uid
from ..services.reference import Role
from .security import (
    create_access_token,
    get_current_user,
    get_password_hash,
    verify_password,
)


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _serialize_address(profile) -> dict:
    return {
        "line1": profile.address_line1,
        "line2": profile.address_line2,
        "city": profile.city,
        "state": profile.state,
        "postal_code": profile.postal_code,
    }


def _apply_address(profile, address: AddressInput) -> None:
    data = address.model_dump(exclude_unset=True)
    for key, column in (
        ("line1", "address_line1"),
        ("line2", "address_line2"),
        ("city", "city"),
        ("state", "state"),
        ("postal_code", "postal_code"),
    ):
        if key in data:
            setattr(profile, column, data[key])


def serialize_user(user: User) -> dict:
    data = {
        "id": str(user.id),
        "email": user.email,
        "role": user.role,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "phone": user.phone,
        "is_active": user.is_active,
        "customer_id": uid(user.customer_id),
        "trade_id": uid(user.trade_id),
        "created_at": iso(user.created_at),
        "last_login_at": iso(user.last_login_at),
    }
    if user.customer_profile is not None:
        c = user.customer_profile
        data["customer"] = {
            "id": str(c.id),
            "organization_name": c.organization_name,
            "organization_type": c.organization_type,
            "address": _serialize_address(c),
            "country": c.country,
            "billing_email": c.billing_email,
        }
    if user.trade_profile is not None:
        t = user.trade_profile
        data["trade"] = {
            "id": str(t.id),
            "company_name": t.company_name,
            "abn": t.abn,
            "license_number": t.license_number,
            "rating": money(t.rating),
            "total_jobs_completed": t.total_jobs_completed,
            "is_verified": t.is_verified,
        }
    return data


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    # Self-registration is for customers; trades are onboarded by staff
    if payload.role != Role.CUSTOMER.value:
        raise HTTPException(status_code=403, detail="Only customer accounts can self-register")

    email = payload.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="Email already registered")

    with transaction(db):
        user = User(
            email=email,
            password_hash=get_password_hash(payload.password),
            role=Role.CUSTOMER.value,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
            is_active=True,
        )
        db.add(user)
        db.flush()
        profile = CustomerProfile(
            user_id=user.id,
            organization_name=payload.organization_name,
            organization_type=payload.organization_type,
        )
        if payload.address:
            _apply_address(profile, payload.address)
        db.add(profile)
        db.flush()
        user.customer_profile = profile

    logger.info("user_registered", user_id=str(user.id), role=user.role)
    return {"token": create_access_token(user), "user": serialize_user(user)}


@router.post("/login")
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == req.email.strip().lower()).first()
    if not user or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    return {"token": create_access_token(user), "user": serialize_user(user)}


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)):
    return serialize_user(user)


@router.put("/profile")
def update_profile(payload: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(status_code=400, detail="No fields to update")

    with transaction(db):
        for key in ("first_name", "last_name", "phone"):
            if key in data:
                setattr(user, key, data[key])
        profile = user.customer_profile
        if profile is not None:
            if "organization_name" in data:
                profile.organization_name = data["organization_name"]
            if "billing_email" in data:
                profile.billing_email = data["billing_email"]
            if payload.address is not None:
                _apply_address(profile, payload.address)
        user.updated_at = datetime.utcnow()

    db.refresh(user)
    return serialize_user(user)


@router.post("/change-password")
def change_password(payload: ChangePasswordRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not verify_password(payload.current_password, user.password_hash):
        raise HTTPException(status_code=401, detail="Current password is incorrect")
    user.password_hash = get_password_hash(payload.new_password)
    user.updated_at = datetime.utcnow()
    db.commit()
    logger.info("password_changed", user_id=str(user.id))
    return {"status": "ok"}
