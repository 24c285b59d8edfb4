"""
Seed the local database with sample accounts and one open job.

Usage:
  python scripts/seed_test_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (email for accounts, title for the sample job).
"""
import os
import sys
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from app.auth.security import get_password_hash  # noqa: E402
from app.db import Base, SessionLocal, engine  # noqa: E402
from app.models.models import Category, CustomerProfile, Job, TradeProfile, User  # noqa: E402
from app.services.audit import record_job_history  # noqa: E402
from app.services.job_service import generate_number  # noqa: E402
from app.services.reference import (  # noqa: E402
    JobStatusCode,
    PriorityCode,
    Role,
    reference_cache,
    seed_reference_data,
)


def ensure_user(session, email: str, password: str, role: Role, first_name: str, last_name: str, phone: str | None = None) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        user.role = role.value
        user.first_name = first_name
        user.last_name = last_name
        # Keep an existing password; only fill it in when missing
        if not getattr(user, "password_hash", None):
            user.password_hash = get_password_hash(password)
        session.flush()
        return user
    user = User(
        email=email,
        password_hash=get_password_hash(password),
        role=role.value,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        is_active=True,
    )
    session.add(user)
    session.flush()
    return user


def ensure_customer(session, user: User, **fields) -> CustomerProfile:
    profile = session.query(CustomerProfile).filter(CustomerProfile.user_id == user.id).first()
    if not profile:
        profile = CustomerProfile(user_id=user.id)
        session.add(profile)
    for key, value in fields.items():
        setattr(profile, key, value)
    session.flush()
    return profile


def ensure_trade(session, user: User, category_names: list[str], **fields) -> TradeProfile:
    trade = session.query(TradeProfile).filter(TradeProfile.user_id == user.id).first()
    if not trade:
        trade = TradeProfile(user_id=user.id, company_name=fields.pop("company_name"))
        session.add(trade)
    for key, value in fields.items():
        setattr(trade, key, value)
    trade.categories = session.query(Category).filter(Category.name.in_(category_names)).all()
    session.flush()
    return trade


def ensure_job(session, customer: CustomerProfile, created_by: User, category_name: str, title: str, description: str) -> Job:
    job = session.query(Job).filter(Job.customer_id == customer.id, Job.title == title).first()
    if job:
        return job
    category = session.query(Category).filter(Category.name == category_name).one()
    new_status = reference_cache.status(JobStatusCode.NEW, session)
    job = Job(
        job_number=generate_number("JOB"),
        customer_id=customer.id,
        category_id=category.id,
        priority_id=reference_cache.priority(PriorityCode.MEDIUM, session).id,
        status_id=new_status.id,
        title=title,
        description=description,
        location_address="12 Stadium Rd, Geelong VIC 3220",
    )
    session.add(job)
    session.flush()
    record_job_history(session, job.id, created_by.id, "created", new_value=new_status.name, notes="Job created")
    return job


def main():
    if engine.url.get_backend_name() == "sqlite":
        os.makedirs("var", exist_ok=True)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        seed_reference_data(session)
        reference_cache.load(session)

        staff = ensure_user(session, "admin@maintenancehub.example", "TestAdmin123!", Role.STAFF, "Sam", "Staff")

        cust_user = ensure_user(session, "facilities@eaglesfc.example", "TestUser123!", Role.CUSTOMER, "Casey", "Nguyen", "03 5555 0101")
        customer = ensure_customer(
            session,
            cust_user,
            organization_name="Eagles Football Club",
            organization_type="sporting_organization",
            address_line1="12 Stadium Rd",
            city="Geelong",
            state="VIC",
            postal_code="3220",
            billing_email="accounts@eaglesfc.example",
        )

        trade_user = ensure_user(session, "jobs@brightsparks.example", "TestUser123!", Role.TRADE, "Riley", "Tran", "0400 555 202")
        ensure_trade(
            session,
            trade_user,
            ["Electrical"],
            company_name="Bright Sparks Electrical",
            abn="51824753556",
            license_number="REC-22871",
            service_areas="Geelong, Surf Coast, Bellarine",
            rating=Decimal("4.60"),
            is_verified=True,
        )

        ensure_job(
            session,
            customer,
            staff,
            "Electrical",
            "Change room lights flickering",
            "Fluorescent fittings in the home change room flicker and two tubes have failed.",
        )

        # Commit all changes
        session.commit()
        print("Seed completed: staff, customer, trade and sample job upserted.")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
