"""
Test configuration and fixtures.

Provides:
- In-memory SQLite session with reference data seeded (fresh schema per test)
- Accounts for each role and JWT headers for them
- HTTPX AsyncClient over the ASGI app with get_db/get_storage overridden
"""
import os
import uuid
from decimal import Decimal
from typing import AsyncGenerator, Generator

# Must be set before app.config is imported
os.environ["DATABASE_URL"] = "sqlite:///./var/test.db"
os.environ["RATE_LIMIT"] = "100000/minute"
os.environ["AUTO_CREATE_DB"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.security import create_access_token, get_password_hash
from app.db import Base, get_db
from app.main import app
from app.models.models import Category, CustomerProfile, TradeProfile, User
from app.services.reference import Role, reference_cache, seed_reference_data
from app.storage.local_provider import LocalStorageProvider, get_storage


PASSWORD = "Secret123!"


# =============================================================================
# Database
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh in-memory database per test, with statuses/priorities/categories seeded."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = TestingSession()
    seed_reference_data(session)
    reference_cache.clear()
    reference_cache.load(session)

    yield session

    session.close()
    reference_cache.clear()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def storage(tmp_path) -> LocalStorageProvider:
    return LocalStorageProvider(tmp_path / "uploads")


# =============================================================================
# Accounts
# =============================================================================

def make_user(db: Session, role: Role, email: str | None = None, **names) -> User:
    user = User(
        email=email or f"{role.value}-{uuid.uuid4().hex[:8]}@test.example",
        password_hash=get_password_hash(PASSWORD),
        role=role.value,
        first_name=names.get("first_name", role.value.title()),
        last_name=names.get("last_name", "Tester"),
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user


def make_customer(db: Session, organization_name: str = "Eagles Football Club") -> User:
    user = make_user(db, Role.CUSTOMER)
    db.add(CustomerProfile(user_id=user.id, organization_name=organization_name, organization_type="sporting_organization"))
    db.commit()
    db.refresh(user)
    return user


def make_trade(db: Session, company_name: str, rating: str = "4.50", categories: tuple = ("Electrical",)) -> User:
    user = make_user(db, Role.TRADE)
    trade = TradeProfile(user_id=user.id, company_name=company_name, rating=Decimal(rating), is_verified=True)
    trade.categories = db.query(Category).filter(Category.name.in_(categories)).all()
    db.add(trade)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def staff_user(db: Session) -> User:
    user = make_user(db, Role.STAFF, first_name="Sam", last_name="Staff")
    db.commit()
    return user


@pytest.fixture
def customer_user(db: Session) -> User:
    return make_customer(db)


@pytest.fixture
def other_customer(db: Session) -> User:
    return make_customer(db, organization_name="Harbourside Apartments")


@pytest.fixture
def trade_user(db: Session) -> User:
    return make_trade(db, "Bright Sparks Electrical", rating="4.60")


@pytest.fixture
def other_trade(db: Session) -> User:
    return make_trade(db, "Budget Wiring Co", rating="3.20")


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def category_ids(db: Session) -> dict:
    return {c.name: str(c.id) for c in db.query(Category).all()}


# =============================================================================
# Client
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session, storage: LocalStorageProvider) -> AsyncGenerator[AsyncClient, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Workflow helpers
# =============================================================================

async def create_job(client: AsyncClient, user: User, category_id: str, **fields) -> dict:
    body = {"category_id": category_id, "title": "Leaking tap", "description": "Kitchen tap drips constantly"}
    body.update(fields)
    response = await client.post("/jobs", json=body, headers=auth_headers(user))
    assert response.status_code == 201, response.text
    return response.json()["job"]


async def assign_trade(client: AsyncClient, staff: User, job_id: str, trade: User) -> None:
    response = await client.put(
        f"/jobs/{job_id}",
        json={"assigned_trade_id": str(trade.trade_id)},
        headers=auth_headers(staff),
    )
    assert response.status_code == 200, response.text


async def submit_quote(client: AsyncClient, trade: User, job_id: str, amount: float, **fields) -> dict:
    body = {"job_id": job_id, "amount": amount, "description": "Replace washer and cartridge"}
    body.update(fields)
    response = await client.post("/quotes", json=body, headers=auth_headers(trade))
    assert response.status_code == 201, response.text
    return response.json()["quote"]
