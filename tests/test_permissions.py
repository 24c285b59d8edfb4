"""Unit tests for capability rules and the reference-data cache."""
import uuid
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base
from app.models.models import JobStatus
from app.services.permissions import authorize, is_allowed
from app.services.reference import JobStatusCode, ReferenceCache, reference_cache, seed_reference_data


CUSTOMER_ID = uuid.uuid4()
TRADE_ID = uuid.uuid4()

staff = SimpleNamespace(id=uuid.uuid4(), role="staff", customer_id=None, trade_id=None)
customer = SimpleNamespace(id=uuid.uuid4(), role="customer", customer_id=CUSTOMER_ID, trade_id=None)
trade = SimpleNamespace(id=uuid.uuid4(), role="trade", customer_id=None, trade_id=TRADE_ID)


def _job(customer_id=CUSTOMER_ID, assigned_trade_id=None):
    return SimpleNamespace(customer_id=customer_id, assigned_trade_id=assigned_trade_id)


def test_job_visibility_by_role():
    own = _job()
    assigned = _job(customer_id=uuid.uuid4(), assigned_trade_id=TRADE_ID)

    assert is_allowed(staff, "job:view", own)
    assert is_allowed(customer, "job:view", own)
    assert not is_allowed(customer, "job:view", assigned)
    assert is_allowed(trade, "job:view", assigned)
    assert not is_allowed(trade, "job:view", own)


def test_quote_rules():
    job = _job(assigned_trade_id=TRADE_ID)
    quote = SimpleNamespace(trade_id=TRADE_ID, job=job)

    assert is_allowed(trade, "job:quote", job)
    assert not is_allowed(trade, "job:quote", _job())
    assert not is_allowed(customer, "job:quote", job)
    assert is_allowed(staff, "job:quote", _job())

    assert is_allowed(customer, "quote:resolve", quote)
    assert not is_allowed(trade, "quote:resolve", quote)
    assert is_allowed(trade, "quote:withdraw", quote)
    assert not is_allowed(staff, "quote:withdraw", quote)


def test_trade_keeps_read_access_to_own_quotes():
    unassigned = SimpleNamespace(customer_id=CUSTOMER_ID, assigned_trade_id=None, quotes=[SimpleNamespace(trade_id=TRADE_ID)])
    stranger = SimpleNamespace(customer_id=CUSTOMER_ID, assigned_trade_id=None, quotes=[SimpleNamespace(trade_id=uuid.uuid4())])

    assert is_allowed(trade, "job:quotes", unassigned)
    assert not is_allowed(trade, "job:view", unassigned)
    assert not is_allowed(trade, "job:quotes", stranger)
    assert is_allowed(customer, "job:quotes", stranger)


def test_profile_and_notification_rules():
    assert is_allowed(customer, "customer:view", SimpleNamespace(id=CUSTOMER_ID))
    assert not is_allowed(customer, "customer:view", SimpleNamespace(id=uuid.uuid4()))
    assert not is_allowed(trade, "customer:view", SimpleNamespace(id=CUSTOMER_ID))

    assert is_allowed(trade, "trade:update", SimpleNamespace(id=TRADE_ID))
    assert not is_allowed(trade, "trade:update", SimpleNamespace(id=uuid.uuid4()))

    assert is_allowed(customer, "notification:manage", SimpleNamespace(user_id=customer.id))
    assert not is_allowed(staff, "notification:manage", SimpleNamespace(user_id=customer.id))


def test_authorize_raises_forbidden_with_detail():
    with pytest.raises(HTTPException) as exc:
        authorize(customer, "job:view", _job(customer_id=uuid.uuid4()), detail="Not your job")
    assert exc.value.status_code == 403
    assert exc.value.detail == "Not your job"

    with pytest.raises(KeyError):
        is_allowed(staff, "job:explode", _job())


@pytest.fixture
def session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(bind=engine)()
    yield db
    db.close()
    reference_cache.clear()
    engine.dispose()


def test_reference_cache_orders_statuses(session):
    seed_reference_data(session)
    seed_reference_data(session)
    assert session.query(JobStatus).count() == len(JobStatusCode)

    cache = ReferenceCache()
    cache.load(session)
    before = cache.statuses_before(JobStatusCode.APPROVED)
    names = {cache.status_by_id(status_id).name for status_id in before}
    assert names == {"New", "Under Review", "Awaiting Quotes", "Quotes Received", "Pending Approval"}
    assert cache.status_by_id(uuid.uuid4()) is None


def test_reference_cache_requires_seeded_rows(session):
    cache = ReferenceCache()
    with pytest.raises(RuntimeError):
        cache.status(JobStatusCode.NEW)
    with pytest.raises(RuntimeError):
        cache.load(session)

    seed_reference_data(session)
    assert cache.status(JobStatusCode.NEW, session).name == "New"
