"""Tests for reference data, the trade directory and customer lookups."""
import uuid

import pytest
from httpx import AsyncClient

from app.models.models import TradeProfile, User
from conftest import auth_headers, create_job, make_trade


@pytest.mark.asyncio
async def test_categories_crud(client: AsyncClient, staff_user, customer_user, category_ids):
    listed = (await client.get("/data/categories", headers=auth_headers(customer_user))).json()
    names = [c["name"] for c in listed]
    assert names == sorted(names)
    assert "Plumbing" in names

    created = await client.post(
        "/data/categories",
        json={"name": "  Solar  ", "description": "Panels and inverters", "icon": "sun"},
        headers=auth_headers(staff_user),
    )
    assert created.status_code == 201
    solar = created.json()
    assert solar["name"] == "Solar"

    duplicate = await client.post("/data/categories", json={"name": "solar"}, headers=auth_headers(staff_user))
    assert duplicate.status_code == 409

    forbidden = await client.post("/data/categories", json={"name": "Pools"}, headers=auth_headers(customer_user))
    assert forbidden.status_code == 403

    empty = await client.put(f"/data/categories/{solar['id']}", json={}, headers=auth_headers(staff_user))
    assert empty.status_code == 400

    hidden = await client.put(f"/data/categories/{solar['id']}", json={"is_active": False}, headers=auth_headers(staff_user))
    assert hidden.status_code == 200
    assert hidden.json()["description"] == "Panels and inverters"
    listed = (await client.get("/data/categories", headers=auth_headers(customer_user))).json()
    assert "Solar" not in [c["name"] for c in listed]

    missing = await client.put(f"/data/categories/{uuid.uuid4()}", json={"icon": "x"}, headers=auth_headers(staff_user))
    assert missing.status_code == 404

    clash = await client.put(f"/data/categories/{category_ids['Roofing']}", json={"name": "plumbing"}, headers=auth_headers(staff_user))
    assert clash.status_code == 409
    renamed = await client.put(f"/data/categories/{category_ids['Roofing']}", json={"name": "roofing "}, headers=auth_headers(staff_user))
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "roofing"


@pytest.mark.asyncio
async def test_priorities_and_statuses_are_ordered(client: AsyncClient, customer_user):
    priorities = (await client.get("/data/priorities", headers=auth_headers(customer_user))).json()
    assert [p["name"] for p in priorities] == ["Critical", "High", "Medium", "Low"]
    assert priorities[0]["response_time_hours"] == 2

    statuses = (await client.get("/data/statuses", headers=auth_headers(customer_user))).json()
    assert statuses[0]["name"] == "New"
    assert [s["name"] for s in statuses if s["is_final"]] == ["Completed", "Cancelled"]

    assert (await client.get("/data/statuses")).status_code == 401


@pytest.mark.asyncio
async def test_trade_directory_filters_and_orders(client: AsyncClient, db, customer_user, trade_user, other_trade, category_ids):
    plumber = make_trade(db, "Pipe Pros", rating="4.90", categories=("Plumbing",))
    inactive = make_trade(db, "Gone Fishing Electrical", rating="5.00")
    db.query(TradeProfile).filter(TradeProfile.id == inactive.trade_id).update({"is_active": False})
    db.commit()

    everyone = (await client.get("/data/trade-specialists", headers=auth_headers(customer_user))).json()
    assert [t["company_name"] for t in everyone] == ["Pipe Pros", "Bright Sparks Electrical", "Budget Wiring Co"]

    electrical = (await client.get(
        "/data/trade-specialists",
        params={"category_id": category_ids["Electrical"]},
        headers=auth_headers(customer_user),
    )).json()
    assert [t["company_name"] for t in electrical] == ["Bright Sparks Electrical", "Budget Wiring Co"]
    assert electrical[0]["categories"] == [{"id": category_ids["Electrical"], "name": "Electrical"}]

    detail = (await client.get(f"/data/trade-specialists/{plumber.trade_id}", headers=auth_headers(customer_user))).json()
    assert detail["rating"] == 4.9
    assert detail["completed_jobs"] == 0
    assert (await client.get(f"/data/trade-specialists/{uuid.uuid4()}", headers=auth_headers(customer_user))).status_code == 404


@pytest.mark.asyncio
async def test_staff_creates_trade_account(client: AsyncClient, db, staff_user, trade_user, category_ids):
    body = {
        "email": "New.Trade@Example.com",
        "password": "Sparky123!",
        "first_name": "Nina",
        "last_name": "Volt",
        "company_name": "Volt Electrical",
        "address": {"city": "Perth", "state": "WA"},
        "categories": [category_ids["Electrical"], category_ids["HVAC"]],
    }
    forbidden = await client.post("/data/trade-specialists", json=body, headers=auth_headers(trade_user))
    assert forbidden.status_code == 403

    response = await client.post("/data/trade-specialists", json=body, headers=auth_headers(staff_user))
    assert response.status_code == 201
    created = response.json()

    user = db.query(User).filter(User.id == uuid.UUID(created["user_id"])).one()
    assert user.email == "new.trade@example.com"
    assert user.role == "trade"
    trade = db.query(TradeProfile).filter(TradeProfile.id == uuid.UUID(created["trade_id"])).one()
    assert trade.city == "Perth"
    assert sorted(c.name for c in trade.categories) == ["Electrical", "HVAC"]

    login = await client.post("/auth/login", json={"email": "new.trade@example.com", "password": "Sparky123!"})
    assert login.status_code == 200

    duplicate = await client.post("/data/trade-specialists", json=body, headers=auth_headers(staff_user))
    assert duplicate.status_code == 409

    body["email"] = "other@example.com"
    body["categories"] = [str(uuid.uuid4())]
    unknown = await client.post("/data/trade-specialists", json=body, headers=auth_headers(staff_user))
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_trade_profile_update_rules(client: AsyncClient, staff_user, trade_user, other_trade, category_ids):
    own = await client.put(
        f"/data/trade-specialists/{trade_user.trade_id}",
        json={"license_number": "EC-1234", "address": {"city": "Fremantle"}},
        headers=auth_headers(trade_user),
    )
    assert own.status_code == 200
    assert own.json()["trade"]["license_number"] == "EC-1234"
    assert own.json()["trade"]["address"]["city"] == "Fremantle"

    foreign = await client.put(
        f"/data/trade-specialists/{other_trade.trade_id}",
        json={"license_number": "X"},
        headers=auth_headers(trade_user),
    )
    assert foreign.status_code == 403

    self_verify = await client.put(
        f"/data/trade-specialists/{trade_user.trade_id}",
        json={"is_verified": True, "rating": 5},
        headers=auth_headers(trade_user),
    )
    assert self_verify.status_code == 403

    staff = await client.put(
        f"/data/trade-specialists/{other_trade.trade_id}",
        json={"rating": 4.1, "categories": [category_ids["Plumbing"]]},
        headers=auth_headers(staff_user),
    )
    assert staff.status_code == 200
    assert staff.json()["trade"]["rating"] == 4.1
    assert [c["name"] for c in staff.json()["trade"]["categories"]] == ["Plumbing"]


@pytest.mark.asyncio
async def test_customers_directory(client: AsyncClient, staff_user, customer_user, other_customer, trade_user, category_ids):
    await create_job(client, customer_user, category_ids["Plumbing"], title="Tap")
    await create_job(client, customer_user, category_ids["Painting"], title="Walls")

    listed = (await client.get("/data/customers", headers=auth_headers(staff_user))).json()
    assert [(c["organization_name"], c["total_jobs"]) for c in listed] == [
        ("Eagles Football Club", 2),
        ("Harbourside Apartments", 0),
    ]
    assert (await client.get("/data/customers", headers=auth_headers(customer_user))).status_code == 403

    own = (await client.get(f"/data/customers/{customer_user.customer_id}", headers=auth_headers(customer_user))).json()
    assert own["total_jobs"] == 2
    assert [j["title"] for j in own["recent_jobs"]] == ["Walls", "Tap"]

    assert (await client.get(f"/data/customers/{customer_user.customer_id}", headers=auth_headers(other_customer))).status_code == 403
    assert (await client.get(f"/data/customers/{customer_user.customer_id}", headers=auth_headers(trade_user))).status_code == 403
    assert (await client.get(f"/data/customers/{uuid.uuid4()}", headers=auth_headers(staff_user))).status_code == 404
