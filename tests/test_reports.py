"""Tests for role-scoped dashboards and reports."""
from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from app.models.models import Job
from app.services.reference import JobStatusCode, reference_cache
from conftest import assign_trade, auth_headers, create_job, submit_quote


async def _complete(client, staff_user, job_id: str, final_cost: float):
    completed = reference_cache.status(JobStatusCode.COMPLETED)
    response = await client.put(
        f"/jobs/{job_id}",
        json={"status_id": str(completed.id), "final_cost": final_cost},
        headers=auth_headers(staff_user),
    )
    assert response.status_code == 200


@pytest.fixture
async def workload(client, staff_user, customer_user, other_customer, trade_user, category_ids):
    """Two jobs for customer_user (one completed by trade_user) and one for other_customer."""
    done = await create_job(client, customer_user, category_ids["Electrical"], title="Lights")
    await assign_trade(client, staff_user, done["id"], trade_user)
    await submit_quote(client, trade_user, done["id"], 400)
    await _complete(client, staff_user, done["id"], 420)

    open_job = await create_job(client, customer_user, category_ids["Plumbing"], title="Tap")
    other = await create_job(client, other_customer, category_ids["Electrical"], title="Switch")
    return {"done": done, "open": open_job, "other": other}


@pytest.mark.asyncio
async def test_dashboards_per_role(client: AsyncClient, workload, staff_user, customer_user, trade_user):
    customer = (await client.get("/reports/dashboard", headers=auth_headers(customer_user))).json()
    assert customer == {
        "total_jobs": 2,
        "active_jobs": 1,
        "completed_jobs": 1,
        "pending_approval": 0,
        "total_spent": 420.0,
    }

    staff = (await client.get("/reports/dashboard", headers=auth_headers(staff_user))).json()
    assert staff["total_jobs"] == 3
    assert staff["new_jobs"] == 2
    assert staff["total_customers"] == 2
    assert staff["total_trades"] == 1
    assert staff["total_revenue"] == 420.0

    trade = (await client.get("/reports/dashboard", headers=auth_headers(trade_user))).json()
    assert trade["assigned_jobs"] == 1
    assert trade["completed_jobs"] == 1
    assert trade["pending_quotes"] == 1
    assert trade["total_earnings"] == 420.0


@pytest.mark.asyncio
async def test_job_statistics_scoping(client: AsyncClient, workload, staff_user, customer_user, other_customer):
    staff = (await client.get("/reports/job-statistics", headers=auth_headers(staff_user))).json()
    assert sum(row["count"] for row in staff["by_status"]) == 3
    assert {row["name"]: row["count"] for row in staff["by_category"]} == {"Electrical": 2, "Plumbing": 1}
    assert staff["by_priority"][0]["name"] == "Medium"
    assert staff["by_priority"][0]["color_code"]

    filtered = (await client.get(
        "/reports/job-statistics",
        params={"customer_id": str(other_customer.customer_id)},
        headers=auth_headers(staff_user),
    )).json()
    assert sum(row["count"] for row in filtered["by_status"]) == 1

    # Customers always see only their own jobs
    customer = (await client.get(
        "/reports/job-statistics",
        params={"customer_id": str(other_customer.customer_id)},
        headers=auth_headers(customer_user),
    )).json()
    assert sum(row["count"] for row in customer["by_status"]) == 2


@pytest.mark.asyncio
async def test_date_bounds_are_inclusive(client: AsyncClient, db, workload, staff_user):
    old = db.query(Job).filter(Job.title == "Switch").one()
    old.created_at = datetime.utcnow() - timedelta(days=40)
    db.commit()

    today = datetime.utcnow().date()
    params = {"start_date": (today - timedelta(days=7)).isoformat(), "end_date": today.isoformat()}
    stats = (await client.get("/reports/job-statistics", params=params, headers=auth_headers(staff_user))).json()
    assert sum(row["count"] for row in stats["by_status"]) == 2

    # One bound alone does not filter
    stats = (await client.get(
        "/reports/job-statistics",
        params={"start_date": params["start_date"]},
        headers=auth_headers(staff_user),
    )).json()
    assert sum(row["count"] for row in stats["by_status"]) == 3


@pytest.mark.asyncio
async def test_financial_report(client: AsyncClient, workload, staff_user, customer_user, trade_user):
    customer = (await client.get("/reports/financial", headers=auth_headers(customer_user))).json()
    assert customer["summary"]["total_jobs"] == 2
    assert customer["summary"]["completed_jobs"] == 1
    assert customer["summary"]["total_spent"] == 420.0
    assert customer["by_category"] == [{"name": "Electrical", "total": 420.0}]
    assert "top_customers" not in customer

    staff = (await client.get("/reports/financial", headers=auth_headers(staff_user))).json()
    assert staff["summary"]["total_revenue"] == 420.0
    assert staff["summary"]["avg_job_value"] == 420.0
    assert staff["by_category"] == [{"name": "Electrical", "revenue": 420.0, "jobs": 1}]
    assert staff["top_customers"][0]["organization_name"] == "Eagles Football Club"

    assert (await client.get("/reports/financial", headers=auth_headers(trade_user))).status_code == 403


@pytest.mark.asyncio
async def test_performance_metrics(client: AsyncClient, workload, staff_user, customer_user):
    data = (await client.get("/reports/performance", headers=auth_headers(staff_user))).json()
    assert data["completion_rate"] == {"total_jobs": 3, "completed_jobs": 1, "completion_percentage": 33.33}
    assert data["avg_time_to_completion_days"] == 0
    assert data["avg_time_to_first_quote_days"] == 0
    assert [t["company_name"] for t in data["top_performing_trades"]] == ["Bright Sparks Electrical"]
    assert data["top_performing_trades"][0]["completed_jobs"] == 1

    assert (await client.get("/reports/performance", headers=auth_headers(customer_user))).status_code == 403
