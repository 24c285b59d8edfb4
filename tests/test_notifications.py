"""Tests for the notification inbox endpoints."""
import uuid
from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from app.services import notifications as notification_service
from conftest import auth_headers, create_job


def _seed(db, user, count: int, job_id=None):
    base = datetime.utcnow() - timedelta(hours=1)
    for i in range(count):
        note = notification_service.create_notification(db, user.id, "status_change", f"Title {i}", f"Message {i}", job_id=job_id)
        note.created_at = base + timedelta(seconds=i)
    db.commit()


@pytest.mark.asyncio
async def test_list_includes_job_number_and_filters_unread(client: AsyncClient, customer_user, category_ids):
    job = await create_job(client, customer_user, category_ids["Painting"])
    headers = auth_headers(customer_user)

    listed = (await client.get("/notifications", headers=headers)).json()
    assert len(listed) == 1
    assert listed[0]["job_number"] == job["job_number"]
    assert listed[0]["is_read"] is False

    await client.put(f"/notifications/{listed[0]['id']}/read", headers=headers)
    assert (await client.get("/notifications", params={"unread_only": True}, headers=headers)).json() == []
    assert (await client.get("/notifications/unread-count", headers=headers)).json() == {"unread_count": 0}


@pytest.mark.asyncio
async def test_list_is_capped_and_newest_first(client: AsyncClient, db, staff_user):
    _seed(db, staff_user, 55)
    listed = (await client.get("/notifications", headers=auth_headers(staff_user))).json()
    assert len(listed) == 50
    assert listed[0]["title"] == "Title 54"


@pytest.mark.asyncio
async def test_mark_all_read_only_touches_own(client: AsyncClient, db, customer_user, other_customer):
    _seed(db, customer_user, 3)
    _seed(db, other_customer, 2)

    response = await client.put("/notifications/read-all", headers=auth_headers(customer_user))
    assert response.status_code == 200
    assert response.json()["updated"] == 3

    mine = (await client.get("/notifications/unread-count", headers=auth_headers(customer_user))).json()
    theirs = (await client.get("/notifications/unread-count", headers=auth_headers(other_customer))).json()
    assert mine["unread_count"] == 0
    assert theirs["unread_count"] == 2


@pytest.mark.asyncio
async def test_foreign_notification_is_forbidden(client: AsyncClient, db, customer_user, other_customer):
    _seed(db, customer_user, 1)
    note_id = (await client.get("/notifications", headers=auth_headers(customer_user))).json()[0]["id"]

    assert (await client.put(f"/notifications/{note_id}/read", headers=auth_headers(other_customer))).status_code == 403
    assert (await client.delete(f"/notifications/{note_id}", headers=auth_headers(other_customer))).status_code == 403
    assert (await client.delete(f"/notifications/{uuid.uuid4()}", headers=auth_headers(customer_user))).status_code == 404

    assert (await client.delete(f"/notifications/{note_id}", headers=auth_headers(customer_user))).status_code == 200
    assert (await client.get("/notifications", headers=auth_headers(customer_user))).json() == []
