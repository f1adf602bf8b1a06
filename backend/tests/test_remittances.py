"""
Remittance tests: submission, visibility and one-time verification.
"""

import pytest
from sqlalchemy import select

from backend.finpanel.models.audit_log import AuditLog
from backend.finpanel.models.notification import Notification


@pytest.mark.asyncio
async def test_submit_notifies_admins(client, db_session, admin_user, user_headers):
    response = await client.post(
        "/api/remittances", json={"amount": 2500, "note": "March dues"}, headers=user_headers
    )
    assert response.status_code == 201
    remittance = response.json()["remittance"]
    assert remittance["status"] == "PENDING"
    assert remittance["user"]["name"] == "Alice"

    notes = (await db_session.execute(
        select(Notification).where(Notification.user_id == admin_user.id)
    )).scalars().all()
    assert len(notes) == 1
    assert notes[0].message == "Alice submitted a remittance of KES 2,500"
    assert notes[0].data["remittanceId"] == remittance["id"]


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -10])
async def test_non_positive_amount_rejected(client, user_headers, amount):
    response = await client.post("/api/remittances", json={"amount": amount}, headers=user_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_visibility(client, user_headers, other_headers, admin_headers):
    await client.post("/api/remittances", json={"amount": 100}, headers=user_headers)
    await client.post("/api/remittances", json={"amount": 200}, headers=other_headers)

    mine = (await client.get("/api/remittances", headers=user_headers)).json()
    assert [r["amount"] for r in mine] == [100]

    everything = (await client.get("/api/remittances", headers=admin_headers)).json()
    assert sorted(r["amount"] for r in everything) == [100, 200]

    pending = (await client.get("/api/remittances?status=VERIFIED", headers=admin_headers)).json()
    assert pending == []


@pytest.mark.asyncio
async def test_verify_credits_pool(client, db_session, regular_user, user_headers, admin_headers):
    await client.post("/api/fund-pool", json={"delta": 1000}, headers=admin_headers)
    created = await client.post("/api/remittances", json={"amount": 300}, headers=user_headers)
    remittance_id = created.json()["remittance"]["id"]

    response = await client.post(
        f"/api/remittances/{remittance_id}/verify", json={"approve": True}, headers=admin_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["newBalance"] == 1300
    assert body["remittance"]["status"] == "VERIFIED"
    assert body["remittance"]["verifiedBy"] is not None
    assert (await client.get("/api/fund-pool")).json()["balance"] == 1300

    actions = (await db_session.execute(select(AuditLog.action).order_by(AuditLog.id))).scalars().all()
    assert "REMITTANCE_POOL_CREDIT" in actions
    assert actions[-1] == "REMITTANCE_VERIFIED"

    titles = (await db_session.execute(
        select(Notification.title).where(Notification.user_id == regular_user.id)
    )).scalars().all()
    assert titles == ["Remittance Verified"]

    # Second decision is refused
    again = await client.post(
        f"/api/remittances/{remittance_id}/verify", json={"approve": False}, headers=admin_headers
    )
    assert again.status_code == 400
    assert again.json()["error"] == "Already processed"


@pytest.mark.asyncio
async def test_reject_leaves_pool_alone(client, user_headers, admin_headers):
    await client.post("/api/fund-pool", json={"delta": 50}, headers=admin_headers)
    created = await client.post("/api/remittances", json={"amount": 300}, headers=user_headers)
    remittance_id = created.json()["remittance"]["id"]

    response = await client.post(
        f"/api/remittances/{remittance_id}/verify",
        json={"approve": False, "note": "No proof"},
        headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["newBalance"] is None
    assert response.json()["remittance"]["status"] == "REJECTED"
    assert (await client.get("/api/fund-pool")).json()["balance"] == 50


@pytest.mark.asyncio
async def test_verify_guards(client, user_headers, admin_headers):
    created = await client.post("/api/remittances", json={"amount": 300}, headers=user_headers)
    remittance_id = created.json()["remittance"]["id"]

    as_user = await client.post(
        f"/api/remittances/{remittance_id}/verify", json={"approve": True}, headers=user_headers
    )
    assert as_user.status_code == 403

    missing = await client.post("/api/remittances/9999/verify", json={"approve": True}, headers=admin_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_admins_verify_but_do_not_submit(client, admin_headers):
    response = await client.post("/api/remittances", json={"amount": 100}, headers=admin_headers)
    assert response.status_code == 403
    assert (await client.get("/api/remittances", headers=admin_headers)).json() == []
