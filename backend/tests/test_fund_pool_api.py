"""
Fund pool HTTP surface.
"""

import pytest


@pytest.mark.asyncio
async def test_read_is_open(client):
    response = await client.get("/api/fund-pool")
    assert response.status_code == 200
    assert response.json() == {"balance": 0, "updatedAt": None, "updatedBy": None}


@pytest.mark.asyncio
async def test_admin_adjusts_pool(client, admin_headers, admin_user):
    response = await client.post("/api/fund-pool", json={"delta": 100}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "balance": 100}

    response = await client.post(
        "/api/fund-pool", json={"delta": 50, "note": "grant"}, headers=admin_headers
    )
    assert response.json()["balance"] == 150

    data = (await client.get("/api/fund-pool")).json()
    assert data["balance"] == 150
    assert data["updatedBy"] == {"id": admin_user.id, "name": "Admin", "email": "admin@test.com"}
    assert data["updatedAt"] is not None


@pytest.mark.asyncio
async def test_overdraw_is_400_and_balance_unchanged(client, admin_headers):
    await client.post("/api/fund-pool", json={"delta": 150}, headers=admin_headers)

    response = await client.post("/api/fund-pool", json={"delta": -200}, headers=admin_headers)
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Insufficient funds in pool"
    assert body["error_code"] == "ERR_FUNDS_001"

    assert (await client.get("/api/fund-pool")).json()["balance"] == 150


@pytest.mark.asyncio
async def test_non_admin_gets_401(client, admin_headers, user_headers):
    await client.post("/api/fund-pool", json={"delta": 100}, headers=admin_headers)

    response = await client.post("/api/fund-pool", json={"delta": 50}, headers=user_headers)
    assert response.status_code == 401
    assert (await client.get("/api/fund-pool")).json()["balance"] == 100


@pytest.mark.asyncio
async def test_anonymous_write_gets_401(client):
    response = await client.post("/api/fund-pool", json={"delta": 50})
    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"delta": "50"}, {"delta": 12.5}, {"delta": True}, {}])
async def test_malformed_delta_is_400(client, admin_headers, body):
    response = await client.post("/api/fund-pool", json=body, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_adjustment_shows_in_audit_trail(client, admin_headers):
    await client.post("/api/fund-pool", json={"delta": 100}, headers=admin_headers)
    await client.post("/api/fund-pool", json={"delta": 50, "note": "grant"}, headers=admin_headers)

    response = await client.get("/api/audit?action=FUND_POOL_UPDATED", headers=admin_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 2
    assert body["actionStats"] == {"FUND_POOL_UPDATED": 2}
    assert body["data"][0]["changes"] == {"from": 100, "delta": 50, "to": 150, "note": "grant"}
    assert body["data"][0]["entity"] == "FUND_POOL"
