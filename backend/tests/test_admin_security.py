"""
Integration tests for admin user management and access control.

Tests token revocation on block, admin-only guards, role changes and role
resolution.
"""

import pytest
from sqlalchemy import select

from backend.finpanel.core.dependencies import resolve_role, identity_for
from backend.finpanel.core.token_revocation import are_user_tokens_revoked, revoke_all_user_tokens
from backend.finpanel.models.audit_log import AuditLog
from backend.finpanel.models.enums import UserRole
from backend.finpanel.models.notification import Notification
from backend.finpanel.models.user import User


@pytest.mark.asyncio
async def test_blocked_user_loses_access_immediately(client, admin_headers, regular_user, user_headers):
    """Blocked user should receive 401 immediately, not after token expiry."""
    me_response = await client.get("/api/auth/me", headers=user_headers)
    assert me_response.status_code == 200

    block_response = await client.post(
        f"/api/admin/users/{regular_user.id}/block",
        headers=admin_headers,
        json={"reason": "Test block"}
    )
    assert block_response.status_code == 200
    assert block_response.json()["action"] == "USER_BLOCKED"

    me_response = await client.get("/api/auth/me", headers=user_headers)
    assert me_response.status_code == 401

    login = await client.post("/api/auth/login", json={
        "email": "user@test.com", "password": "password123"
    })
    assert login.status_code == 403


@pytest.mark.asyncio
async def test_unblock_restores_login(client, admin_headers, regular_user):
    await client.post(f"/api/admin/users/{regular_user.id}/block", headers=admin_headers, json={})

    response = await client.post(
        f"/api/admin/users/{regular_user.id}/unblock", headers=admin_headers, json={}
    )
    assert response.status_code == 200

    login = await client.post("/api/auth/login", json={
        "email": "user@test.com", "password": "password123"
    })
    assert login.status_code == 200
    token = login.json()["accessToken"]
    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200


@pytest.mark.asyncio
async def test_cannot_block_self_or_other_admin(client, admin_user, admin_headers, user_factory):
    response = await client.post(f"/api/admin/users/{admin_user.id}/block", headers=admin_headers, json={})
    assert response.status_code == 400

    second_admin = await user_factory("admin2@test.com", role=UserRole.ADMIN)
    response = await client.post(f"/api/admin/users/{second_admin.id}/block", headers=admin_headers, json={})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_block_unknown_user_is_404(client, admin_headers):
    response = await client.post("/api/admin/users/9999/block", headers=admin_headers, json={})
    assert response.status_code == 404
    assert response.json()["error"] == "User not found"


@pytest.mark.asyncio
async def test_admin_routes_forbidden_for_users(client, user_headers):
    assert (await client.get("/api/admin/users", headers=user_headers)).status_code == 403
    assert (await client.get("/api/audit", headers=user_headers)).status_code == 403


@pytest.mark.asyncio
async def test_approve_user_notifies_them(client, admin_headers, user_factory, db_session):
    pending = await user_factory("pending@test.com", approved=False)

    listing = await client.get("/api/admin/users?approved=false", headers=admin_headers)
    assert [u["email"] for u in listing.json()["data"]] == ["pending@test.com"]

    response = await client.post(f"/api/admin/users/{pending.id}/approve", headers=admin_headers)
    assert response.status_code == 200

    again = await client.post(f"/api/admin/users/{pending.id}/approve", headers=admin_headers)
    assert again.status_code == 400

    approved = (await db_session.execute(
        select(User.is_approved).where(User.id == pending.id)
    )).scalar_one()
    assert approved is True

    notes = (await db_session.execute(
        select(Notification).where(Notification.user_id == pending.id)
    )).scalars().all()
    assert len(notes) == 1
    assert notes[0].type == "user_approved"


@pytest.mark.asyncio
async def test_user_audit_history(client, admin_headers, regular_user, admin_user):
    await client.post(f"/api/admin/users/{regular_user.id}/block", headers=admin_headers, json={})

    response = await client.get(
        f"/api/admin/users/{regular_user.id}/audit-history", headers=admin_headers
    )
    assert response.status_code == 200
    entries = response.json()
    assert entries[0]["action"] == "USER_BLOCKED"
    assert entries[0]["user"]["id"] == admin_user.id


# Role resolution

def test_role_comes_from_stored_column():
    admin = User(id=1, email="boss@test.com", name="Boss", role=UserRole.ADMIN, is_approved=True)
    user = User(id=2, email="admin@example.com", name="Not Admin", role=UserRole.USER, is_approved=True)

    assert resolve_role(admin) == UserRole.ADMIN
    # An admin-looking email grants nothing
    assert resolve_role(user) == UserRole.USER
    assert identity_for(admin).is_admin is True
    assert identity_for(user).is_admin is False


def test_missing_role_degrades_to_user():
    user = User(id=3, email="x@test.com", name="X", role=None)
    assert resolve_role(user) == UserRole.USER


@pytest.mark.asyncio
async def test_role_change_applies_without_new_token(client, regular_user, user_headers, db_session):
    """The token carries no role, so promoting a user takes effect on the next request."""
    assert (await client.get("/api/audit", headers=user_headers)).status_code == 403

    regular_user.role = UserRole.ADMIN
    await db_session.commit()

    assert (await client.get("/api/audit", headers=user_headers)).status_code == 200


@pytest.mark.asyncio
async def test_tokens_from_before_block_stay_revoked(client, admin_headers, regular_user, user_headers):
    """Unblocking lets the user sign in again without reviving the old sessions."""
    await client.post(f"/api/admin/users/{regular_user.id}/block", headers=admin_headers, json={})
    await client.post(f"/api/admin/users/{regular_user.id}/unblock", headers=admin_headers, json={})

    assert (await client.get("/api/auth/me", headers=user_headers)).status_code == 401

    login = await client.post("/api/auth/login", json={
        "email": "user@test.com", "password": "password123"
    })
    fresh = {"Authorization": f"Bearer {login.json()['accessToken']}"}
    assert (await client.get("/api/auth/me", headers=fresh)).status_code == 200


@pytest.mark.asyncio
async def test_user_revocation_compares_issue_time(redis_client_session):
    assert await are_user_tokens_revoked(redis_client_session, 7, 100.0) is False

    await revoke_all_user_tokens(redis_client_session, 7)
    revoked_at = float(await redis_client_session.get("user:tokens:7:revoked"))

    assert await are_user_tokens_revoked(redis_client_session, 7, revoked_at - 60) is True
    assert await are_user_tokens_revoked(redis_client_session, 7, revoked_at + 1) is False
    assert await are_user_tokens_revoked(redis_client_session, 7, None) is True


@pytest.mark.asyncio
async def test_promote_user(client, admin_user, admin_headers, regular_user, user_headers, db_session):
    assert (await client.post(
        f"/api/admin/users/{regular_user.id}/promote", headers=user_headers
    )).status_code == 403

    response = await client.post(f"/api/admin/users/{regular_user.id}/promote", headers=admin_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "ADMIN"
    assert body["action"] == "USER_ROLE_CHANGED"
    assert body["message"] == "User role changed to ADMIN"

    # The existing token picks up the new role
    assert (await client.get("/api/audit", headers=user_headers)).status_code == 200

    again = await client.post(f"/api/admin/users/{regular_user.id}/promote", headers=admin_headers)
    assert again.status_code == 400
    assert again.json()["error"] == "User is already an admin"

    changes = (await db_session.execute(
        select(AuditLog.changes).where(AuditLog.action == "USER_ROLE_CHANGED")
    )).scalar_one()
    assert changes == {"from": "USER", "to": "ADMIN"}

    note = (await db_session.execute(
        select(Notification).where(Notification.user_id == regular_user.id)
    )).scalar_one()
    assert note.type == "role_changed"


@pytest.mark.asyncio
async def test_toggle_admin(client, admin_user, admin_headers, regular_user, db_session):
    myself = await client.post(f"/api/admin/users/{admin_user.id}/toggle-admin", headers=admin_headers)
    assert myself.status_code == 400
    assert myself.json()["error"] == "Cannot change your own admin status"

    up = await client.post(f"/api/admin/users/{regular_user.id}/toggle-admin", headers=admin_headers)
    assert up.json()["role"] == "ADMIN"

    down = await client.post(f"/api/admin/users/{regular_user.id}/toggle-admin", headers=admin_headers)
    assert down.json()["role"] == "USER"

    role = (await db_session.execute(select(User.role).where(User.id == regular_user.id))).scalar_one()
    assert role == UserRole.USER

    missing = await client.post("/api/admin/users/9999/toggle-admin", headers=admin_headers)
    assert missing.status_code == 404
