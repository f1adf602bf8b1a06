"""
Concurrency Tests.

Validates that a fund pool write based on a stale read can never land, and
that two admins deciding the same remittance or budget move money only once.
"""

import pytest
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from backend.finpanel.core.config import settings
from backend.finpanel.core.dependencies import identity_for
from backend.finpanel.core.exceptions import ConflictError, InsufficientFundsError, InvalidStateError
from backend.finpanel.core.security import get_password_hash
from backend.finpanel.db.session import Base
from backend.finpanel.models.audit_log import AuditLog
from backend.finpanel.models.budget import Budget
from backend.finpanel.models.enums import BudgetStatus, RemittanceStatus, UserRole
from backend.finpanel.models.remittance import Remittance
from backend.finpanel.models.system_setting import SystemSetting
from backend.finpanel.models.transaction import Transaction
from backend.finpanel.models.user import User
from backend.finpanel.services import budgets as budget_service
from backend.finpanel.services import fund_pool
from backend.finpanel.services import remittances as remittance_service


async def _stored_value(db):
    result = await db.execute(
        select(SystemSetting.value).where(SystemSetting.key == settings.fund_pool_key)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_stale_compare_and_set_matches_nothing(db_session, admin_identity):
    """Writer A read 100, writer B moved it to 130; A's CAS must not overwrite B."""
    await fund_pool.apply_delta(db_session, admin_identity, 100)
    await db_session.commit()

    # Writer B lands first
    await fund_pool.apply_delta(db_session, admin_identity, 30)
    await db_session.commit()

    # Writer A still believes the pool holds "100"
    assert await fund_pool._compare_and_set(db_session, "100", 90, admin_identity.id) is False
    await db_session.commit()
    assert await _stored_value(db_session) == "130"

    # A fresh read-modify-write succeeds on top of B's value
    assert await fund_pool.apply_delta(db_session, admin_identity, -10) == 120


@pytest.mark.asyncio
async def test_matching_compare_and_set_writes(db_session, admin_identity):
    await fund_pool.apply_delta(db_session, admin_identity, 100)
    await db_session.commit()

    assert await fund_pool._compare_and_set(db_session, "100", 90, admin_identity.id) is True
    await db_session.commit()
    assert await _stored_value(db_session) == "90"


@pytest.mark.asyncio
async def test_lost_race_retries_against_fresh_value(db_session, admin_identity, monkeypatch):
    """The first CAS loses to a concurrent +25; the retry applies on top of it."""
    await fund_pool.apply_delta(db_session, admin_identity, 100)
    await db_session.commit()

    real_cas = fund_pool._compare_and_set
    calls = []

    async def racing_cas(db, expected, new_balance, actor_id):
        calls.append(expected)
        if len(calls) == 1:
            # Another admin commits between our read and our write
            await db.execute(
                update(SystemSetting)
                .where(SystemSetting.key == settings.fund_pool_key)
                .values(value="125")
            )
        return await real_cas(db, expected, new_balance, actor_id)

    monkeypatch.setattr(fund_pool, "_compare_and_set", racing_cas)

    assert await fund_pool.apply_delta(db_session, admin_identity, -50) == 75
    assert calls == ["100", "125"]


@pytest.mark.asyncio
async def test_retry_rechecks_non_negative(db_session, admin_identity, monkeypatch):
    """If the concurrent writer drained the pool, the retry refuses the overdraw."""
    await fund_pool.apply_delta(db_session, admin_identity, 100)
    await db_session.commit()

    real_cas = fund_pool._compare_and_set

    async def draining_cas(db, expected, new_balance, actor_id):
        await db.execute(
            update(SystemSetting)
            .where(SystemSetting.key == settings.fund_pool_key)
            .values(value="10")
        )
        return await real_cas(db, expected, new_balance, actor_id)

    monkeypatch.setattr(fund_pool, "_compare_and_set", draining_cas)

    with pytest.raises(InsufficientFundsError):
        await fund_pool.apply_delta(db_session, admin_identity, -50)


@pytest.mark.asyncio
async def test_retries_exhausted_raises_conflict(db_session, admin_identity, monkeypatch):
    await fund_pool.apply_delta(db_session, admin_identity, 100)
    await db_session.commit()

    attempts = []

    async def always_loses(db, expected, new_balance, actor_id):
        attempts.append(expected)
        return False

    monkeypatch.setattr(fund_pool, "_compare_and_set", always_loses)

    with pytest.raises(ConflictError) as exc_info:
        await fund_pool.apply_delta(db_session, admin_identity, 5)

    assert exc_info.value.status_code == 409
    assert len(attempts) == settings.fund_pool_max_retries


@pytest.mark.asyncio
async def test_insert_race_on_missing_row_is_conflict(client, db_session, admin_user, admin_headers, monkeypatch):
    """Another writer creates the pool row between our 'missing' read and our insert."""
    db_session.add(SystemSetting(key=settings.fund_pool_key, value="70", updated_by=admin_user.id))
    await db_session.commit()

    real_read = fund_pool._read_raw
    reads = []

    async def stale_read(db):
        reads.append(True)
        if len(reads) == 1:
            return fund_pool._MISSING
        return await real_read(db)

    monkeypatch.setattr(fund_pool, "_read_raw", stale_read)

    response = await client.post("/api/fund-pool", json={"delta": 5}, headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"

    monkeypatch.setattr(fund_pool, "_read_raw", real_read)
    assert (await client.get("/api/fund-pool")).json()["balance"] == 70


# Two independent sessions on a file-backed database, so each has its own connection

@pytest.fixture
async def session_pair(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'decisions.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as setup, factory() as first, factory() as second:
        yield setup, first, second

    await engine.dispose()


async def _seed(db):
    admin = User(
        email="admin@race.com", name="Admin", hashed_password=get_password_hash("password123"),
        role=UserRole.ADMIN, is_active=True, is_approved=True,
    )
    owner = User(
        email="owner@race.com", name="Owner", hashed_password=get_password_hash("password123"),
        role=UserRole.USER, is_active=True, is_approved=True,
    )
    db.add_all([admin, owner])
    await db.commit()
    return identity_for(admin), owner


def _race_after_first_load(monkeypatch, module, loader_name, slow_session, competitor):
    """
    Let ``slow_session`` read first, then run ``competitor`` to completion
    before it continues. ``competitor`` is awaited once.
    """
    real_loader = getattr(module, loader_name)
    raced = []

    async def loader(db, *args, **kwargs):
        loaded = await real_loader(db, *args, **kwargs)
        if db is slow_session and not raced:
            raced.append(True)
            await competitor()
        return loaded

    monkeypatch.setattr(module, loader_name, loader)
    return raced


async def _balance(db):
    return (await fund_pool.get_balance(db))["balance"]


async def _count_audit(db, action):
    return (await db.execute(
        select(func.count(AuditLog.id)).where(AuditLog.action == action)
    )).scalar_one()


@pytest.mark.asyncio
async def test_remittance_verified_by_two_admins_credits_once(session_pair, monkeypatch):
    setup, first, second = session_pair
    admin, owner = await _seed(setup)
    remittance = Remittance(user_id=owner.id, amount=50, status=RemittanceStatus.PENDING)
    setup.add(remittance)
    await setup.commit()

    async def first_admin_verifies():
        await remittance_service.verify_remittance(first, admin, remittance.id, approve=True)
        await first.commit()

    raced = _race_after_first_load(monkeypatch, remittance_service, "_load", second, first_admin_verifies)

    with pytest.raises(InvalidStateError) as exc_info:
        await remittance_service.verify_remittance(second, admin, remittance.id, approve=True)
    await second.rollback()

    assert raced
    assert exc_info.value.message == "Already processed"
    assert await _balance(setup) == 50
    assert await _count_audit(setup, "REMITTANCE_POOL_CREDIT") == 1


@pytest.mark.asyncio
async def test_budget_approved_by_two_admins_debits_once(session_pair, monkeypatch):
    setup, first, second = session_pair
    admin, owner = await _seed(setup)
    await fund_pool.apply_delta(setup, admin, 1000)
    budget = Budget(title="Generator", amount=300, allocated_amount=0, created_by=owner.id)
    setup.add(budget)
    await setup.commit()

    async def first_admin_approves():
        await budget_service.approve_budget(first, admin, budget.id)
        await first.commit()

    raced = _race_after_first_load(monkeypatch, budget_service, "_load_budget", second, first_admin_approves)

    with pytest.raises(InvalidStateError):
        await budget_service.approve_budget(second, admin, budget.id)
    await second.rollback()

    assert raced
    assert await _balance(setup) == 700
    assert await _count_audit(setup, "FUND_POOL_DEDUCT") == 1


@pytest.mark.asyncio
async def test_budget_paid_out_by_two_admins_pays_once(session_pair, monkeypatch):
    setup, first, second = session_pair
    admin, owner = await _seed(setup)
    budget = Budget(
        title="Generator", amount=300, allocated_amount=300,
        status=BudgetStatus.APPROVED, created_by=owner.id,
    )
    setup.add(budget)
    await setup.commit()

    async def first_admin_pays():
        await budget_service.disburse_budget(first, admin, budget.id, 200)
        await first.commit()

    raced = _race_after_first_load(monkeypatch, budget_service, "_load_budget", second, first_admin_pays)

    # Both saw 300 outstanding; only the first payout may spend it
    with pytest.raises(ConflictError):
        await budget_service.disburse_budget(second, admin, budget.id, 200)
    await second.rollback()

    assert raced
    paid = (await setup.execute(
        select(Budget.disbursed_amount, Budget.status).where(Budget.id == budget.id)
    )).one()
    assert tuple(paid) == (200, BudgetStatus.PARTIALLY_DISBURSED)
    payouts = (await setup.execute(select(func.count(Transaction.id)))).scalar_one()
    assert payouts == 1
