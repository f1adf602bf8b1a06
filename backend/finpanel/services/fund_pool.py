"""
Fund Pool Ledger.

The pool is a single integer balance stored as text in ``system_settings``
under ``settings.fund_pool_key``. Every write is a compare-and-swap on the
stored text, so two admins adjusting the pool at the same time can never
lose an update or drive it negative.

Nothing here commits: the balance write and its audit row are flushed into
the caller's transaction and land together.
"""

import logging
from typing import Any, Dict, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from backend.finpanel.core.config import settings
from backend.finpanel.core.dependencies import Identity
from backend.finpanel.core.exceptions import (
    UnauthorizedError,
    ValidationError,
    InsufficientFundsError,
    ConflictError,
)
from backend.finpanel.models.system_setting import SystemSetting
from backend.finpanel.models.timestamps import utcnow
from backend.finpanel.schemas.common import UserSummary
from backend.finpanel.services.audit import record, AuditAction, AuditEntity

logger = logging.getLogger("finpanel.fund_pool")

FUND_POOL_ENTITY_ID = "fund_pool"

# Sentinel for "no row stored yet"
_MISSING = object()


def parse_balance(value: Optional[str]) -> int:
    """Decode the stored text; an unset or unreadable value counts as an empty pool."""
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except ValueError:
        logger.warning("Fund pool value %r is not an integer, treating as 0", value)
        return 0


def _check_delta(delta: Any) -> int:
    # bool is an int subclass; True must not mean +1
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer", details={"delta": repr(delta)})
    return delta


async def _read_raw(db: AsyncSession) -> Any:
    """
    Current stored text, or ``_MISSING`` when the row does not exist.

    Selects the column rather than the entity so a retry always sees the
    database value, never a stale identity-map copy.
    """
    result = await db.execute(
        select(SystemSetting.value).where(SystemSetting.key == settings.fund_pool_key)
    )
    row = result.first()
    if row is None:
        return _MISSING
    return row[0]


async def _compare_and_set(
    db: AsyncSession,
    expected: Optional[str],
    new_balance: int,
    actor_id: Optional[int]
) -> bool:
    """
    Write ``new_balance`` only if the stored text still equals ``expected``.

    Returns:
        True if exactly one row was updated, False if another writer got there first
    """
    if expected is None:
        value_matches = SystemSetting.value.is_(None)
    else:
        value_matches = SystemSetting.value == expected

    stmt = (
        update(SystemSetting)
        .where(SystemSetting.key == settings.fund_pool_key, value_matches)
        .values(value=str(new_balance), updated_by=actor_id, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def _insert_initial(db: AsyncSession, new_balance: int, actor_id: Optional[int]) -> None:
    db.add(SystemSetting(
        key=settings.fund_pool_key,
        value=str(new_balance),
        description="Shared fund pool balance",
        category="finance",
        updated_by=actor_id,
    ))
    try:
        await db.flush()
    except IntegrityError as exc:
        # Someone created the row between our read and our insert
        raise ConflictError() from exc


async def _apply(db: AsyncSession, actor: Identity, delta: int) -> Tuple[int, int]:
    """
    Move the balance by ``delta`` with bounded CAS retries.

    Returns:
        (previous balance, new balance)
    """
    attempts = max(1, settings.fund_pool_max_retries)

    for attempt in range(1, attempts + 1):
        raw = await _read_raw(db)
        current = 0 if raw is _MISSING else parse_balance(raw)
        new_balance = current + delta

        # Re-checked on every attempt: the balance may have dropped meanwhile
        if new_balance < 0:
            raise InsufficientFundsError(balance=current, delta=delta)

        if raw is _MISSING:
            await _insert_initial(db, new_balance, actor.id)
            return current, new_balance

        if await _compare_and_set(db, raw, new_balance, actor.id):
            return current, new_balance

        logger.info("Fund pool CAS lost (attempt %s/%s), re-reading", attempt, attempts)

    logger.warning("Fund pool update by user %s gave up after %s attempts", actor.id, attempts)
    raise ConflictError()


async def get_balance(db: AsyncSession) -> Dict[str, Any]:
    """
    Read the pool. No authorization: any caller may see the balance.

    Returns:
        {"balance": int, "updated_at": datetime | None, "updated_by": UserSummary | None}
    """
    result = await db.execute(
        select(SystemSetting)
        .options(selectinload(SystemSetting.user))
        .where(SystemSetting.key == settings.fund_pool_key)
        .execution_options(populate_existing=True)
    )
    setting = result.scalar_one_or_none()

    if setting is None:
        return {"balance": 0, "updated_at": None, "updated_by": None}

    return {
        "balance": parse_balance(setting.value),
        "updated_at": setting.updated_at,
        "updated_by": UserSummary.model_validate(setting.user) if setting.user else None,
    }


async def apply_delta(
    db: AsyncSession,
    actor: Optional[Identity],
    delta: Any,
    note: Optional[str] = None
) -> int:
    """
    Admin adjustment of the pool.

    Args:
        db: Database session (caller commits)
        actor: Caller identity; must be an ADMIN
        delta: Signed integer amount
        note: Free-text reason, kept in the audit entry

    Returns:
        The new balance

    Raises:
        UnauthorizedError: actor missing or not an admin
        ValidationError: delta is not an integer
        InsufficientFundsError: the result would be negative
        ConflictError: concurrent writers exhausted the retries
    """
    if actor is None or not actor.is_admin:
        raise UnauthorizedError()

    delta = _check_delta(delta)
    previous, new_balance = await _apply(db, actor, delta)

    await record(
        db,
        action=AuditAction.FUND_POOL_UPDATED,
        entity=AuditEntity.FUND_POOL,
        entity_id=FUND_POOL_ENTITY_ID,
        user_id=actor.id,
        changes={"from": previous, "delta": delta, "to": new_balance, "note": note},
    )

    logger.info("Fund pool %s -> %s by user %s", previous, new_balance, actor.id)
    return new_balance


async def _move(
    db: AsyncSession,
    actor: Identity,
    delta: int,
    action: str,
    context: Dict[str, Any]
) -> int:
    if actor is None or not actor.is_admin:
        raise UnauthorizedError()

    previous, new_balance = await _apply(db, actor, delta)

    changes = {"from": previous, "delta": delta, "to": new_balance}
    changes.update(context)
    await record(
        db,
        action=action,
        entity=AuditEntity.FUND_POOL,
        entity_id=FUND_POOL_ENTITY_ID,
        user_id=actor.id,
        changes=changes,
    )
    return new_balance


async def credit(
    db: AsyncSession,
    actor: Identity,
    amount: int,
    action: str = AuditAction.REMITTANCE_POOL_CREDIT,
    **context
) -> int:
    """Add an inflow to the pool: a verified remittance, or an unspent allocation coming back."""
    amount = _check_delta(amount)
    if amount <= 0:
        raise ValidationError("Credit amount must be positive", details={"amount": amount})
    return await _move(db, actor, amount, action, context)


async def debit(db: AsyncSession, actor: Identity, amount: int, **context) -> int:
    """Take an approved outflow (e.g. a budget allocation) from the pool."""
    amount = _check_delta(amount)
    if amount <= 0:
        raise ValidationError("Debit amount must be positive", details={"amount": amount})
    return await _move(db, actor, -amount, AuditAction.FUND_POOL_DEDUCT, context)
