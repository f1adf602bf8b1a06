"""
Database seeding script for initial data.

Creates an ADMIN, an approved USER and an opening fund pool balance for
testing and development. Run this script after the database is set up but
before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from backend.finpanel.core.config import settings
from backend.finpanel.core.security import get_password_hash
from backend.finpanel.db.session import AsyncSessionLocal, engine, Base
from backend.finpanel.models.enums import UserRole
from backend.finpanel.models.system_setting import SystemSetting
from backend.finpanel.models.user import User
from backend.finpanel.models import audit_log, budget, notification, remittance, transaction  # noqa: F401

OPENING_BALANCE = 0


async def seed_users():
    """
    Seed initial data.

    Creates:
    - 1 ADMIN user
    - 1 approved USER
    - the fund pool row (balance 0)
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting seeding...")

        result = await db.execute(select(User).where(User.email == "admin@finpanel.io"))
        if result.scalar_one_or_none():
            print("ℹ️  ADMIN user already exists, skipping seeding")
            return

        admin_user = User(
            email="admin@finpanel.io",
            name="Administrator",
            hashed_password=get_password_hash("admin123"),
            role=UserRole.ADMIN,
            is_active=True,
            is_approved=True
        )
        db.add(admin_user)
        print("✅ Created ADMIN user (admin@finpanel.io / admin123)")

        member = User(
            email="member@finpanel.io",
            name="Member",
            hashed_password=get_password_hash("member123"),
            role=UserRole.USER,
            is_active=True,
            is_approved=True
        )
        db.add(member)
        print("✅ Created USER (member@finpanel.io / member123)")

        await db.flush()

        pool = await db.execute(select(SystemSetting).where(SystemSetting.key == settings.fund_pool_key))
        if pool.scalar_one_or_none() is None:
            db.add(SystemSetting(
                key=settings.fund_pool_key,
                value=str(OPENING_BALANCE),
                description="Shared fund pool balance",
                category="finance",
                updated_by=admin_user.id
            ))
            print(f"✅ Created fund pool row (balance {OPENING_BALANCE})")

        await db.commit()

        print("\n🎉 Seeding completed successfully!")
        print("\nNote: other users register via POST /api/auth/register and wait for approval")


if __name__ == "__main__":
    asyncio.run(seed_users())
