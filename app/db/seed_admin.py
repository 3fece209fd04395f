"""
Seed script to create the first admin account.

Run once (e.g. after schema_check) with env set:
  ADMIN_USERNAME=admin
  ADMIN_PASSWORD=YourSecurePassword

Creates the user if missing, otherwise resets its role to admin and its password.
"""
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.security import hash_password
from app.core.config import settings
from app.core.enums import UserRole
from app.db.session import AsyncSessionLocal

DEFAULT_ADMIN_FULL_NAME = "School Admin"


async def seed_admin(db: AsyncSession) -> bool:
    username = (settings.admin_username or "").strip()
    password = settings.admin_password
    if not username or not password:
        print("ADMIN_USERNAME / ADMIN_PASSWORD not set; skipping admin user.")
        return False

    result = await db.execute(select(User).where(User.username == username))
    admin = result.scalar_one_or_none()
    if not admin:
        admin = User(
            full_name=DEFAULT_ADMIN_FULL_NAME,
            username=username,
            password_hash=hash_password(password),
            role=UserRole.ADMIN.value,
            status="ACTIVE",
        )
        db.add(admin)
        print("Created admin user:", username)
    else:
        admin.role = UserRole.ADMIN.value
        admin.status = "ACTIVE"
        admin.password_hash = hash_password(password)
        print("Updated existing user to admin:", username)

    await db.commit()
    print("Admin seed done.")
    return True


async def main() -> None:
    async with AsyncSessionLocal() as db:
        try:
            await seed_admin(db)
        except Exception as e:
            await db.rollback()
            print("Error:", e)
            raise


if __name__ == "__main__":
    asyncio.run(main())
