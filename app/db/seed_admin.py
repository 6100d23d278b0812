"""
Create the tables and the first ADMIN user.

Run once with env set (defaults are used when unset):
  ADMIN_EMAIL=admin@yourschool.com
  ADMIN_PASSWORD=YourSecurePassword
  ADMIN_NAME="School Admin"

Usage:
  python -m app.db.seed_admin
"""
import asyncio

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.security import hash_password
from app.core.config import settings
from app.db.session import AsyncSessionLocal, create_tables

# Default admin (used when ADMIN_EMAIL / ADMIN_PASSWORD are not set)
DEFAULT_ADMIN_EMAIL = "admin@attendance.com"
DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_ADMIN_NAME = "Admin User"


async def seed_admin(db: AsyncSession) -> None:
    email = (settings.admin_email or DEFAULT_ADMIN_EMAIL).lower()
    password = settings.admin_password or DEFAULT_ADMIN_PASSWORD
    name = settings.admin_name or DEFAULT_ADMIN_NAME

    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    admin = result.scalar_one_or_none()
    if not admin:
        db.add(
            User(
                email=email,
                password_hash=hash_password(password),
                name=name,
                role="ADMIN",
            )
        )
        print("Created ADMIN user:", email)
    else:
        admin.role = "ADMIN"
        admin.password_hash = hash_password(password)
        admin.name = name
        print("Updated existing user to ADMIN:", email)

    await db.commit()
    print("Admin seed done.")


async def main() -> None:
    await create_tables()
    print("Tables created.")
    async with AsyncSessionLocal() as db:
        try:
            await seed_admin(db)
        except Exception as e:
            await db.rollback()
            print("Error:", e)
            raise


if __name__ == "__main__":
    asyncio.run(main())
