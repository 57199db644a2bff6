"""
One-time bootstrap script — creates the first ADMIN account.

Usage:
    uv run python -m app.scripts.create_admin

You only need this ONCE.  Everyone else signs up through
POST /api/auth/register; admins can then deactivate accounts.
"""

import asyncio
import getpass

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.config import settings
from app.core.security import hash_password
from app.models.account import AccountRole
from app.services.auth_service import normalize_email
from app.stores.errors import DuplicateKey
from app.stores.sql import sql_store


async def create_admin() -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async with session_factory() as session:
        store = sql_store(session)

        # ── Collect input ────────────────────────────────────────────
        print("\nFirst Admin Setup\n")
        email = normalize_email(input("  Admin email: "))
        first_name = input("  First name:  ").strip()
        last_name = input("  Last name:   ").strip()
        password = getpass.getpass("  Password:    ")
        confirm = getpass.getpass("  Confirm:     ")

        if password != confirm:
            print("\nPasswords do not match.")
            await engine.dispose()
            return

        if not email or not password:
            print("\nEmail and password are required.")
            await engine.dispose()
            return

        if len(password) < 6:
            print("\nPassword must be at least 6 characters.")
            await engine.dispose()
            return

        # ── Create the admin account ─────────────────────────────────
        try:
            admin = await store.accounts.create(
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role=AccountRole.ADMIN.value,
                is_active=True,
            )
        except DuplicateKey:
            print(f"\nAccount with email '{email}' already exists.")
            await engine.dispose()
            return

        print("\nAdmin account created successfully!")
        print(f"    ID:    {admin.id}")
        print(f"    Email: {admin.email}")
        print("    Role:  admin")
        print("\n   You can now log in via POST /api/auth/login\n")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(create_admin())
