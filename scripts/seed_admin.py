"""
Seed script to create the first administrator account.

Registration cannot create admins, so the first one is made here. Reads
ADMIN_EMAIL and ADMIN_PASSWORD from the environment (or .env); when no
password is given a random one is generated and printed once.

Usage:
    python -m scripts.seed_admin
"""
import asyncio
import os
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from signflow.core.database.engine import build_engine, build_session_factory, init_db
from signflow.core.security import ADMIN_ROLE
from signflow.features.auth.models import User
from signflow.features.auth.passwords import hash_password
from signflow.utils import get_logger, setup_logging


log = get_logger(__name__)


async def seed_admin(db: AsyncSession, email: str, password: str | None = None) -> User | None:
    """
    Create the admin account, or promote an existing user with that email.

    An existing user keeps their password. A new account without a password
    gets a random one, logged once. Returns None when the account is already
    an active admin.
    """
    existing = await db.scalar(select(User).where(User.email == email))
    if existing:
        if existing.role == ADMIN_ROLE and existing.is_active:
            log.info(f"User '{email}' is already an admin, skipping")
            return None
        log.info(f"Promoting user '{email}' from role '{existing.role}' to admin")
        existing.role = ADMIN_ROLE
        existing.is_active = True
        await db.commit()
        return existing

    generated = password is None
    if generated:
        password = secrets.token_urlsafe(12)

    admin = User(
        email=email,
        password_hash=await hash_password(password),
        first_name="System",
        last_name="Administrator",
        role=ADMIN_ROLE,
    )
    db.add(admin)
    await db.commit()
    log.info(f"Created admin user '{email}'")
    if generated:
        log.info(f"Generated password for {email}: {password}")
    return admin


async def main():
    setup_logging()
    email = os.environ.get("ADMIN_EMAIL", "admin@signflow.local")
    password = os.environ.get("ADMIN_PASSWORD")

    engine = build_engine()
    try:
        log.info("Initializing database tables...")
        await init_db(engine)
        async with build_session_factory(engine)() as db:
            await seed_admin(db, email, password)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
