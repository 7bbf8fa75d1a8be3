import asyncio

from signflow.core.database.engine import build_engine, build_session_factory, init_db
from signflow.features.auth.models import User
from signflow.features.auth.passwords import hash_password, verify_password
from scripts.seed_admin import seed_admin

from conftest import database_url


def run_seed(tmp_path, existing: User | None = None):
    async def scenario():
        engine = build_engine(database_url(tmp_path))
        await init_db(engine)
        db = build_session_factory(engine)
        async with db() as session:
            if existing is not None:
                session.add(existing)
                await session.commit()
            seeded = await seed_admin(session, "root@example.com", "seed-pass")
            again = await seed_admin(session, "root@example.com", "seed-pass")
        await engine.dispose()
        return seeded, again

    return asyncio.run(scenario())


def test_creates_the_admin_once(tmp_path):
    seeded, again = run_seed(tmp_path)

    assert seeded.role == "admin"
    assert asyncio.run(verify_password(seeded.password_hash, "seed-pass"))
    assert again is None


def test_promotes_an_existing_user_and_keeps_the_password(tmp_path):
    existing = User(
        email="root@example.com",
        password_hash=asyncio.run(hash_password("own-pass")),
        first_name="Rosa",
        last_name="Diaz",
        role="operator",
        is_active=False,
    )

    seeded, again = run_seed(tmp_path, existing)

    assert seeded.role == "admin"
    assert seeded.is_active is True
    assert asyncio.run(verify_password(seeded.password_hash, "own-pass"))
    assert again is None
