import asyncio

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

ph = PasswordHasher()


async def hash_password(password: str) -> str:
    """Argon2id hash, computed off the event loop."""
    return await asyncio.to_thread(ph.hash, password)


async def verify_password(hashed_password: str, password: str) -> bool:
    try:
        return await asyncio.to_thread(ph.verify, hashed_password, password)
    except (VerificationError, InvalidHashError):
        return False
