"""
SceneStack — Credential Verification

Deletion requests must re-confirm the account password. The lifecycle only
depends on the PasswordVerifier protocol; StoredHashPasswordVerifier is the
bcrypt-backed implementation over users.password_hash.
"""

from __future__ import annotations

import uuid
from typing import Protocol

import bcrypt
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.models.user import User

logger = structlog.get_logger(__name__)


class PasswordVerifier(Protocol):
    async def verify(self, user_id: uuid.UUID, password: str) -> bool: ...


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds if rounds is not None else settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def check_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its bcrypt hash."""
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


class StoredHashPasswordVerifier:
    """Checks a password against the hash stored on the user row."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def verify(self, user_id: uuid.UUID, password: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                select(User.password_hash).where(User.id == user_id)
            )
            stored_hash = result.scalar()

        if not stored_hash:
            logger.warning("password_verify_no_hash", user_id=str(user_id))
            return False

        valid = check_password(password, stored_hash)
        if not valid:
            logger.warning("password_verify_failed", user_id=str(user_id))
        return valid
