"""
SceneStack — Admin User Registration Script

Creates a users row with a bcrypt password hash. Useful for seeding local
databases and for manual onboarding.

Usage:
    python scripts/add_user.py --username alice --email alice@example.com --password hunter22
    python scripts/add_user.py --username bob --password s3cret --premium
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.accounts.credentials import hash_password
from src.config import settings
from src.models.user import User


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create a new SceneStack user.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/add_user.py --username alice --email alice@example.com --password hunter22
  python scripts/add_user.py --username bob --password s3cret --premium
""",
    )
    parser.add_argument(
        "--username",
        type=str,
        required=True,
        help="Unique display name.",
    )
    parser.add_argument(
        "--email",
        type=str,
        default=None,
        help="Optional email address.",
    )
    parser.add_argument(
        "--password",
        type=str,
        required=True,
        help="Plain-text password; only the bcrypt hash is stored.",
    )
    parser.add_argument(
        "--premium",
        action="store_true",
        help="Create the user on the premium tier (no group limits).",
    )
    return parser.parse_args()


async def create_user(
    username: str,
    email: str | None,
    password: str,
    is_premium: bool,
) -> uuid.UUID:
    """Insert a users row, refusing duplicate usernames."""
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    try:
        async with session_factory() as session:
            existing = await session.execute(
                select(User.id).where(User.username == username)
            )
            if existing.scalar_one_or_none() is not None:
                raise ValueError(f"username {username!r} is already taken")

            user = User(
                id=uuid.uuid4(),
                username=username,
                email=email,
                password_hash=hash_password(password),
                is_premium=is_premium,
            )
            session.add(user)
            await session.commit()
            return user.id
    finally:
        await engine.dispose()


async def main() -> None:
    args = parse_args()

    print(f"Creating user: username={args.username}, premium={args.premium}")

    try:
        user_id = await create_user(
            username=args.username,
            email=args.email,
            password=args.password,
            is_premium=args.premium,
        )
        print("User created successfully.")
        print(f"  users.id    = {user_id}")
        print(f"  username    = {args.username}")
        if args.email:
            print(f"  email       = {args.email}")
        print(f"  is_premium  = {args.premium}")
    except Exception as e:
        print(f"Failed to create user: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
