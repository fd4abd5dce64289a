"""Register a user and print their API key.

The raw key is printed exactly once; only its SHA-256 hash is stored.

Usage:
    cd api
    python -m scripts.create_user --email ada@example.com --display-name "Ada" \
        --role student --cohort 2026-spring
    python -m scripts.create_user --email staff@example.com --role instructor
"""
import argparse
import asyncio
import secrets
import sys

from sqlalchemy import select

from cptracker.database import async_session_factory, engine
from cptracker.dependencies import hash_api_key
from cptracker.models.user import User, UserRole


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a CPTracker user with an API key.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--display-name", default=None)
    parser.add_argument(
        "--role",
        choices=[role.value for role in UserRole],
        default=UserRole.student.value,
    )
    parser.add_argument(
        "--cohort",
        action="append",
        default=[],
        dest="cohorts",
        help="Cohort id; repeat for several cohorts",
    )
    return parser.parse_args(argv)


async def create_user(email: str, display_name, role: str, cohorts: list[str]) -> str:
    """Insert the user and return the raw API key."""
    async with async_session_factory() as session:
        existing = await session.scalar(select(User.id).where(User.email == email))
        if existing is not None:
            raise SystemExit(f"A user with email {email} already exists ({existing})")

        raw_key = secrets.token_urlsafe(32)
        session.add(
            User(
                email=email,
                display_name=display_name,
                role=role,
                cohort_ids=cohorts,
                api_key_hash=hash_api_key(raw_key),
            )
        )
        await session.commit()
    await engine.dispose()
    return raw_key


def main(argv=None) -> None:
    args = parse_args(argv)
    raw_key = asyncio.run(create_user(args.email, args.display_name, args.role, args.cohorts))
    print(f"Created {args.role} {args.email}", file=sys.stderr)
    print(raw_key)


if __name__ == "__main__":
    main()
