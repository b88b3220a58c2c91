# scripts/create_user.py
"""
建立（或更新）一個帳號：
    python scripts/create_user.py --email parent@example.com --password 'xxxxxxxx' [--status active|disabled]
"""
import argparse
import asyncio
import sys

from grrrignote.core.config import get_settings
from grrrignote.core.logging import setup_logging
from grrrignote.core.security import hash_password, validate_email, validate_password_policy
from grrrignote.db.session import Database
from grrrignote.models.users import UserStatus
from grrrignote.services.users import upsert_user


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create or update a Grrrignote user.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--status", default=UserStatus.ACTIVE, choices=[UserStatus.ACTIVE, UserStatus.DISABLED])
    return parser.parse_args(argv)


async def main(args: argparse.Namespace) -> int:
    if validate_email(args.email):
        print("invalid email", file=sys.stderr)
        return 2
    if validate_password_policy(args.password):
        print("password must contain at least 8 characters", file=sys.stderr)
        return 2

    settings = get_settings()
    database = Database.from_settings(settings)
    try:
        await database.ensure_schema()
        async with database.session() as db:
            user = await upsert_user(db, args.email, hash_password(args.password), args.status)
            print({"id": user.id, "email": user.email, "status": user.status})
    finally:
        await database.dispose()
    return 0


if __name__ == "__main__":
    setup_logging(get_settings().LOG_LEVEL)
    sys.exit(asyncio.run(main(parse_args())))
