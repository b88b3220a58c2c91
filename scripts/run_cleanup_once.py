# scripts/run_cleanup_once.py
"""
一次性清理（可交給 cron / 平台排程執行）：
    python scripts/run_cleanup_once.py
"""
import asyncio
from datetime import timedelta

from grrrignote.core.config import get_settings
from grrrignote.core.logging import setup_logging
from grrrignote.db.session import Database
from grrrignote.services.cleanup import cleanup_expired_records


async def main() -> None:
    settings = get_settings()
    database = Database.from_settings(settings)
    try:
        async with database.session() as db:
            deleted = await cleanup_expired_records(
                db, timedelta(days=settings.ATTEMPT_LEDGER_RETENTION_DAYS)
            )
        print({"deleted": deleted})
    finally:
        await database.dispose()


if __name__ == "__main__":
    setup_logging(get_settings().LOG_LEVEL)
    asyncio.run(main())
