# grrrignote/services/cleanup.py
from datetime import datetime, timedelta
from typing import Dict, Optional

from loguru import logger
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from grrrignote.core.security import now_utc
from grrrignote.models.auth_attempts import LoginAttempt, PasswordResetAttempt, SignupAttempt
from grrrignote.models.one_time_tokens import EmailVerificationToken, PasswordResetToken


async def cleanup_expired_records(
    db: AsyncSession,
    ledger_retention: timedelta,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    刪除已過期（或已使用）的一次性 token，以及超過保留期限的 attempt ledger。
    回傳每張表刪除的列數。
    """
    at = now or now_utc()  # DB 一律存 naive UTC
    ledger_cutoff = at - ledger_retention
    deleted: Dict[str, int] = {}

    for model in (PasswordResetToken, EmailVerificationToken):
        res = await db.execute(
            delete(model).where((model.expires_at <= at) | model.consumed_at.is_not(None))
        )
        deleted[model.__tablename__] = res.rowcount or 0

    for model in (LoginAttempt, SignupAttempt, PasswordResetAttempt):
        res = await db.execute(delete(model).where(model.created_at < ledger_cutoff))
        deleted[model.__tablename__] = res.rowcount or 0

    await db.commit()
    logger.info("Cleanup finished: {}", deleted)
    return deleted
