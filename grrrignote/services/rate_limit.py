# grrrignote/services/rate_limit.py
"""
Attempt ledger 限流（滑動視窗）：

- 每次嘗試 append 一列（email_norm, ip, success, created_at）
- 判斷時計算 created_at > now - window 的列數，>= 上限即視為受限
- 「先查再記」在同一 identity 的併發突發下可能略超過上限；這是可接受的近似值，
  上限是建議性的，不是嚴格的准入控制
- record 為 best-effort：寫入失敗只記 log，不影響主流程
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Type, Union

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from grrrignote.core.config import Settings
from grrrignote.core.security import now_utc
from grrrignote.models.auth_attempts import LoginAttempt, PasswordResetAttempt, SignupAttempt

LedgerModel = Union[Type[LoginAttempt], Type[SignupAttempt], Type[PasswordResetAttempt]]


@dataclass(frozen=True)
class RateLimitPolicy:
    ledger: LedgerModel
    window: timedelta
    max_attempts: int
    # True：只計算失敗的嘗試（登入 / 註冊）；False：每次請求都算（忘記密碼）
    failures_only: bool = True


def _enabled(settings: Settings, max_attempts: int) -> int:
    # RATE_LIMIT_ENABLED=0 時上限設為 0，is_rate_limited 一律放行
    return max_attempts if settings.RATE_LIMIT_ENABLED else 0


def login_policy(settings: Settings) -> RateLimitPolicy:
    return RateLimitPolicy(
        ledger=LoginAttempt,
        window=timedelta(minutes=settings.LOGIN_RATE_LIMIT_WINDOW_MINUTES),
        max_attempts=_enabled(settings, settings.LOGIN_RATE_LIMIT_MAX_FAILURES),
    )


def signup_policy(settings: Settings) -> RateLimitPolicy:
    return RateLimitPolicy(
        ledger=SignupAttempt,
        window=timedelta(minutes=settings.SIGNUP_RATE_LIMIT_WINDOW_MINUTES),
        max_attempts=_enabled(settings, settings.SIGNUP_RATE_LIMIT_MAX_FAILURES),
    )


def password_reset_policy(settings: Settings) -> RateLimitPolicy:
    return RateLimitPolicy(
        ledger=PasswordResetAttempt,
        window=timedelta(minutes=settings.PASSWORD_RESET_RATE_LIMIT_WINDOW_MINUTES),
        max_attempts=_enabled(settings, settings.PASSWORD_RESET_RATE_LIMIT_MAX_REQUESTS),
        failures_only=False,
    )


async def count_recent_attempts(
    db: AsyncSession,
    policy: RateLimitPolicy,
    identity: str,
    ip: Optional[str],
    *,
    now: Optional[datetime] = None,
) -> int:
    model = policy.ledger
    since = (now or now_utc()) - policy.window

    match = model.email_norm == (identity or "")
    if ip:
        match = or_(match, model.ip == ip)

    stmt = select(func.count()).select_from(model).where(model.created_at > since, match)
    if policy.failures_only:
        stmt = stmt.where(model.success.is_(False))

    result = await db.execute(stmt)
    return int(result.scalar_one() or 0)


async def is_rate_limited(
    db: AsyncSession,
    policy: RateLimitPolicy,
    identity: str,
    ip: Optional[str],
    *,
    now: Optional[datetime] = None,
) -> bool:
    if policy.max_attempts <= 0:
        return False
    count = await count_recent_attempts(db, policy, identity, ip, now=now)
    limited = count >= policy.max_attempts
    if limited:
        logger.warning(
            "Rate limit hit ({}): {} attempts in {}s window",
            policy.ledger.__tablename__,
            count,
            int(policy.window.total_seconds()),
        )
    return limited


async def record(
    db: AsyncSession,
    policy: RateLimitPolicy,
    identity: str,
    ip: Optional[str],
    succeeded: bool,
    *,
    now: Optional[datetime] = None,
) -> None:
    try:
        db.add(
            policy.ledger(
                email_norm=identity or "",
                ip=ip or None,
                success=bool(succeeded),
                created_at=now or now_utc(),
            )
        )
        await db.commit()
    except SQLAlchemyError as exc:
        logger.warning("Attempt ledger write failed ({}): {}", policy.ledger.__tablename__, exc)
        try:
            await db.rollback()
        except SQLAlchemyError:
            pass


async def record_and_check(
    db: AsyncSession,
    policy: RateLimitPolicy,
    identity: str,
    ip: Optional[str],
    *,
    now: Optional[datetime] = None,
) -> bool:
    """
    判斷後記一筆（忘記密碼用）：視窗內第 max_attempts + 1 次請求開始受限。
    """
    at = now or now_utc()
    limited = await is_rate_limited(db, policy, identity, ip, now=at)
    await record(db, policy, identity, ip, succeeded=not limited, now=at)
    return limited
