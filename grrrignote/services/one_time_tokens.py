# grrrignote/services/one_time_tokens.py
"""
一次性 token（密碼重設 / email 驗證）：

- issue：產生 256-bit 隨機值，只把雜湊與到期時間寫進 DB，回傳原始值（放進 email 連結）
- redeem：以單一條件式 UPDATE（未使用且未過期）標記已使用，影響列數 == 1 才算成功；
  兩個同時兌換同一 token 的 request 只有一個會成功
- 找不到 / 已使用 / 已過期一律回傳 None，呼叫端看不出差別
- 發出新 token 時會刪除同一使用者、同一用途的舊 token（一次只有一條有效連結）
"""
from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Type, Union

from loguru import logger
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from grrrignote.core.security import (
    generate_one_time_token,
    hash_one_time_token,
    now_utc,
)
from grrrignote.models.one_time_tokens import EmailVerificationToken, PasswordResetToken
from grrrignote.services import users as users_service

TokenModel = Union[Type[PasswordResetToken], Type[EmailVerificationToken]]


class TokenPurpose(str, Enum):
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


_MODELS = {
    TokenPurpose.PASSWORD_RESET: PasswordResetToken,
    TokenPurpose.EMAIL_VERIFICATION: EmailVerificationToken,
}


class OneTimeTokenIssuer:
    def __init__(self, secret: str):
        # 主要簽章金鑰參與雜湊；DB 外洩時無法離線比對 token
        self._secret = secret

    def _hash(self, raw: str, purpose: TokenPurpose) -> str:
        return hash_one_time_token(raw, purpose.value, self._secret)

    async def issue(
        self,
        db: AsyncSession,
        user_id: int,
        purpose: TokenPurpose,
        ttl: timedelta,
        *,
        now: Optional[datetime] = None,
    ) -> str:
        model: TokenModel = _MODELS[purpose]
        issued_at = now or now_utc()
        raw = generate_one_time_token()

        # 同用途的舊連結作廢，順便清掉已過期的列
        await db.execute(
            delete(model).where(or_(model.user_id == int(user_id), model.expires_at <= issued_at))
        )
        db.add(
            model(
                user_id=int(user_id),
                token_hash=self._hash(raw, purpose),
                expires_at=issued_at + ttl,
                created_at=issued_at,
            )
        )
        await db.commit()
        logger.info("One-time token issued (purpose={}, user_id={})", purpose.value, user_id)
        return raw

    async def redeem(
        self,
        db: AsyncSession,
        raw_token: str,
        purpose: TokenPurpose,
        *,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> Optional[int]:
        """
        成功回傳 user_id；其餘情況回傳 None。
        commit=False 時標記已使用的 UPDATE 留在目前 transaction，由呼叫端一起 commit。
        """
        if not raw_token:
            return None

        model: TokenModel = _MODELS[purpose]
        at = now or now_utc()
        token_hash = self._hash(raw_token, purpose)

        found = await db.execute(select(model.id, model.user_id).where(model.token_hash == token_hash))
        row = found.first()
        if row is None:
            return None
        token_id, user_id = row

        # 檢查與標記在同一個條件式 UPDATE 內完成
        result = await db.execute(
            update(model)
            .where(
                model.id == token_id,
                model.consumed_at.is_(None),
                model.expires_at > at,
            )
            .values(consumed_at=at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        if commit:
            await db.commit()
        return int(user_id)

    async def reset_password_with_token(
        self,
        db: AsyncSession,
        raw_token: str,
        new_password_hash: str,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """
        兌換重設 token 並更新密碼（session_version +1），同一個 transaction。
        成功回傳 user_id。
        """
        user_id = await self.redeem(db, raw_token, TokenPurpose.PASSWORD_RESET, now=now, commit=False)
        if user_id is None:
            return None

        version = await users_service.update_password(db, user_id, new_password_hash, commit=False)
        if version is None:
            await db.rollback()
            raise RuntimeError("Failed to update user password during reset.")

        await db.commit()
        logger.info("Password reset completed (user_id={})", user_id)
        return user_id

    async def verify_email_with_token(
        self,
        db: AsyncSession,
        raw_token: str,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """兌換驗證 token 並寫入 email_verified_at（已驗證過則維持原值）。"""
        user_id = await self.redeem(db, raw_token, TokenPurpose.EMAIL_VERIFICATION, now=now, commit=False)
        if user_id is None:
            return None

        await users_service.mark_email_verified(db, user_id, commit=False)
        await db.execute(delete(EmailVerificationToken).where(EmailVerificationToken.user_id == user_id))
        await db.commit()
        logger.info("Email verified (user_id={})", user_id)
        return user_id
