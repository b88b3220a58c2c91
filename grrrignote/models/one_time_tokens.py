# grrrignote/models/one_time_tokens.py
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from grrrignote.core.security import now_utc
from grrrignote.models.base import Base


class _OneTimeTokenColumns:
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # 只存 sha256；原始 token 只出現在寄出的連結裡
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, nullable=False)

    @declared_attr
    def user_id(cls) -> Mapped[int]:
        return mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)


class PasswordResetToken(_OneTimeTokenColumns, Base):
    __tablename__ = "password_reset_tokens"


class EmailVerificationToken(_OneTimeTokenColumns, Base):
    __tablename__ = "email_verification_tokens"
