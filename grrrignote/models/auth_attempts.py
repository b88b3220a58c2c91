# grrrignote/models/auth_attempts.py
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from grrrignote.core.security import now_utc
from grrrignote.models.base import Base


class _AttemptColumns:
    """限流用的 append-only ledger；以 created_at 做滑動視窗查詢。"""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email_norm: Mapped[str] = mapped_column(String(254), nullable=False)
    # IPv6 最長 45 字元；無法取得可信 IP 時為 NULL
    ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, nullable=False)


class LoginAttempt(_AttemptColumns, Base):
    __tablename__ = "auth_login_attempts"
    __table_args__ = (
        Index("ix_auth_login_attempts_email_created", "email_norm", "created_at"),
        Index("ix_auth_login_attempts_ip_created", "ip", "created_at"),
    )


class SignupAttempt(_AttemptColumns, Base):
    __tablename__ = "auth_signup_attempts"
    __table_args__ = (
        Index("ix_auth_signup_attempts_email_created", "email_norm", "created_at"),
        Index("ix_auth_signup_attempts_ip_created", "ip", "created_at"),
    )


class PasswordResetAttempt(_AttemptColumns, Base):
    __tablename__ = "auth_password_reset_attempts"
    __table_args__ = (
        Index("ix_auth_password_reset_attempts_email_created", "email_norm", "created_at"),
        Index("ix_auth_password_reset_attempts_ip_created", "ip", "created_at"),
    )
