# grrrignote/services/users.py
"""
Credential store：users 表的讀寫。
session_version 的遞增一律在 DB 端做（session_version = session_version + 1），
不在應用程式裡 read-modify-write，避免併發的「改密碼 / 登出全部」互相覆蓋。
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from grrrignote.core.security import normalize_email, now_utc
from grrrignote.models.one_time_tokens import PasswordResetToken
from grrrignote.models.users import User, UserStatus


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == int(user_id)))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, email: str, password_hash: str) -> User:
    """
    建立使用者並 commit。email 重複時由 DB unique constraint 拋出 IntegrityError，
    呼叫端負責轉成 email_in_use。
    """
    user = User(
        email=normalize_email(email),
        password_hash=password_hash,
        status=UserStatus.ACTIVE,
        session_version=0,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def _read_session_version(db: AsyncSession, user_id: int) -> Optional[int]:
    result = await db.execute(select(User.session_version).where(User.id == user_id))
    value = result.scalar_one_or_none()
    return int(value) if value is not None else None


async def bump_session_version(db: AsyncSession, user_id: int, *, commit: bool = True) -> Optional[int]:
    """
    原子地 +1；回傳新版本（使用者不存在則 None）。
    commit=False 時由呼叫端在同一個 transaction 內 commit。
    """
    now = now_utc()
    result = await db.execute(
        update(User)
        .where(User.id == int(user_id))
        .values(session_version=User.session_version + 1, updated_at=now)
    )
    if result.rowcount != 1:
        return None
    version = await _read_session_version(db, int(user_id))
    if commit:
        await db.commit()
    return version


async def update_password(
    db: AsyncSession,
    user_id: int,
    new_password_hash: str,
    *,
    commit: bool = True,
) -> Optional[int]:
    """
    更新密碼 + session_version 遞增 + 清掉尚未使用的重設連結。
    回傳新的 session_version（使用者不存在則 None）。
    """
    now = now_utc()
    result = await db.execute(
        update(User)
        .where(User.id == int(user_id))
        .values(
            password_hash=new_password_hash,
            session_version=User.session_version + 1,
            password_changed_at=now,
            updated_at=now,
        )
    )
    if result.rowcount != 1:
        return None

    version = await _read_session_version(db, int(user_id))
    await db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == int(user_id)))
    if commit:
        await db.commit()
    return version


async def mark_email_verified(db: AsyncSession, user_id: int, *, commit: bool = True) -> None:
    """只在尚未驗證時寫入時間；重複呼叫不改變既有值。"""
    now = now_utc()
    await db.execute(
        update(User)
        .where(User.id == int(user_id), User.email_verified_at.is_(None))
        .values(email_verified_at=now, updated_at=now)
    )
    if commit:
        await db.commit()


async def upsert_user(db: AsyncSession, email: str, password_hash: str, status: str = UserStatus.ACTIVE) -> User:
    """
    維運腳本用：帳號不存在就建立，存在就覆寫密碼與狀態。
    覆寫密碼同樣會讓既有 session 失效。
    """
    user = await get_user_by_email(db, email)
    if user is None:
        user = await create_user(db, email, password_hash)
        if status == UserStatus.ACTIVE:
            return user
    else:
        await update_password(db, user.id, password_hash, commit=False)

    await db.execute(update(User).where(User.id == user.id).values(status=status, updated_at=now_utc()))
    await db.commit()
    await db.refresh(user)
    return user
