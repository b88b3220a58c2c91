# grrrignote/core/deps.py
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from grrrignote.core.config import Settings
from grrrignote.core.security import SessionCodec
from grrrignote.db.session import get_db
from grrrignote.models.users import User, UserStatus
from grrrignote.services import users as users_service
from grrrignote.services.notifications import EmailDispatcher
from grrrignote.services.one_time_tokens import OneTimeTokenIssuer


class LoginRequired(Exception):
    """頁面路由需要登入；由 core/errors.py 轉成 303 → /login 並清掉 cookie。"""


# ---- app.state 上的共用物件 ----
def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_codec(request: Request) -> SessionCodec:
    return request.app.state.codec


def get_issuer(request: Request) -> OneTimeTokenIssuer:
    return request.app.state.issuer


def get_notifier(request: Request) -> EmailDispatcher:
    return request.app.state.notifier


async def resolve_session_user(request: Request, db: AsyncSession) -> Optional[User]:
    """
    由 session cookie 找出目前使用者：
      1️⃣ 驗證簽章 / 格式 / 有效期限（SessionCodec.validate）
      2️⃣ 依 user_id 查 DB
      3️⃣ 帳號必須是 active
      4️⃣ cookie 內的 session_version 必須等於 DB 目前值（改密碼 / 全部登出後舊 cookie 失效）
    任何一步失敗都回傳 None，呼叫端看不出是哪一步。
    """
    settings = get_settings_dep(request)
    codec = get_codec(request)

    claims = codec.validate(request.cookies.get(settings.SESSION_COOKIE_NAME))
    if claims is None:
        return None

    user = await users_service.get_user_by_id(db, claims.user_id)
    if user is None or user.status != UserStatus.ACTIVE:
        return None
    if int(user.session_version) != claims.session_version:
        return None

    # 用超過一半壽命的 session 由 middleware 換發新 cookie
    if codec.needs_renewal(claims):
        request.state.renew_session = (int(user.id), int(user.session_version))
    return user


async def get_current_user_optional(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    return await resolve_session_user(request, db)


async def require_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """頁面 / form action 用：未登入 → LoginRequired。"""
    user = await resolve_session_user(request, db)
    if user is None:
        raise LoginRequired()
    return user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """JSON API 用：未登入一律 401，不區分原因。"""
    user = await resolve_session_user(request, db)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user
