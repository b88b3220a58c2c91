# grrrignote/core/cookies.py
from __future__ import annotations

from starlette.responses import Response

from grrrignote.core.config import Settings


def session_max_age(settings: Settings) -> int:
    return int(settings.SESSION_TTL_DAYS) * 24 * 60 * 60


def set_session_cookie(response: Response, settings: Settings, token: str) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=session_max_age(settings),
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def sets_session_cookie(response: Response, settings: Settings) -> bool:
    """response 是否已經自己設定 / 清除 session cookie。"""
    prefix = f"{settings.SESSION_COOKIE_NAME}="
    return any(value.startswith(prefix) for value in response.headers.getlist("set-cookie"))
