# grrrignote/api/pages/account.py
from typing import Optional

from fastapi import APIRouter, Depends, Request
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from grrrignote.api.pages.common import read_form, see_other
from grrrignote.api.pages.verify_email import send_verification_link
from grrrignote.core.cookies import set_session_cookie
from grrrignote.core.deps import get_codec, get_settings_dep, require_user
from grrrignote.core.security import hash_password, verify_password
from grrrignote.db.session import get_db
from grrrignote.models.users import User
from grrrignote.schemas.user import UserRead
from grrrignote.schemas.forms import ChangePasswordForm, FormValidationError, parse_form
from grrrignote.services import users as users_service

router = APIRouter(prefix="/account", tags=["pages"])


@router.get("", summary="Account page")
async def account_page(
    pw: Optional[str] = None,
    verify_sent: Optional[str] = None,
    already_verified: Optional[str] = None,
    sessions: Optional[str] = None,
    error: Optional[str] = None,
    user: User = Depends(require_user),
):
    return {
        "page": "account",
        "account": UserRead.model_validate(user).model_dump(mode="json"),
        "password_changed": pw == "1",
        "verification_sent": verify_sent == "1",
        "already_verified": already_verified == "1",
        "sessions_revoked": sessions == "1",
        "error": error,
    }


def _reissue_session(request: Request, resp, user_id: int, session_version: int) -> None:
    # 目前這個裝置換上新版本的 cookie，其他裝置的舊 cookie 失效
    set_session_cookie(resp, get_settings_dep(request), get_codec(request).issue(user_id, session_version))


# === 修改密碼 ===
@router.post("/password", summary="Change password form action")
async def change_password(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        form = parse_form(ChangePasswordForm, await read_form(request))
    except FormValidationError as exc:
        return see_other("/account", error=exc.code)

    if not await run_in_threadpool(verify_password, form.current_password, user.password_hash):
        logger.info("Password change rejected: wrong current password (user_id={})", user.id)
        return see_other("/account", error="bad_password")

    password_hash = await run_in_threadpool(hash_password, form.password)
    try:
        version = await users_service.update_password(db, user.id, password_hash)
    except SQLAlchemyError:
        logger.exception("Password change aborted by a storage error (user_id={})", user.id)
        await db.rollback()
        version = None
    if version is None:
        return see_other("/account", error="unknown")

    logger.info("Password changed (user_id={})", user.id)
    resp = see_other("/account", pw="1")
    _reissue_session(request, resp, user.id, version)
    return resp


# === 重寄驗證信 ===
@router.post("/verification-email", summary="Resend verification email form action")
async def resend_verification_email(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    if user.email_verified_at is not None:
        return see_other("/account", already_verified="1")

    try:
        sent = await send_verification_link(request, db, user.id, user.email)
    except SQLAlchemyError:
        logger.exception("Verification token could not be issued (user_id={})", user.id)
        await db.rollback()
        return see_other("/account", error="unknown")
    if not sent:
        return see_other("/account", error="unknown")
    return see_other("/account", verify_sent="1")


# === 登出所有裝置 ===
@router.post("/logout-everywhere", summary="Logout everywhere form action")
async def logout_everywhere(
    request: Request,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        version = await users_service.bump_session_version(db, user.id)
    except SQLAlchemyError:
        logger.exception("Session revocation aborted by a storage error (user_id={})", user.id)
        await db.rollback()
        version = None
    if version is None:
        return see_other("/account", error="unknown")

    logger.info("All sessions revoked (user_id={})", user.id)
    resp = see_other("/account", sessions="1")
    _reissue_session(request, resp, user.id, version)
    return resp
