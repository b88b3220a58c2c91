# grrrignote/api/pages/password.py
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from grrrignote.api.pages.common import link, read_form, see_other
from grrrignote.core.deps import get_issuer, get_settings_dep
from grrrignote.core.request_ip import get_client_ip
from grrrignote.core.security import hash_password
from grrrignote.db.session import get_db
from grrrignote.models.users import UserStatus
from grrrignote.schemas.forms import (
    ForgotPasswordForm,
    FormValidationError,
    ResetPasswordForm,
    parse_form,
)
from grrrignote.services import rate_limit
from grrrignote.services import users as users_service
from grrrignote.services.notifications import log_notification_error
from grrrignote.services.one_time_tokens import TokenPurpose

router = APIRouter(tags=["pages"])


# === 忘記密碼 ===
@router.get("/forgot-password", summary="Forgot password page")
async def forgot_password_page(sent: Optional[str] = None):
    return {"page": "forgot_password", "sent": sent == "1"}


async def deliver_password_reset(app: FastAPI, email: str) -> None:
    """
    回應送出後才跑：查帳號、發重設 token、寄信。
    使用自己的 session；request 的 session 此時可能已關閉。
    """
    settings = app.state.settings
    try:
        base_url = settings.app_base_url()
    except RuntimeError:
        logger.exception("Password reset link cannot be built")
        return

    async with app.state.db.session() as db:
        try:
            user = await users_service.get_user_by_email(db, email)
            if user is None or user.status != UserStatus.ACTIVE:
                return
            to = user.email
            raw = await app.state.issuer.issue(
                db,
                user.id,
                TokenPurpose.PASSWORD_RESET,
                timedelta(minutes=settings.PASSWORD_RESET_TTL_MINUTES),
            )
        except SQLAlchemyError:
            logger.exception("Password reset request aborted by a storage error")
            await db.rollback()
            return

    error = await app.state.notifier.send_password_reset_email(to, link(base_url, "/reset-password", token=raw))
    log_notification_error("password_reset", error)


@router.post("/forgot-password", summary="Forgot password form action")
async def forgot_password(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """
    不論 email 是否存在、是否被限流、寄信是否成功，一律回「已寄出」，
    外部無法藉此判斷帳號是否存在。
    """
    sent = see_other("/forgot-password", sent="1")
    try:
        form = parse_form(ForgotPasswordForm, await read_form(request))
    except FormValidationError:
        return sent
    if not form.email:
        return sent

    settings = get_settings_dep(request)
    ip = get_client_ip(request)
    try:
        limited = await rate_limit.record_and_check(db, rate_limit.password_reset_policy(settings), form.email, ip)
    except SQLAlchemyError:
        logger.exception("Password reset rate-limit check failed")
        await db.rollback()
        limited = False
    if limited:
        return sent

    background_tasks.add_task(deliver_password_reset, request.app, form.email)
    return sent


# === 重設密碼 ===
@router.get("/reset-password", summary="Reset password page")
async def reset_password_page(token: Optional[str] = None, error: Optional[str] = None):
    token = (token or "").strip()
    return {"page": "reset_password", "token": token or None, "error": error}


@router.post("/reset-password", summary="Reset password form action")
async def reset_password(request: Request, db: AsyncSession = Depends(get_db)):
    data = await read_form(request)
    try:
        form = parse_form(ResetPasswordForm, data)
    except FormValidationError as exc:
        raw_token = data.get("token")
        token = raw_token.strip() if isinstance(raw_token, str) else ""
        if exc.code == "invalid_token" or not token:
            return see_other("/reset-password", error="invalid_token")
        # 保留 token，讓使用者在同一條連結重新輸入
        return see_other("/reset-password", error=exc.code, token=token)

    try:
        password_hash = await run_in_threadpool(hash_password, form.password)
        user_id = await get_issuer(request).reset_password_with_token(db, form.token, password_hash)
    except (SQLAlchemyError, RuntimeError):
        logger.exception("Password reset aborted")
        await db.rollback()
        user_id = None

    if user_id is None:
        return see_other("/reset-password", error="invalid_token")
    return see_other("/login", reset="1")
