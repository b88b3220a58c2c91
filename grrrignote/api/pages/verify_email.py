# grrrignote/api/pages/verify_email.py
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from grrrignote.api.pages.common import link, read_form, see_other
from grrrignote.core.deps import get_issuer, get_notifier, get_settings_dep
from grrrignote.db.session import get_db
from grrrignote.schemas.forms import FormValidationError, VerifyEmailForm, parse_form
from grrrignote.services.notifications import log_notification_error
from grrrignote.services.one_time_tokens import TokenPurpose

router = APIRouter(tags=["pages"])


async def send_verification_link(request: Request, db: AsyncSession, user_id: int, email: str) -> bool:
    """
    發一條新的驗證連結（舊連結作廢）。
    APP_BASE_URL 設定錯誤時不發 token，回傳 False；寄信失敗只記 log。
    DB 錯誤往外拋，由呼叫端決定是否在意。
    """
    settings = get_settings_dep(request)
    try:
        base_url = settings.app_base_url()
    except RuntimeError:
        logger.exception("Verification link cannot be built (user_id={})", user_id)
        return False

    raw = await get_issuer(request).issue(
        db,
        user_id,
        TokenPurpose.EMAIL_VERIFICATION,
        timedelta(minutes=settings.EMAIL_VERIFICATION_TTL_MINUTES),
    )
    error = await get_notifier(request).send_email_verification_email(
        email, link(base_url, "/verify-email", token=raw)
    )
    log_notification_error("email_verification", error)
    return True


async def _redeem(request: Request, db: AsyncSession, token: str) -> RedirectResponse:
    try:
        user_id = await get_issuer(request).verify_email_with_token(db, token)
    except SQLAlchemyError:
        logger.exception("Email verification aborted by a storage error")
        await db.rollback()
        user_id = None
    return see_other("/verify-email", status="success" if user_id is not None else "invalid")


@router.get("/verify-email", summary="Verify email page")
async def verify_email_page(
    request: Request,
    token: Optional[str] = None,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    status = (status or "").strip().lower()
    token = (token or "").strip()
    if token and status not in ("success", "invalid"):
        # email 連結直接開啟即完成驗證
        return await _redeem(request, db, token)
    return {
        "page": "verify_email",
        "status": status if status in ("success", "invalid") else "invalid",
    }


@router.post("/verify-email", summary="Verify email form action")
async def verify_email(request: Request, db: AsyncSession = Depends(get_db)):
    try:
        form = parse_form(VerifyEmailForm, await read_form(request))
    except FormValidationError:
        return see_other("/verify-email", status="invalid")
    return await _redeem(request, db, form.token)
