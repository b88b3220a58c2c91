# grrrignote/api/pages/signup.py
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from grrrignote.api.pages.common import read_form, see_other
from grrrignote.api.pages.verify_email import send_verification_link
from grrrignote.core.cookies import set_session_cookie
from grrrignote.core.deps import get_codec, get_current_user_optional, get_settings_dep
from grrrignote.core.request_ip import get_client_ip
from grrrignote.core.security import hash_password
from grrrignote.db.session import get_db
from grrrignote.models.users import User
from grrrignote.schemas.forms import FormValidationError, SignupForm, parse_form
from grrrignote.services import rate_limit
from grrrignote.services import users as users_service

router = APIRouter(tags=["pages"])


def _signup_failed(reason: str) -> RedirectResponse:
    return see_other("/signup", error=reason)


@router.get("/signup", summary="Signup page")
async def signup_page(
    error: Optional[str] = None,
    user: Optional[User] = Depends(get_current_user_optional),
):
    if user is not None:
        return RedirectResponse("/", status_code=303)
    return {"page": "signup", "error": error}


@router.post("/signup", summary="Signup form action")
async def signup(request: Request, db: AsyncSession = Depends(get_db)):
    """
    順序：欄位驗證（不碰 DB）→ 限流 → 建立帳號 → 發 session → 寄驗證信（best-effort）。
    email 已被註冊是唯一會明確告知的失敗。
    """
    settings = get_settings_dep(request)
    try:
        form = parse_form(SignupForm, await read_form(request))
    except FormValidationError as exc:
        return _signup_failed(exc.code)

    ip = get_client_ip(request)
    policy = rate_limit.signup_policy(settings)
    try:
        limited = await rate_limit.is_rate_limited(db, policy, form.email, ip)
    except SQLAlchemyError:
        # 限流查詢失敗不擋註冊
        logger.exception("Signup rate-limit check failed")
        await db.rollback()
        limited = False

    if limited:
        await rate_limit.record(db, policy, form.email, ip, succeeded=False)
        return _signup_failed("rate_limited")

    password_hash = await run_in_threadpool(hash_password, form.password)
    try:
        user = await users_service.create_user(db, form.email, password_hash)
    except IntegrityError:
        await db.rollback()
        await rate_limit.record(db, policy, form.email, ip, succeeded=False)
        logger.info("Signup rejected: email already registered")
        return _signup_failed("email_in_use")
    except SQLAlchemyError:
        logger.exception("Signup aborted by a storage error")
        await db.rollback()
        await rate_limit.record(db, policy, form.email, ip, succeeded=False)
        return _signup_failed("unknown")

    user_id, email, session_version = int(user.id), user.email, int(user.session_version)
    await rate_limit.record(db, policy, form.email, ip, succeeded=True)
    logger.info("Signup succeeded (user_id={})", user_id)

    resp = see_other("/")
    set_session_cookie(resp, settings, get_codec(request).issue(user_id, session_version))

    try:
        await send_verification_link(request, db, user_id, email)
    except SQLAlchemyError:
        logger.exception("Verification token could not be issued (user_id={})", user_id)
        await db.rollback()
    return resp
