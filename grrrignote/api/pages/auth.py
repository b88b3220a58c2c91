# grrrignote/api/pages/auth.py
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from grrrignote.api.pages.common import read_form, see_other
from grrrignote.core.cookies import clear_session_cookie, set_session_cookie
from grrrignote.core.deps import get_codec, get_current_user_optional, get_settings_dep
from grrrignote.core.request_ip import get_client_ip
from grrrignote.core.security import verify_password, verify_password_dummy
from grrrignote.db.session import get_db
from grrrignote.models.users import User, UserStatus
from grrrignote.schemas.forms import FormValidationError, LoginForm, parse_form
from grrrignote.services import rate_limit
from grrrignote.services import users as users_service

router = APIRouter(tags=["pages"])


def _login_failed() -> RedirectResponse:
    # 帳號不存在 / 密碼錯誤 / 停用 / 被限流，全部同一個結果
    return see_other("/login", error="invalid_credentials")


@router.get("/login", summary="Login page")
async def login_page(
    error: Optional[str] = None,
    reset: Optional[str] = None,
    user: Optional[User] = Depends(get_current_user_optional),
):
    if user is not None:
        return RedirectResponse("/", status_code=303)
    return {"page": "login", "error": error, "reset": reset == "1"}


# === 登入（attempt ledger 限流） ===
@router.post("/login", summary="Login form action")
async def login(request: Request, db: AsyncSession = Depends(get_db)):
    settings = get_settings_dep(request)
    try:
        form = parse_form(LoginForm, await read_form(request))
    except FormValidationError:
        return _login_failed()

    ip = get_client_ip(request)
    policy = rate_limit.login_policy(settings)
    session: Optional[tuple] = None
    success = False
    try:
        if await rate_limit.is_rate_limited(db, policy, form.email, ip):
            await rate_limit.record(db, policy, form.email, ip, succeeded=False)
            return _login_failed()

        user = await users_service.get_user_by_email(db, form.email)
        if user is not None and user.status == UserStatus.ACTIVE:
            success = await run_in_threadpool(verify_password, form.password, user.password_hash)
            # ledger 寫入失敗會 rollback（物件過期），先取出需要的欄位
            session = (int(user.id), int(user.session_version))
        else:
            # 帳號不存在時也雜湊一次，兩條路徑耗時相近
            await run_in_threadpool(verify_password_dummy, form.password)

        await rate_limit.record(db, policy, form.email, ip, succeeded=success)
    except SQLAlchemyError:
        logger.exception("Login aborted by a storage error")
        await db.rollback()
        return _login_failed()

    if not success or session is None:
        logger.info("Login failed")
        return _login_failed()

    user_id, session_version = session
    resp = see_other("/")
    set_session_cookie(resp, settings, get_codec(request).issue(user_id, session_version))
    logger.info("Login succeeded (user_id={})", user_id)
    return resp


# === 登出（只清掉這個裝置的 cookie） ===
@router.post("/logout", summary="Logout form action")
async def logout(request: Request):
    resp = see_other("/login")
    clear_session_cookie(resp, get_settings_dep(request))
    return resp
