# grrrignote/core/errors.py
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from grrrignote.core.cookies import clear_session_cookie, set_session_cookie, sets_session_cookie
from grrrignote.core.deps import LoginRequired

# 不需要 cookie 的頁面（含子路徑）
PUBLIC_PATHS = (
    "/login",
    "/signup",
    "/share",
    "/forgot-password",
    "/reset-password",
    "/verify-email",
    "/maintenance",
)
# 不經過登入 / 維護模式判斷：ops 端點、API 文件，以及自己回 401 的 JSON API
EXEMPT_PATHS = ("/healthz", "/readyz", "/metrics", "/docs", "/redoc", "/openapi.json")
API_PREFIX = "/api"


def _matches(path: str, prefixes) -> bool:
    return any(path == p or path.startswith(f"{p}/") for p in prefixes)


def is_public_path(path: str) -> bool:
    return _matches(path, PUBLIC_PATHS)


def is_exempt_path(path: str) -> bool:
    return _matches(path, EXEMPT_PATHS) or _matches(path, (API_PREFIX,))


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):
        # 統一輸出格式
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):
        # 只回欄位位置與類型，不回傳輸入值
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=422, content={"detail": "Validation error", "errors": errors})

    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired):
        resp = RedirectResponse("/login", status_code=303)
        clear_session_cookie(resp, request.app.state.settings)
        return resp

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal error"})

    # middleware：後註冊的在外層（security headers 最外層，連 redirect 也會帶）
    @app.middleware("http")
    async def renew_session_cookie(request: Request, call_next):
        resp = await call_next(request)
        renew = getattr(request.state, "renew_session", None)
        settings = request.app.state.settings
        if renew and not sets_session_cookie(resp, settings):
            user_id, session_version = renew
            set_session_cookie(resp, settings, request.app.state.codec.issue(user_id, session_version))
        return resp

    @app.middleware("http")
    async def guard_pages(request: Request, call_next):
        path = request.url.path
        if is_exempt_path(path):
            return await call_next(request)

        settings = request.app.state.settings
        if settings.MAINTENANCE_MODE and path != "/maintenance":
            return RedirectResponse("/maintenance", status_code=303)
        if not settings.MAINTENANCE_MODE and path == "/maintenance":
            return RedirectResponse("/", status_code=303)

        # 只看 cookie 是否存在；完整驗證由需要使用者的路由負責
        if is_public_path(path) or request.cookies.get(settings.SESSION_COOKIE_NAME):
            return await call_next(request)
        return RedirectResponse("/login", status_code=303)

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        # 小強化：避免洩露伺服器細節
        resp = await call_next(request)
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return resp
