# grrrignote/main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from grrrignote.api.pages.router import pages_router
from grrrignote.api.v1.router import api_router
from grrrignote.core.config import Settings, get_settings
from grrrignote.core.errors import register_error_handlers
from grrrignote.core.logging import setup_logging
from grrrignote.core.security import SessionCodec
from grrrignote.db.session import Database
from grrrignote.services.notifications import EmailDispatcher
from grrrignote.services.one_time_tokens import OneTimeTokenIssuer

# Monitoring
import sentry_sdk
from prometheus_fastapi_instrumentator import Instrumentator

setup_logging(get_settings().LOG_LEVEL)

MIN_SECRET_LENGTH = 32


def _validate_settings(settings: Settings) -> None:
    """
    部署前安全檢查：在 prod/staging/preview 等環境時，
    簽章金鑰太短 / 沒設定、APP_BASE_URL 或資料庫 URL 缺少，都直接拒絕啟動。
    """
    if not settings.is_production:
        return

    problems = []
    secrets_ = [s.strip() for s in (settings.AUTH_SECRETS or "").split(",") if s.strip()]
    if not secrets_ and (settings.AUTH_SECRET or "").strip():
        secrets_ = [settings.AUTH_SECRET.strip()]
    if not secrets_ or len(secrets_[0]) < MIN_SECRET_LENGTH:
        problems.append("AUTH_SECRET/AUTH_SECRETS")
    try:
        settings.app_base_url()
    except RuntimeError:
        problems.append("APP_BASE_URL")
    if not (settings.DATABASE_URL or "").strip():
        problems.append("POSTGRES_URL/DATABASE_URL")

    if problems:
        raise RuntimeError(
            f"Insecure or missing config for {', '.join(problems)} in ENV={settings.ENV}. "
            "Please set them via environment variables."
        )


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    notifier: Optional[EmailDispatcher] = None,
) -> FastAPI:
    settings = settings or get_settings()
    # 基本安全檢查
    _validate_settings(settings)

    database = database or Database.from_settings(settings)
    secrets_ = settings.session_secrets()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 啟動時確保 schema 存在（只執行一次）；關閉時歸還連線池
        await database.ensure_schema()
        logger.info("Database schema ensured")
        try:
            yield
        finally:
            await database.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    # 共用資源掛在 app.state，路由透過 core/deps.py 取用
    app.state.settings = settings
    app.state.db = database
    app.state.codec = SessionCodec(secrets_, ttl_seconds=settings.SESSION_TTL_DAYS * 24 * 60 * 60)
    app.state.issuer = OneTimeTokenIssuer(secrets_[0])
    app.state.notifier = notifier or EmailDispatcher(settings)

    # ---- Sentry 初始化（若 .env/SENTRY_DSN 未設定就略過）----
    if settings.SENTRY_DSN:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            traces_sample_rate=float(settings.SENTRY_TRACES_SAMPLE_RATE),
            environment=settings.SENTRY_ENV or settings.ENV,
            send_default_pii=False,
        )

    # ---- Prometheus /metrics ----
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    # 統一錯誤處理 + middleware（security headers / 登入守門 / session 續期）
    register_error_handlers(app)

    # === 路由 ===
    # 1) JSON API（/api/v1/...）
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)
    # 2) 頁面與 form action
    app.include_router(pages_router)

    # 健康檢查（ops）
    @app.get("/healthz", tags=["ops"])
    async def healthz():
        return {"ok": True}

    @app.get("/readyz", tags=["ops"])
    async def readyz():
        try:
            await database.ping()
        except (SQLAlchemyError, OSError):
            logger.exception("Readiness probe failed")
            return JSONResponse(status_code=503, content={"ready": False})
        return {"ready": True}

    logger.info("Application initialized (env={})", settings.ENV)
    return app


# Uvicorn 進入點：uvicorn grrrignote.main:app
app = create_app()
