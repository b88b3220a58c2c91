# grrrignote/db/session.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Dict

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from grrrignote.core.config import Settings
from grrrignote.models.base import Base


def _engine_kwargs(url: str, settings: Settings) -> Dict[str, Any]:
    """
    連線池上限固定（max_overflow=0），取連線最多等 DB_POOL_TIMEOUT_SECONDS；
    PostgreSQL 另外設定連線逾時與 statement_timeout，避免卡住的查詢拖住 request。
    """
    kwargs: Dict[str, Any] = {
        "echo": settings.DB_ECHO,
        "pool_pre_ping": True,
    }
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        # SQLite 用 SQLAlchemy 預設的連線池即可
        return kwargs

    kwargs.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=0,
        pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
    )
    if backend == "postgresql":
        statement_timeout_ms = int(settings.DB_STATEMENT_TIMEOUT_SECONDS * 1000)
        kwargs["connect_args"] = {
            "timeout": settings.DB_POOL_TIMEOUT_SECONDS,
            "command_timeout": settings.DB_STATEMENT_TIMEOUT_SECONDS,
            "server_settings": {"statement_timeout": str(statement_timeout_ms)},
        }
    return kwargs


class Database:
    """
    DB 資源（engine + session factory）。
    由 create_app 建立並掛在 app.state.db，request 透過 get_db 依賴取得 session。
    """

    def __init__(self, url: str, settings: Settings):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **_engine_kwargs(url, settings))
        self.sessionmaker = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.database_url(), settings)

    async def ensure_schema(self) -> None:
        """啟動時執行一次；create_all 只建立缺少的表，重複呼叫無副作用。"""
        # 確保所有 model 都已註冊到 Base.metadata
        from grrrignote import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """取出一個 session，不論成功或例外都一定歸還連線。"""
        session = self.sessionmaker()
        try:
            yield session
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def dispose(self) -> None:
        await self.engine.dispose()


# ---- Dependency ----
async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI 依賴：從 app.state.db 取 session，完成後一律關閉。"""
    database: Database = request.app.state.db
    async with database.session() as session:
        yield session
