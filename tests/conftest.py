# tests/conftest.py
import os
from typing import List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ---- 測試期環境變數（先於 app 載入；模組層的 app = create_app() 會讀到）----
os.environ.setdefault("ENV", "test")

from grrrignote.core.config import Settings  # noqa: E402
from grrrignote.core.security import hash_password  # noqa: E402
from grrrignote.db.session import Database  # noqa: E402
from grrrignote.main import create_app  # noqa: E402
from grrrignote.services import users as users_service  # noqa: E402

TEST_SECRET = "test-secret-0123456789-abcdefghijklmnop"
BASE_URL = "http://testserver"


class RecordingNotifier:
    """取代 EmailDispatcher：只記錄寄出的連結，不打外部 API。"""

    def __init__(self):
        self.sent: List[Tuple[str, str, str]] = []

    async def send_password_reset_email(self, to: str, reset_url: str):
        self.sent.append(("password_reset", to, reset_url))
        return None

    async def send_email_verification_email(self, to: str, verify_url: str):
        self.sent.append(("email_verification", to, verify_url))
        return None

    def of_kind(self, kind: str) -> List[Tuple[str, str, str]]:
        return [m for m in self.sent if m[0] == kind]

    def last_token(self, kind: str) -> Optional[str]:
        messages = self.of_kind(kind)
        if not messages:
            return None
        return parse_qs(urlsplit(messages[-1][2]).query)["token"][0]


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        ENV="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        AUTH_SECRET=TEST_SECRET,
        APP_BASE_URL=BASE_URL,
        RESEND_API_KEY=None,
        TRUST_PROXY_IP_HEADERS=False,
        MAINTENANCE_MODE=False,
        RATE_LIMIT_ENABLED=True,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def database(settings):
    """每個測試一個 SQLite 檔；ASGITransport 不跑 lifespan，這裡自己建表。"""
    db = Database.from_settings(settings)
    await db.ensure_schema()
    yield db
    await db.dispose()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def app(settings, database, notifier):
    return create_app(settings=settings, database=database, notifier=notifier)


@pytest.fixture
def client_factory(app):
    """同一個 app 開多個 client（模擬多個裝置）。"""

    def _make(**kwargs) -> AsyncClient:
        transport = ASGITransport(app=app, **kwargs)
        return AsyncClient(transport=transport, base_url=BASE_URL)

    return _make


@pytest_asyncio.fixture
async def client(client_factory):
    """使用 ASGITransport 直接掛載 app，不需啟動伺服器。"""
    async with client_factory() as ac:
        yield ac


# ---- helpers ----
async def seed_user(database: Database, email: str, password: str) -> int:
    async with database.session() as db:
        user = await users_service.create_user(db, email, hash_password(password))
        return user.id


async def fetch_user(database: Database, user_id: int):
    async with database.session() as db:
        return await users_service.get_user_by_id(db, user_id)


async def login(client: AsyncClient, email: str, password: str):
    return await client.post("/login", data={"email": email, "password": password})


def location(response) -> Tuple[str, dict]:
    """回傳 (path, query dict)；query 的值取第一個。"""
    parts = urlsplit(response.headers["location"])
    return parts.path, {k: v[0] for k, v in parse_qs(parts.query).items()}
