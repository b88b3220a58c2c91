# tests/test_password_reset.py
import asyncio
import time
from urllib.parse import urlencode

from httpx import ASGITransport, AsyncClient

from conftest import BASE_URL, RecordingNotifier, fetch_user, location, login, make_settings, seed_user
from grrrignote.main import create_app
from grrrignote.models.users import User

EMAIL = "parent@example.com"
PASSWORD = "LOULOU38"
NEW_PASSWORD = "NOUVEAU-MOT-2"
SLOW_SEND_SECONDS = 1.0


async def _forgot(client, email=EMAIL):
    return await client.post("/forgot-password", data={"email": email})


async def _reset(client, token, password=NEW_PASSWORD, confirm=None):
    return await client.post(
        "/reset-password",
        data={"token": token, "password": password, "confirmPassword": password if confirm is None else confirm},
    )


async def test_unknown_email_looks_identical(client, notifier):
    r = await _forgot(client, "nobody@example.com")
    assert r.status_code == 303
    assert location(r) == ("/forgot-password", {"sent": "1"})
    assert notifier.sent == []

    # 空白 email 也一樣
    r = await _forgot(client, "")
    assert location(r) == ("/forgot-password", {"sent": "1"})
    assert notifier.sent == []


async def test_reset_flow_invalidates_old_sessions(client, client_factory, database, notifier):
    uid = await seed_user(database, EMAIL, PASSWORD)

    # 另一個裝置先登入
    async with client_factory() as other:
        await login(other, EMAIL, PASSWORD)
        assert (await other.get("/")).status_code == 200

        r = await _forgot(client, "Parent@Example.com")
        assert location(r) == ("/forgot-password", {"sent": "1"})
        messages = notifier.of_kind("password_reset")
        assert len(messages) == 1
        assert messages[0][1] == EMAIL
        assert messages[0][2].startswith("http://testserver/reset-password?token=")

        token = notifier.last_token("password_reset")
        r = await _reset(client, token)
        assert location(r) == ("/login", {"reset": "1"})

        user = await fetch_user(database, uid)
        assert user.session_version == 1
        assert user.password_changed_at is not None

        # 舊 cookie 失效：303 → /login 並清掉 cookie
        r = await other.get("/")
        assert r.status_code == 303
        assert r.headers["location"] == "/login"

    # 新密碼可登入、舊密碼不行
    assert location(await login(client, EMAIL, PASSWORD)) == ("/login", {"error": "invalid_credentials"})
    assert (await login(client, EMAIL, NEW_PASSWORD)).headers["location"] == "/"


async def test_reset_token_is_single_use(client, database, notifier):
    await seed_user(database, EMAIL, PASSWORD)
    await _forgot(client)
    token = notifier.last_token("password_reset")

    assert location(await _reset(client, token)) == ("/login", {"reset": "1"})
    r = await _reset(client, token, password="ANOTHER-PASS-3")
    assert location(r) == ("/reset-password", {"error": "invalid_token"})


async def test_new_request_invalidates_previous_link(client, database, notifier):
    await seed_user(database, EMAIL, PASSWORD)
    await _forgot(client)
    first = notifier.last_token("password_reset")
    await _forgot(client)
    second = notifier.last_token("password_reset")
    assert first != second

    assert location(await _reset(client, first)) == ("/reset-password", {"error": "invalid_token"})
    assert location(await _reset(client, second)) == ("/login", {"reset": "1"})


async def test_reset_form_errors_keep_the_token(client, database, notifier):
    await seed_user(database, EMAIL, PASSWORD)
    await _forgot(client)
    token = notifier.last_token("password_reset")

    r = await _reset(client, token, password="short")
    assert location(r) == ("/reset-password", {"error": "weak_password", "token": token})

    r = await _reset(client, token, confirm="SOMETHING-ELSE")
    assert location(r) == ("/reset-password", {"error": "password_mismatch", "token": token})

    # token 沒被消耗，仍可使用
    assert location(await _reset(client, token)) == ("/login", {"reset": "1"})


async def test_reset_without_token(client):
    r = await _reset(client, "")
    assert location(r) == ("/reset-password", {"error": "invalid_token"})

    r = await _reset(client, "not-a-real-token")
    assert location(r) == ("/reset-password", {"error": "invalid_token"})


async def test_reset_page_view_model(client):
    r = await client.get("/reset-password", params={"token": " abc "})
    assert r.status_code == 200
    assert r.json() == {"page": "reset_password", "token": "abc", "error": None}


async def test_forgot_password_is_rate_limited(client, database, notifier):
    await seed_user(database, EMAIL, PASSWORD)
    for _ in range(5):
        r = await _forgot(client)
        assert location(r) == ("/forgot-password", {"sent": "1"})
    assert len(notifier.of_kind("password_reset")) == 5

    # 第 6 次：回應一樣，但不寄信
    r = await _forgot(client)
    assert location(r) == ("/forgot-password", {"sent": "1"})
    assert len(notifier.of_kind("password_reset")) == 5


async def test_disabled_account_gets_no_email(client, database, notifier):
    uid = await seed_user(database, EMAIL, PASSWORD)
    async with database.session() as db:
        user = await db.get(User, uid)
        user.status = "disabled"
        await db.commit()

    r = await _forgot(client)
    assert location(r) == ("/forgot-password", {"sent": "1"})
    assert notifier.sent == []


class SlowNotifier(RecordingNotifier):
    """模擬很慢的寄信服務。"""

    async def send_password_reset_email(self, to: str, reset_url: str):
        await asyncio.sleep(SLOW_SEND_SECONDS)
        return await super().send_password_reset_email(to, reset_url)


async def _seconds_until_response(app, email: str) -> float:
    """直接呼叫 ASGI app，量到最後一段 response body 送出為止（不含之後的背景工作）。"""
    body = urlencode({"email": email}).encode()
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/forgot-password",
        "raw_path": b"/forgot-password",
        "root_path": "",
        "query_string": b"",
        "headers": [
            (b"host", b"testserver"),
            (b"content-type", b"application/x-www-form-urlencoded"),
            (b"content-length", str(len(body)).encode()),
        ],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }
    finished = asyncio.Event()
    body_read = False
    responded_at = []

    async def receive():
        nonlocal body_read
        if not body_read:
            body_read = True
            return {"type": "http.request", "body": body, "more_body": False}
        await finished.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        if message["type"] == "http.response.body" and not message.get("more_body", False):
            responded_at.append(time.perf_counter())

    started = time.perf_counter()
    await app(scope, receive, send)
    finished.set()
    return responded_at[0] - started


async def test_response_time_does_not_reveal_account(settings, database):
    await seed_user(database, EMAIL, PASSWORD)
    slow = SlowNotifier()
    app = create_app(settings=settings, database=database, notifier=slow)

    unknown = await _seconds_until_response(app, "nobody@example.com")
    known = await _seconds_until_response(app, EMAIL)

    # 信在回應送出後才寄
    assert known < SLOW_SEND_SECONDS / 2
    assert abs(known - unknown) < 0.5
    assert len(slow.of_kind("password_reset")) == 1


async def test_malformed_base_url_still_answers_sent(tmp_path, database, notifier):
    await seed_user(database, EMAIL, PASSWORD)
    settings = make_settings(tmp_path, APP_BASE_URL="not a url")
    app = create_app(settings=settings, database=database, notifier=notifier)
    async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as c:
        r = await _forgot(c)
    assert r.status_code == 303
    assert location(r) == ("/forgot-password", {"sent": "1"})
    assert notifier.sent == []
