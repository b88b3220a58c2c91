# tests/test_auth_flows.py
import threading

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from conftest import BASE_URL, fetch_user, location, login, make_settings, seed_user
from grrrignote.api.pages import auth as auth_pages
from grrrignote.core.security import verify_password
from grrrignote.main import create_app
from grrrignote.models.auth_attempts import LoginAttempt, SignupAttempt
from grrrignote.models.users import User
from grrrignote.schemas.forms import FormValidationError, VerifyEmailForm, parse_form

EMAIL = "parent@example.com"
PASSWORD = "LOULOU38"


async def _signup(client, email=EMAIL, password=PASSWORD, confirm=None):
    return await client.post(
        "/signup",
        data={"email": email, "password": password, "confirmPassword": password if confirm is None else confirm},
    )


# --- Signup → verify email（端到端） ---
async def test_signup_then_verify_email(client, database, notifier):
    r = await _signup(client)
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    assert client.cookies.get("bb_session")

    async with database.session() as db:
        user = (await db.execute(select(User).where(User.email == EMAIL))).scalar_one()
    assert user.session_version == 0
    assert user.email_verified_at is None

    # 驗證信（best-effort）已送出，連結指向 APP_BASE_URL
    messages = notifier.of_kind("email_verification")
    assert len(messages) == 1
    assert messages[0][1] == EMAIL
    assert messages[0][2].startswith("http://testserver/verify-email?token=")

    # 剛註冊就是登入狀態
    r = await client.get("/")
    assert r.status_code == 200
    assert r.json()["user"]["email"] == EMAIL

    token = notifier.last_token("email_verification")
    r = await client.get("/verify-email", params={"token": token})
    assert r.status_code == 303
    assert location(r) == ("/verify-email", {"status": "success"})
    verified_at = (await fetch_user(database, user.id)).email_verified_at
    assert verified_at is not None

    # 同一個 token 再開一次：invalid，狀態不變
    r = await client.get("/verify-email", params={"token": token})
    assert location(r) == ("/verify-email", {"status": "invalid"})
    assert (await fetch_user(database, user.id)).email_verified_at == verified_at


async def test_verify_email_form_action(client, notifier):
    await _signup(client)
    token = notifier.last_token("email_verification")

    r = await client.post("/verify-email", data={"token": token})
    assert location(r) == ("/verify-email", {"status": "success"})

    r = await client.post("/verify-email", data={"token": ""})
    assert location(r) == ("/verify-email", {"status": "invalid"})


async def test_verify_email_form_without_token_field(client):
    r = await client.post("/verify-email", data={})
    assert location(r) == ("/verify-email", {"status": "invalid"})


def test_verify_email_form_reports_invalid_token():
    with pytest.raises(FormValidationError) as exc:
        parse_form(VerifyEmailForm, {"token": "   "})
    assert exc.value.code == "invalid_token"


async def test_signup_with_malformed_base_url(tmp_path, database, notifier):
    settings = make_settings(tmp_path, APP_BASE_URL="not a url")
    app = create_app(settings=settings, database=database, notifier=notifier)
    async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as c:
        r = await _signup(c)
    # 帳號照樣建立並登入，只是沒有驗證信
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    assert "bb_session=" in r.headers["set-cookie"]
    assert notifier.sent == []


async def test_verify_email_page_without_token(client):
    r = await client.get("/verify-email", params={"status": "success"})
    assert r.status_code == 200
    assert r.json() == {"page": "verify_email", "status": "success"}


async def test_signup_validation_errors_in_order(client, database):
    cases = [
        ({"email": "not-an-email", "password": "short", "confirm": "other"}, "invalid_email"),
        ({"email": EMAIL, "password": "short", "confirm": "other"}, "weak_password"),
        ({"email": EMAIL, "password": PASSWORD, "confirm": "LOULOU39"}, "password_mismatch"),
    ]
    for kwargs, code in cases:
        r = await _signup(client, **kwargs)
        assert r.status_code == 303
        assert location(r) == ("/signup", {"error": code})

    # 欄位錯誤不碰 DB：沒有建立帳號也沒有寫 ledger
    async with database.session() as db:
        assert (await db.execute(select(func.count()).select_from(User))).scalar_one() == 0
        assert (await db.execute(select(func.count()).select_from(SignupAttempt))).scalar_one() == 0


async def test_signup_with_existing_email(client, client_factory, notifier):
    await _signup(client)
    async with client_factory() as other:
        r = await _signup(other, email="PARENT@example.com")
    assert location(r) == ("/signup", {"error": "email_in_use"})
    assert len(notifier.of_kind("email_verification")) == 1


async def test_signup_rate_limited_after_failures(client_factory, database):
    await seed_user(database, EMAIL, PASSWORD)
    async with client_factory() as c:
        for _ in range(5):
            r = await _signup(c)
            assert location(r) == ("/signup", {"error": "email_in_use"})
        r = await _signup(c)
    assert location(r) == ("/signup", {"error": "rate_limited"})


# --- Login / logout ---
async def test_login_success_sets_session_cookie(client, database):
    await seed_user(database, EMAIL, PASSWORD)
    r = await login(client, " Parent@Example.com ", PASSWORD)
    assert r.status_code == 303
    assert r.headers["location"] == "/"

    set_cookie = r.headers["set-cookie"]
    assert set_cookie.startswith("bb_session=")
    assert "HttpOnly" in set_cookie
    assert "samesite=lax" in set_cookie.lower()
    assert "Path=/" in set_cookie
    assert "Max-Age=2592000" in set_cookie

    r = await client.get("/")
    assert r.status_code == 200


async def test_login_failures_are_uniform(client, database):
    await seed_user(database, EMAIL, PASSWORD)
    for email, password in [
        (EMAIL, "wrong-password"),
        ("nobody@example.com", PASSWORD),
        ("", PASSWORD),
        (EMAIL, ""),
    ]:
        r = await login(client, email, password)
        assert r.status_code == 303
        assert location(r) == ("/login", {"error": "invalid_credentials"})
        assert "set-cookie" not in r.headers


async def test_disabled_account_cannot_login(client, database):
    uid = await seed_user(database, EMAIL, PASSWORD)
    async with database.session() as db:
        user = await db.get(User, uid)
        user.status = "disabled"
        await db.commit()

    r = await login(client, EMAIL, PASSWORD)
    assert location(r) == ("/login", {"error": "invalid_credentials"})


async def test_login_rate_limited_even_with_correct_password(client, database):
    await seed_user(database, EMAIL, PASSWORD)
    for _ in range(5):
        await login(client, EMAIL, "wrong-password")

    r = await login(client, EMAIL, PASSWORD)
    assert location(r) == ("/login", {"error": "invalid_credentials"})

    async with database.session() as db:
        failures = (
            await db.execute(select(func.count()).select_from(LoginAttempt).where(LoginAttempt.success.is_(False)))
        ).scalar_one()
    assert failures == 6


async def test_login_page_redirects_when_already_logged_in(client, database):
    await seed_user(database, EMAIL, PASSWORD)
    r = await client.get("/login", params={"error": "invalid_credentials"})
    assert r.status_code == 200
    assert r.json() == {"page": "login", "error": "invalid_credentials", "reset": False}

    await login(client, EMAIL, PASSWORD)
    r = await client.get("/login")
    assert r.status_code == 303
    assert r.headers["location"] == "/"


async def test_logout_clears_cookie(client, database):
    await seed_user(database, EMAIL, PASSWORD)
    await login(client, EMAIL, PASSWORD)

    r = await client.post("/logout")
    assert r.status_code == 303
    assert r.headers["location"] == "/login"
    assert r.headers["set-cookie"].startswith("bb_session=")
    assert client.cookies.get("bb_session") is None

    r = await client.get("/")
    assert r.status_code == 303
    assert r.headers["location"] == "/login"


async def test_password_hashing_runs_off_the_event_loop(client, database, monkeypatch):
    await seed_user(database, EMAIL, PASSWORD)
    loop_thread = threading.get_ident()
    seen = []

    def recording_verify(password, password_hash):
        seen.append(threading.get_ident())
        return verify_password(password, password_hash)

    monkeypatch.setattr(auth_pages, "verify_password", recording_verify)
    r = await login(client, EMAIL, PASSWORD)
    assert r.headers["location"] == "/"
    assert seen and loop_thread not in seen
