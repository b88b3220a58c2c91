# tests/test_storage_failures.py
from sqlalchemy.exc import OperationalError

from conftest import location, login, seed_user
from grrrignote.services import rate_limit

EMAIL = "parent@example.com"
PASSWORD = "LOULOU38"


def _broken(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("database is locked"))


async def test_signup_survives_rate_limit_check_failure(client, monkeypatch):
    # 限流查詢失敗不擋註冊
    monkeypatch.setattr(rate_limit, "count_recent_attempts", _async(_broken))
    r = await client.post(
        "/signup",
        data={"email": EMAIL, "password": PASSWORD, "confirmPassword": PASSWORD},
    )
    assert r.headers["location"] == "/"


async def test_login_storage_failure_is_a_plain_failure(client, database, monkeypatch):
    await seed_user(database, EMAIL, PASSWORD)
    monkeypatch.setattr(rate_limit, "count_recent_attempts", _async(_broken))
    r = await login(client, EMAIL, PASSWORD)
    assert location(r) == ("/login", {"error": "invalid_credentials"})
    assert "set-cookie" not in r.headers


async def test_forgot_password_still_answers_sent(client, database, notifier, monkeypatch):
    await seed_user(database, EMAIL, PASSWORD)
    monkeypatch.setattr(rate_limit, "count_recent_attempts", _async(_broken))
    r = await client.post("/forgot-password", data={"email": EMAIL})
    assert location(r) == ("/forgot-password", {"sent": "1"})
    # 限流查詢失敗時照常寄信
    assert len(notifier.of_kind("password_reset")) == 1


def _async(fn):
    async def wrapper(*args, **kwargs):
        return fn(*args, **kwargs)

    return wrapper
