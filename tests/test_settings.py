# tests/test_settings.py
import pytest

from conftest import make_settings
from grrrignote.core.config import DEV_BASE_URL, DEV_FALLBACK_SECRET, LOCAL_DATABASE_URL
from grrrignote.main import _validate_settings

STRONG_SECRET = "s" * 32


def _prod(tmp_path, **overrides):
    values = dict(
        ENV="production",
        AUTH_SECRET=STRONG_SECRET,
        APP_BASE_URL="https://grrrignote.app",
        DATABASE_URL="postgresql+asyncpg://u:p@db:5432/grrrignote",
    )
    values.update(overrides)
    return make_settings(tmp_path, **values)


def test_session_secrets_prefers_rotation_list(tmp_path):
    settings = make_settings(tmp_path, AUTH_SECRETS=" new-key , old-key ,, ", AUTH_SECRET="ignored")
    assert settings.session_secrets() == ["new-key", "old-key"]


def test_session_secrets_fallbacks(tmp_path):
    assert make_settings(tmp_path, AUTH_SECRET=" single ").session_secrets() == ["single"]
    assert make_settings(tmp_path, AUTH_SECRET=None, ENV="dev").session_secrets() == [DEV_FALLBACK_SECRET]
    with pytest.raises(RuntimeError):
        _prod(tmp_path, AUTH_SECRET=None).session_secrets()


def test_app_base_url_is_normalized(tmp_path):
    assert make_settings(tmp_path, APP_BASE_URL=" https://grrrignote.app/some/path/ ").app_base_url() == (
        "https://grrrignote.app"
    )
    assert make_settings(tmp_path, APP_BASE_URL="http://localhost:3000/").app_base_url() == "http://localhost:3000"
    assert make_settings(tmp_path, APP_BASE_URL=None).app_base_url() == DEV_BASE_URL

    with pytest.raises(RuntimeError):
        make_settings(tmp_path, APP_BASE_URL="ftp://grrrignote.app").app_base_url()
    with pytest.raises(RuntimeError):
        make_settings(tmp_path, APP_BASE_URL="grrrignote.app").app_base_url()
    with pytest.raises(RuntimeError):
        _prod(tmp_path, APP_BASE_URL=None).app_base_url()


def test_database_url(tmp_path):
    assert make_settings(tmp_path, DATABASE_URL=None, ENV="dev").database_url() == LOCAL_DATABASE_URL
    with pytest.raises(RuntimeError):
        _prod(tmp_path, DATABASE_URL=None).database_url()


def test_is_production(tmp_path):
    for env in ("prod", "Production", "staging", "preview"):
        assert make_settings(tmp_path, ENV=env).is_production
    for env in ("dev", "test", "local"):
        assert not make_settings(tmp_path, ENV=env).is_production


def test_validate_settings_accepts_complete_production_config(tmp_path):
    _validate_settings(_prod(tmp_path))
    _validate_settings(_prod(tmp_path, AUTH_SECRET=None, AUTH_SECRETS=f"{STRONG_SECRET},old"))


@pytest.mark.parametrize(
    "overrides, problem",
    [
        ({"AUTH_SECRET": "too-short"}, "AUTH_SECRET"),
        ({"AUTH_SECRET": None}, "AUTH_SECRET"),
        ({"APP_BASE_URL": None}, "APP_BASE_URL"),
        ({"APP_BASE_URL": "not a url"}, "APP_BASE_URL"),
        ({"DATABASE_URL": None}, "DATABASE_URL"),
    ],
)
def test_validate_settings_rejects_insecure_production_config(tmp_path, overrides, problem):
    with pytest.raises(RuntimeError) as excinfo:
        _validate_settings(_prod(tmp_path, **overrides))
    assert problem in str(excinfo.value)


def test_validate_settings_ignores_dev(tmp_path):
    _validate_settings(make_settings(tmp_path, ENV="dev", AUTH_SECRET="short", APP_BASE_URL=None))
