from __future__ import annotations

import os

import pytest

from config import ConfigError, load_settings, parse_status_list
from tokens import StartupError

BASE = {"CLIENT_ID": "client-id", "IDX_URL": "https://idx.example.test/ping"}


def test_defaults() -> None:
    settings = load_settings(dict(BASE))
    assert settings.port == 3000
    assert settings.poll_interval_sec == 60.0
    assert settings.probe_timeout_sec == 10.0
    assert settings.auth_retry_statuses == frozenset({401, 403, 404})
    assert settings.token_path == "tokens.json"
    assert settings.check_gmail is True
    assert settings.check_idx is True


def test_overrides() -> None:
    settings = load_settings(dict(
        BASE,
        PORT="8080",
        POLL_INTERVAL_SEC="15",
        PROBE_TIMEOUT_SEC="2.5",
        AUTH_RETRY_STATUSES="401, 403",
        CHECK_GMAIL="false",
        REDIRECT_URI="http://localhost/callback",
    ))
    assert settings.port == 8080
    assert settings.poll_interval_sec == 15.0
    assert settings.probe_timeout_sec == 2.5
    assert settings.auth_retry_statuses == frozenset({401, 403})
    assert settings.check_gmail is False
    assert settings.redirect_uri == "http://localhost/callback"


def test_empty_status_list_disables_refresh_retry() -> None:
    assert load_settings(dict(BASE, AUTH_RETRY_STATUSES="")).auth_retry_statuses == frozenset()


@pytest.mark.parametrize(
    "environ",
    [
        {"IDX_URL": "https://idx.example.test/ping"},
        {"CLIENT_ID": "client-id"},
        dict(BASE, PORT="http"),
        dict(BASE, PORT="0"),
        dict(BASE, POLL_INTERVAL_SEC="soon"),
        dict(BASE, PROBE_TIMEOUT_SEC="0"),
        dict(BASE, AUTH_RETRY_STATUSES="401,unauthorized"),
        dict(BASE, AUTH_RETRY_STATUSES="401,999"),
        dict(BASE, CHECK_IDX="maybe"),
        dict(BASE, PORT="70000"),
        dict(BASE, LOG_LEVEL="verbose"),
    ],
)
def test_invalid_config_is_a_startup_error(environ) -> None:
    with pytest.raises(ConfigError) as excinfo:
        load_settings(environ)
    assert isinstance(excinfo.value, StartupError)


def test_idx_url_optional_when_idx_probe_disabled() -> None:
    settings = load_settings({"CLIENT_ID": "client-id", "CHECK_IDX": "0"})
    assert settings.check_idx is False


def test_log_level_is_normalized() -> None:
    assert load_settings(dict(BASE, LOG_LEVEL=" debug ")).log_level == "DEBUG"


def test_overrides_win_over_environment() -> None:
    environ = dict(BASE)
    settings = load_settings(environ, overrides={"IDX_URL": "https://other.example.test/", "CHECK_GMAIL": "0"})
    assert settings.idx_url == "https://other.example.test/"
    assert settings.check_gmail is False
    assert environ == BASE


def test_explicit_environ_skips_dotenv(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("CLIENT_ID=from-dotenv\n")
    monkeypatch.delenv("CLIENT_ID", raising=False)
    assert load_settings(dict(BASE)).client_id == "client-id"
    assert "CLIENT_ID" not in os.environ


def test_parse_status_list_ignores_blanks() -> None:
    assert parse_status_list(" 401,, 403 ") == frozenset({401, 403})


def test_repr_hides_secret() -> None:
    settings = load_settings(dict(BASE, CLIENT_SECRET="s3cret"))
    assert "s3cret" not in repr(settings)
