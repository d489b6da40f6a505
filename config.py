# -*- coding: utf-8 -*-

import logging
import os

from dotenv import load_dotenv

from tokens import StartupError


DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_GMAIL_LABELS_URL = "https://gmail.googleapis.com/gmail/v1/users/me/labels"
DEFAULT_AUTH_RETRY_STATUSES = (401, 403, 404)


class ConfigError(StartupError):
    pass


class Settings:
    def __init__(
        self,
        client_id,
        client_secret="",
        redirect_uri="",
        idx_url="",
        host="0.0.0.0",
        port=3000,
        token_path="tokens.json",
        token_uri=DEFAULT_TOKEN_URI,
        gmail_labels_url=DEFAULT_GMAIL_LABELS_URL,
        poll_interval_sec=60.0,
        probe_timeout_sec=10.0,
        auth_retry_statuses=DEFAULT_AUTH_RETRY_STATUSES,
        check_gmail=True,
        check_idx=True,
        log_level="INFO",
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.idx_url = idx_url
        self.host = host
        self.port = port
        self.token_path = token_path
        self.token_uri = token_uri
        self.gmail_labels_url = gmail_labels_url
        self.poll_interval_sec = poll_interval_sec
        self.probe_timeout_sec = probe_timeout_sec
        self.auth_retry_statuses = frozenset(auth_retry_statuses)
        self.check_gmail = check_gmail
        self.check_idx = check_idx
        self.log_level = log_level

    def __repr__(self):
        # client_secret stays out of reprs and logs
        return (
            f"Settings(idx_url={self.idx_url!r}, port={self.port}, "
            f"token_path={self.token_path!r}, poll_interval_sec={self.poll_interval_sec}, "
            f"check_gmail={self.check_gmail}, check_idx={self.check_idx})"
        )


def env_flag(environ, name, default="1"):
    value = (environ.get(name, default) or "").strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"{name} must be a boolean flag, got {value!r}.")


def env_number(environ, name, default, cast=float, minimum=None, maximum=None):
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}.") from None
    if maximum is not None and value > maximum:
        raise ConfigError(f"{name} must be <= {maximum}, got {value}.")
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}.")
    return value


def parse_status_list(raw):
    statuses = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            code = int(part)
        except ValueError:
            raise ConfigError(f"Invalid HTTP status in AUTH_RETRY_STATUSES: {part!r}.") from None
        if not 100 <= code <= 599:
            raise ConfigError(f"Invalid HTTP status in AUTH_RETRY_STATUSES: {code}.")
        statuses.add(code)
    return frozenset(statuses)


def parse_log_level(raw):
    name = (raw or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ConfigError(f"LOG_LEVEL must be a logging level name, got {raw!r}.")
    return name


def load_settings(environ=None, env_file=".env", overrides=None):
    if environ is None:
        if env_file:
            load_dotenv(env_file, override=False)
        environ = os.environ
    if overrides:
        environ = dict(environ, **overrides)

    client_id = (environ.get("CLIENT_ID") or "").strip()
    if not client_id:
        raise ConfigError("CLIENT_ID is required.")

    check_gmail = env_flag(environ, "CHECK_GMAIL")
    check_idx = env_flag(environ, "CHECK_IDX")
    idx_url = (environ.get("IDX_URL") or "").strip()
    if check_idx and not idx_url:
        raise ConfigError("IDX_URL is required when CHECK_IDX is enabled.")

    raw_statuses = environ.get("AUTH_RETRY_STATUSES")
    if raw_statuses is None:
        auth_retry_statuses = frozenset(DEFAULT_AUTH_RETRY_STATUSES)
    else:
        auth_retry_statuses = parse_status_list(raw_statuses)

    probe_timeout_sec = env_number(environ, "PROBE_TIMEOUT_SEC", 10.0)
    if probe_timeout_sec <= 0:
        raise ConfigError("PROBE_TIMEOUT_SEC must be positive.")

    return Settings(
        client_id=client_id,
        client_secret=(environ.get("CLIENT_SECRET") or "").strip(),
        redirect_uri=(environ.get("REDIRECT_URI") or "").strip(),
        idx_url=idx_url,
        host=(environ.get("HOST") or "0.0.0.0").strip(),
        port=env_number(environ, "PORT", 3000, cast=int, minimum=1, maximum=65535),
        token_path=(environ.get("TOKEN_PATH") or "tokens.json").strip(),
        token_uri=(environ.get("TOKEN_URI") or DEFAULT_TOKEN_URI).strip(),
        gmail_labels_url=(environ.get("GMAIL_LABELS_URL") or DEFAULT_GMAIL_LABELS_URL).strip(),
        poll_interval_sec=env_number(environ, "POLL_INTERVAL_SEC", 60.0, minimum=1),
        probe_timeout_sec=probe_timeout_sec,
        auth_retry_statuses=auth_retry_statuses,
        check_gmail=check_gmail,
        check_idx=check_idx,
        log_level=parse_log_level(environ.get("LOG_LEVEL")),
    )
