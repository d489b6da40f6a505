# -*- coding: utf-8 -*-

import json
import logging
import os
import tempfile
import time

import requests


log = logging.getLogger(__name__)

DEFAULT_TOKEN_TIMEOUT_SEC = 10
EXPIRY_SKEW_SEC = 60


class StartupError(Exception):
    pass


class MissingCredentialError(StartupError):
    pass


class InvalidCredentialError(StartupError):
    pass


class TokenRefreshError(Exception):
    def __init__(self, message, kind="token_error", status_code=None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


def utc_now_ms():
    return int(time.time() * 1000)


def token_is_rate_limited(error_text):
    text = (error_text or "").lower()
    return "429" in text or "too many requests" in text or "throttl" in text


class Credential:
    """An OAuth access/refresh token pair as stored in the token file.

    ``expiry_date`` is epoch milliseconds, the field Google client libraries
    write. Keys this class does not model (``scope``, ``token_type`` ...)
    are kept in ``extra`` so a rewrite does not drop them.
    """

    def __init__(self, access_token, refresh_token, expiry_date=None, extra=None):
        self.access_token = access_token or ""
        self.refresh_token = refresh_token
        self.expiry_date = expiry_date
        self.extra = dict(extra or {})

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise InvalidCredentialError("Stored credential must be a JSON object.")
        refresh_token = data.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token.strip():
            raise InvalidCredentialError("Stored credential has no refresh_token.")
        access_token = data.get("access_token")
        if access_token is not None and not isinstance(access_token, str):
            raise InvalidCredentialError("Stored access_token must be a string.")
        expiry_date = data.get("expiry_date")
        if expiry_date is not None:
            try:
                expiry_date = int(expiry_date)
            except (TypeError, ValueError):
                expiry_date = None
        extra = {
            key: value
            for key, value in data.items()
            if key not in ("access_token", "refresh_token", "expiry_date")
        }
        return cls(access_token, refresh_token.strip(), expiry_date, extra)

    def to_dict(self):
        data = dict(self.extra)
        data["access_token"] = self.access_token
        data["refresh_token"] = self.refresh_token
        if self.expiry_date is not None:
            data["expiry_date"] = self.expiry_date
        return data

    def is_expired(self, now_ms=None, skew_sec=EXPIRY_SKEW_SEC):
        if self.expiry_date is None:
            return False
        if now_ms is None:
            now_ms = utc_now_ms()
        return self.expiry_date <= now_ms + skew_sec * 1000

    def __repr__(self):
        return f"Credential(expiry_date={self.expiry_date!r}, has_access_token={bool(self.access_token)})"


class CredentialStore:
    def __init__(self, path):
        self.path = os.fspath(path)

    def load(self):
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                raw = handle.read()
        except FileNotFoundError:
            raise MissingCredentialError(f"No stored credential at {self.path}.") from None
        except (OSError, UnicodeDecodeError) as exc:
            raise InvalidCredentialError(f"Unable to read {self.path}: {exc}") from exc
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise InvalidCredentialError(f"{self.path} is not valid JSON: {exc}") from exc
        return Credential.from_dict(data)

    def save(self, credential):
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(
            prefix=".tokens-", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(credential.to_dict(), handle, indent=2)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


def request_token(token_uri, client_id, client_secret, refresh_token, timeout=DEFAULT_TOKEN_TIMEOUT_SEC):
    if not client_id or not refresh_token:
        raise TokenRefreshError("Missing client_id or refresh_token.", kind="token_error")
    data = {
        "client_id": client_id,
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
    }
    if client_secret:
        data["client_secret"] = client_secret
    try:
        response = requests.post(token_uri, data=data, timeout=timeout)
    except requests.RequestException as exc:
        status_code = getattr(getattr(exc, "response", None), "status_code", None)
        kind = "rate_limited" if status_code == 429 or token_is_rate_limited(str(exc)) else "token_error"
        raise TokenRefreshError(
            f"Token request failed: {exc}",
            kind=kind,
            status_code=status_code,
        ) from exc

    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    error = payload.get("error")
    if response.status_code >= 400 or error:
        detail = payload.get("error_description") or error or response.text[:160]
        if error == "invalid_grant":
            kind = "revoked"
        elif response.status_code == 429 or token_is_rate_limited(detail):
            kind = "rate_limited"
        else:
            kind = "token_error"
        raise TokenRefreshError(
            f"Token error ({response.status_code}): {detail}",
            kind=kind,
            status_code=response.status_code,
        )

    access_token = payload.get("access_token")
    if not access_token or not isinstance(access_token, str):
        raise TokenRefreshError("Access token missing.", kind="token_error", status_code=response.status_code)
    return payload


class TokenRefresher:
    """Owns the live credential and rewrites the token file on every refresh."""

    def __init__(self, store, credential, client_id, client_secret="", token_uri=None, timeout=DEFAULT_TOKEN_TIMEOUT_SEC):
        self.store = store
        self._credential = credential
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_uri = token_uri or "https://oauth2.googleapis.com/token"
        self.timeout = timeout

    @property
    def credential(self):
        return self._credential

    def refresh(self):
        current = self._credential
        payload = request_token(
            self.token_uri,
            self.client_id,
            self.client_secret,
            current.refresh_token,
            timeout=self.timeout,
        )
        updated = merge_token_response(current, payload)
        try:
            self.store.save(updated)
        except OSError as exc:
            raise TokenRefreshError(f"Unable to persist refreshed token: {exc}", kind="storage_error") from exc
        self._credential = updated
        log.info("Access token refreshed (expires %s)", updated.expiry_date)
        return updated

    def refresh_if_expired(self):
        if not self._credential.is_expired():
            return True
        try:
            self.refresh()
        except TokenRefreshError as exc:
            log.warning("Expired access token could not be refreshed: %s: %s", exc.kind, exc)
            return False
        return True


def merge_token_response(current, payload, now_ms=None):
    if now_ms is None:
        now_ms = utc_now_ms()
    extra = dict(current.extra)
    for key in ("scope", "token_type", "id_token"):
        if payload.get(key):
            extra[key] = payload[key]
    expiry_date = None
    try:
        expires_in = int(payload.get("expires_in") or 0)
    except (TypeError, ValueError):
        expires_in = 0
    if expires_in > 0:
        expiry_date = now_ms + expires_in * 1000
    # providers only return refresh_token when they rotate it
    refresh_token = (payload.get("refresh_token") or "").strip() or current.refresh_token
    return Credential(payload["access_token"], refresh_token, expiry_date, extra)
