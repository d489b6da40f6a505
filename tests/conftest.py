from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import requests

from config import Settings


class FakeResponse:
    def __init__(self, status_code: int, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text or (json.dumps(payload) if payload is not None else "")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeHttp:
    """Scripted stand-in for ``requests.get`` / ``requests.post``.

    Each queued item is either a ``FakeResponse`` or an exception instance
    to raise. Every call is recorded as ``(method, url, kwargs)``.
    """

    def __init__(self) -> None:
        self.gets: list[Any] = []
        self.posts: list[Any] = []
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def _next(self, queue: list[Any], method: str, url: str, kwargs: dict[str, Any]) -> Any:
        self.calls.append((method, url, kwargs))
        if not queue:
            raise AssertionError(f"unexpected {method} {url}")
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url: str, **kwargs: Any) -> Any:
        return self._next(self.gets, "GET", url, kwargs)

    def post(self, url: str, **kwargs: Any) -> Any:
        return self._next(self.posts, "POST", url, kwargs)

    def methods(self) -> list[str]:
        return [method for method, _, _ in self.calls]

    def bearer_tokens(self) -> list[str]:
        return [
            kwargs["headers"]["Authorization"].split(" ", 1)[1]
            for method, _, kwargs in self.calls
            if method == "GET"
        ]


@pytest.fixture
def fake_http(monkeypatch) -> FakeHttp:
    http = FakeHttp()
    monkeypatch.setattr(requests, "get", http.get)
    monkeypatch.setattr(requests, "post", http.post)
    return http


@pytest.fixture
def token_file(tmp_path) -> Path:
    path = tmp_path / "tokens.json"
    path.write_text(json.dumps({"access_token": "A1", "refresh_token": "R1"}, indent=2))
    return path


@pytest.fixture
def settings(token_file) -> Settings:
    return Settings(
        client_id="client-id",
        client_secret="client-secret",
        idx_url="https://idx.example.test/ping",
        token_path=str(token_file),
        token_uri="https://oauth.example.test/token",
        gmail_labels_url="https://mail.example.test/labels",
        poll_interval_sec=60,
        probe_timeout_sec=5,
    )
