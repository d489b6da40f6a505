#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import logging
import socket
import sys

from flask import Flask, render_template_string

from config import load_settings
from monitor import Monitor, PollWorker, StatusCache
from probes import build_probe_set
from tokens import CredentialStore, StartupError, TokenRefresher


log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
NOT_YET_UPDATED = "not yet updated"

STATUS_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{{ title }}</title>
  <style>
    :root {
      --bg: #111;
      --card: #222;
      --ink: #eee;
      --muted: #999;
      --ok: #3ddc84;
      --fail: #ff5a4f;
      --line: #444;
    }
    * { box-sizing: border-box; }
    body {
      margin: 0;
      min-height: 100vh;
      background: var(--bg);
      color: var(--ink);
      font-family: sans-serif;
      text-align: center;
      padding: 40px 16px;
    }
    h1 { margin: 0 0 10px; font-size: 28px; }
    .box {
      margin: 20px auto;
      padding: 20px;
      border: 1px solid var(--line);
      width: min(340px, 92vw);
      border-radius: 10px;
      background: var(--card);
    }
    .row { display: flex; justify-content: space-between; margin: 0 0 12px; }
    .ok { color: var(--ok); font-weight: 600; }
    .fail { color: var(--fail); font-weight: 600; }
    .updated { color: var(--muted); font-size: 13px; margin: 16px 0 0; }
  </style>
</head>
<body>
  <h1>{{ title }}</h1>
  <div class="box">
    {% for row in rows %}
    <p class="row">
      <span>{{ row.label }}</span>
      <span class="{{ 'ok' if row.online else 'fail' }}">{{ 'Online' if row.online else 'Offline' }}</span>
    </p>
    {% endfor %}
    <p class="updated">Last update: <time>{{ updated_at }}</time></p>
  </div>
</body>
</html>
"""


def build_status_rows(snapshot, show_mail=True, show_remote=True):
    rows = []
    mail = snapshot.mail_reachable if snapshot else False
    remote = snapshot.remote_reachable if snapshot else False
    if show_mail and mail is not None:
        rows.append({"label": "Gmail", "online": bool(mail)})
    if show_remote and remote is not None:
        rows.append({"label": "IDX", "online": bool(remote)})
    return rows


def render_status_page(snapshot, show_mail=True, show_remote=True, title="Bot Status"):
    updated_at = NOT_YET_UPDATED
    if snapshot is not None and snapshot.observed_at is not None:
        updated_at = snapshot.observed_at.isoformat()
    return render_template_string(
        STATUS_TEMPLATE,
        title=title,
        rows=build_status_rows(snapshot, show_mail, show_remote),
        updated_at=updated_at,
    )


def create_app(cache, settings=None):
    app = Flask(__name__)
    show_mail = settings.check_gmail if settings is not None else True
    show_remote = settings.check_idx if settings is not None else True

    @app.after_request
    def set_security_headers(response):
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; "
            "style-src 'unsafe-inline'; "
            "frame-ancestors 'none'; "
            "base-uri 'none'"
        )
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.get("/")
    def index():
        return render_status_page(cache.current(), show_mail=show_mail, show_remote=show_remote)

    return app


def is_port_open(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(0.5)
        return sock.connect_ex(("127.0.0.1", port)) == 0


def configure_logging(level="INFO"):
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


def build_monitor(settings, credential, cache):
    refresher = TokenRefresher(
        CredentialStore(settings.token_path),
        credential,
        settings.client_id,
        settings.client_secret,
        token_uri=settings.token_uri,
        timeout=settings.probe_timeout_sec,
    )
    return Monitor(build_probe_set(settings, refresher), cache)


def main(environ=None):
    configure_logging()
    try:
        settings = load_settings(environ)
        configure_logging(settings.log_level)
        credential = CredentialStore(settings.token_path).load()
    except StartupError as exc:
        log.error("Cannot start: %s", exc)
        sys.exit(1)

    if is_port_open(settings.port):
        log.error("Port %s is already in use. Set PORT to another value.", settings.port)
        sys.exit(1)

    cache = StatusCache()
    monitor = build_monitor(settings, credential, cache)
    monitor.run_cycle()
    worker = PollWorker(monitor, settings.poll_interval_sec)
    worker.start()

    app = create_app(cache, settings)
    log.info("Status page running at http://127.0.0.1:%s/", settings.port)
    try:
        app.run(host=settings.host, port=settings.port, debug=False)
    finally:
        worker.stop(timeout=1)


if __name__ == "__main__":
    main()
