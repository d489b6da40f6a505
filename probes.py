# -*- coding: utf-8 -*-

import logging

import requests

from tokens import TokenRefreshError


log = logging.getLogger(__name__)


class ProbeTransportError(Exception):
    pass


class ProbeOutcome:
    """Result of one probe; truthy only when the target answered 200."""

    __slots__ = ("ok", "reason", "status_code", "detail")

    def __init__(self, ok, reason, status_code=None, detail=""):
        self.ok = ok
        self.reason = reason
        self.status_code = status_code
        self.detail = detail

    def __bool__(self):
        return self.ok

    def __repr__(self):
        return f"ProbeOutcome(ok={self.ok}, reason={self.reason!r}, status_code={self.status_code!r})"


def bearer_get(url, access_token, timeout):
    try:
        return requests.get(
            url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise ProbeTransportError(f"GET {url} failed: {exc}") from exc


MAIL_AUTH_RETRY_STATUSES = (401,)


def check_mail_reachable(refresher, timeout, url):
    if not refresher.refresh_if_expired():
        return ProbeOutcome(False, "refresh_failed", detail="expired access token")
    # a stored token without expiry_date is only found stale by a 401
    return RemotePinger(refresher, url, MAIL_AUTH_RETRY_STATUSES, timeout, name="Gmail").ping()


class RemotePinger:
    """Bearer-token GET with one refresh-and-retry.

    An auth-class status triggers a single token refresh; when it succeeds
    the request is reissued once and that answer is final. Any other
    status, or a transport error, fails the ping without retrying.
    """

    def __init__(self, refresher, url, auth_retry_statuses, timeout, name="IDX"):
        self.refresher = refresher
        self.url = url
        self.auth_retry_statuses = frozenset(auth_retry_statuses)
        self.timeout = timeout
        self.name = name

    def request(self, access_token):
        try:
            response = bearer_get(self.url, access_token, self.timeout)
        except ProbeTransportError as exc:
            return ProbeOutcome(False, "transport_error", detail=str(exc))
        if response.status_code == 200:
            return ProbeOutcome(True, "ok", 200)
        if response.status_code in self.auth_retry_statuses:
            return ProbeOutcome(False, "auth_rejected", response.status_code)
        return ProbeOutcome(False, "http_status", response.status_code)

    def ping(self):
        outcome = self.request(self.refresher.credential.access_token)
        if outcome.reason != "auth_rejected":
            return outcome

        if outcome.status_code == 404:
            log.warning("%s returned 404; treating it as an auth failure and refreshing the token", self.name)
        else:
            log.warning("%s returned %s; refreshing the token", self.name, outcome.status_code)
        try:
            credential = self.refresher.refresh()
        except TokenRefreshError as exc:
            log.warning("Token refresh failed: %s: %s", exc.kind, exc)
            return ProbeOutcome(False, "refresh_failed", exc.status_code, str(exc))

        return self.request(credential.access_token)


class ProbeSet:
    def __init__(self, mail=None, remote=None):
        self.probes = {"mail": mail, "remote": remote}

    def run(self):
        results = {}
        for name, probe in self.probes.items():
            if probe is None:
                results[name] = None
                continue
            try:
                results[name] = probe()
            except Exception as exc:
                log.exception("Probe %s crashed", name)
                results[name] = ProbeOutcome(False, "transport_error", detail=str(exc))
        return results


def build_probe_set(settings, refresher):
    mail = None
    remote = None
    if settings.check_gmail:
        def mail():
            return check_mail_reachable(refresher, settings.probe_timeout_sec, settings.gmail_labels_url)
    if settings.check_idx:
        remote = RemotePinger(
            refresher,
            settings.idx_url,
            settings.auth_retry_statuses,
            settings.probe_timeout_sec,
        ).ping
    return ProbeSet(mail=mail, remote=remote)
