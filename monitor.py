# -*- coding: utf-8 -*-

import collections
import logging
import threading
import time
from datetime import datetime, timezone

from probes import ProbeOutcome


log = logging.getLogger(__name__)

StatusSnapshot = collections.namedtuple(
    "StatusSnapshot", ["mail_reachable", "remote_reachable", "observed_at"]
)


def utc_now():
    return datetime.now(timezone.utc)


def status_label(value):
    if value is None:
        return "disabled"
    return "online" if value else "offline"


class StatusCache:
    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = None

    def record(self, snapshot):
        with self._lock:
            self._snapshot = snapshot

    def current(self):
        with self._lock:
            return self._snapshot


class Monitor:
    def __init__(self, probe_set, cache, clock=utc_now):
        self.probe_set = probe_set
        self.cache = cache
        self.clock = clock

    def run_cycle(self):
        try:
            outcomes = self.probe_set.run()
        except Exception:
            log.exception("Poll cycle failed")
            outcomes = self.failed_outcomes()
        snapshot = StatusSnapshot(
            mail_reachable=as_flag(outcomes.get("mail")),
            remote_reachable=as_flag(outcomes.get("remote")),
            observed_at=self.clock(),
        )
        self.cache.record(snapshot)
        log.info(
            "Gmail: %s | IDX: %s",
            describe(outcomes.get("mail")),
            describe(outcomes.get("remote")),
        )
        return snapshot, outcomes

    def failed_outcomes(self):
        # enabled probes go offline, disabled ones stay None
        probes = getattr(self.probe_set, "probes", None) or {"mail": True, "remote": True}
        return {
            name: None if probe is None else ProbeOutcome(False, "transport_error", detail="poll cycle failed")
            for name, probe in probes.items()
        }


def as_flag(outcome):
    if outcome is None:
        return None
    return bool(outcome)


def describe(outcome):
    label = status_label(as_flag(outcome))
    if outcome is None or outcome.ok:
        return label
    if outcome.status_code is not None:
        return f"{label} ({outcome.reason}, {outcome.status_code})"
    return f"{label} ({outcome.reason})"


class PollWorker(threading.Thread):
    """Runs one cycle per interval; the next wait starts after a cycle ends."""

    def __init__(self, monitor, interval_sec):
        super().__init__(name="idx-keepalive-poll", daemon=True)
        self.monitor = monitor
        self.interval_sec = interval_sec
        self.stop_event = threading.Event()

    def run(self):
        log.info("Poll worker started (every %ss).", self.interval_sec)
        wait_sec = self.interval_sec
        while not self.stop_event.wait(wait_sec):
            started = time.monotonic()
            try:
                self.monitor.run_cycle()
            except Exception:
                log.exception("Poll worker error")
            elapsed = time.monotonic() - started
            wait_sec = max(self.interval_sec - elapsed, 0)
        log.info("Poll worker stopped.")

    def stop(self, timeout=None):
        self.stop_event.set()
        if self.is_alive():
            self.join(timeout)
