#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import argparse
import json
import sys

from config import load_settings
from monitor import StatusCache, describe
from server import build_monitor, configure_logging
from tokens import CredentialStore, StartupError


def die(message, code=2):
    print(message, file=sys.stderr)
    sys.exit(code)


def outcome_payload(outcome):
    if outcome is None:
        return None
    return {
        "ok": outcome.ok,
        "reason": outcome.reason,
        "status_code": outcome.status_code,
    }


def main(argv=None, environ=None):
    parser = argparse.ArgumentParser(description="Run one IDX keepalive poll cycle and report the result")
    parser.add_argument("--token-path", help="Credential file (default: TOKEN_PATH or tokens.json)")
    parser.add_argument("--url", help="Remote probe URL (default: IDX_URL)")
    parser.add_argument("--no-gmail", action="store_true", help="Skip the Gmail probe")
    parser.add_argument("--no-idx", action="store_true", help="Skip the IDX probe")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    args = parser.parse_args(argv)

    overrides = {}
    if args.token_path:
        overrides["TOKEN_PATH"] = args.token_path
    if args.url:
        overrides["IDX_URL"] = args.url
    if args.no_gmail:
        overrides["CHECK_GMAIL"] = "0"
    if args.no_idx:
        overrides["CHECK_IDX"] = "0"

    try:
        settings = load_settings(environ, overrides=overrides)
        configure_logging("WARNING" if args.json else settings.log_level)
        credential = CredentialStore(settings.token_path).load()
    except StartupError as exc:
        die(f"Cannot run check: {exc}")

    snapshot, outcomes = build_monitor(settings, credential, StatusCache()).run_cycle()
    observed_at = snapshot.observed_at.isoformat()

    if args.json:
        print(json.dumps({
            "mail": outcome_payload(outcomes.get("mail")),
            "remote": outcome_payload(outcomes.get("remote")),
            "observed_at": observed_at,
        }, indent=2))
    else:
        print(f"Gmail: {describe(outcomes.get('mail'))}")
        print(f"IDX: {describe(outcomes.get('remote'))}")
        print(f"Observed at: {observed_at}")

    enabled = [value for value in (snapshot.mail_reachable, snapshot.remote_reachable) if value is not None]
    return 0 if all(enabled) else 1


if __name__ == "__main__":
    sys.exit(main())
