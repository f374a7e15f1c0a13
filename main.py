#!/usr/bin/env python3
"""
HeartID – command-line front end.

Usage
-----
    python main.py [GLOBAL OPTIONS] COMMAND [OPTIONS]

Commands
--------
    enroll        --user U [--level LEVEL]      capture and store a baseline
    authenticate  --user U [--profile P]        one authentication attempt
    status        --user U                      enrollment and lockout status
    reset         --user U                      administrative lockout reset
    forget        --user U                      delete all data for a user
    monitor       --user U [--interval S | --frequency F] --count N

Global options
--------------
    --db PATH            SQLite database (default: heartid.db)
    --passphrase TEXT    Encrypt stored blobs (or set HEARTID_PASSPHRASE)
    --samples N          Samples per simulated capture (default: 200)
    --noise BPM          Simulated sensor noise (default: 0.3)
    --verbose            Debug logging

Captures are simulated: ``--profile`` lets a different simulated wearer
present themselves as ``--user`` to demonstrate rejection and lockout.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import threading

from heartid.authenticator import HeartAuthenticator
from heartid.config import AuthenticationFrequency, EngineConfig, SecurityLevel
from heartid.errors import HeartIDError
from heartid.lockout import format_time_remaining
from heartid.models import DecisionResult
from heartid.monitor import ReauthenticationMonitor
from heartid.simulation import simulate_window
from heartid.storage import EncryptedStorage, SecureStorage, SQLiteSecureStorage

logger = logging.getLogger("heartid")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Heart-rate biometric authentication (HeartID)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--db", default="heartid.db",
                        help="SQLite database file for baselines and lockout state")
    parser.add_argument("--passphrase", default=os.environ.get("HEARTID_PASSPHRASE"),
                        help="Encrypt stored blobs with a key derived from this passphrase")
    parser.add_argument("--samples", type=int, default=200,
                        help="Samples per simulated capture")
    parser.add_argument("--noise", type=float, default=0.3,
                        help="Std-dev of simulated sensor noise (BPM)")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("enroll", help="Capture and store a baseline")
    p.add_argument("--user", required=True)
    p.add_argument("--level", default=SecurityLevel.MEDIUM.value,
                   choices=[lvl.value for lvl in SecurityLevel],
                   help="Security level")

    p = sub.add_parser("authenticate", help="Run one authentication attempt")
    p.add_argument("--user", required=True)
    p.add_argument("--profile", default=None,
                   help="Simulated wearer (defaults to --user)")

    for name, text in (("status", "Show enrollment and lockout status"),
                       ("reset", "Administrative lockout reset"),
                       ("forget", "Delete baseline and lockout state")):
        p = sub.add_parser(name, help=text)
        p.add_argument("--user", required=True)

    p = sub.add_parser("monitor", help="Periodic re-authentication")
    p.add_argument("--user", required=True)
    p.add_argument("--profile", default=None)
    p.add_argument("--interval", type=float, default=None,
                   help="Seconds between attempts (overrides --frequency)")
    p.add_argument("--frequency", default=AuthenticationFrequency.MODERATE.value,
                   choices=[f.value for f in AuthenticationFrequency],
                   help="Re-authentication frequency preset")
    p.add_argument("--count", type=int, default=3, help="Attempts before exiting")

    return parser.parse_args(argv)


def build_authenticator(args: argparse.Namespace) -> HeartAuthenticator:
    def store(table: str) -> SecureStorage:
        inner = SQLiteSecureStorage(args.db, table=table)
        return EncryptedStorage(inner, args.passphrase) if args.passphrase else inner

    return HeartAuthenticator(store("baselines"), store("lockouts"), EngineConfig())


def describe(result: DecisionResult) -> str:
    parts = [result.kind.value.upper()]
    if result.score is not None:
        parts.append(f"score={result.score:.1f}")
    if result.confidence is not None:
        parts.append(f"confidence={result.confidence:.2f}")
    if result.retry_after:
        parts.append(f"retry in {format_time_remaining(result.retry_after)}")
    if result.reason:
        parts.append(f"({result.reason})")
    return "  ".join(parts)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        auth = build_authenticator(args)
        return COMMANDS[args.command](auth, args)
    except HeartIDError as exc:
        logger.error("%s: %s", exc.kind.value, exc.message)
        return 1


def cmd_enroll(auth: HeartAuthenticator, args: argparse.Namespace) -> int:
    window = simulate_window(args.user, n=args.samples, noise_std=args.noise)
    baseline = auth.enroll(args.user, window, SecurityLevel.parse(args.level))
    fp = baseline.fingerprint
    print(f"Enrolled '{args.user}'  fingerprint={fp.id}  "
          f"confidence={fp.confidence:.2f}  level={baseline.security_level.value}")
    print(f"  {baseline.security_level.description}")
    return 0


def cmd_authenticate(auth: HeartAuthenticator, args: argparse.Namespace) -> int:
    wearer = args.profile or args.user
    window = simulate_window(wearer, n=args.samples, noise_std=args.noise)
    result = auth.authenticate(args.user, window)
    print(describe(result))
    return 0 if result.is_successful else 2


def cmd_status(auth: HeartAuthenticator, args: argparse.Namespace) -> int:
    state = auth.lockout_state(args.user)
    print(f"User:               {args.user}")
    print(f"Enrolled:           {auth.is_enrolled(args.user)}")
    print(f"Remaining attempts: {state.remaining_attempts}")
    print(f"Escalation period:  {state.current_period_index}")
    if state.is_locked_out:
        print(f"Locked out:         {state.lockout_reason} "
              f"(until {state.lockout_end_time.isoformat()})")
    else:
        print("Locked out:         no")
    return 0


def cmd_reset(auth: HeartAuthenticator, args: argparse.Namespace) -> int:
    auth.reset_lockout(args.user)
    print(f"Lockout state reset for '{args.user}'")
    return 0


def cmd_forget(auth: HeartAuthenticator, args: argparse.Namespace) -> int:
    auth.remove_user(args.user)
    print(f"All data for '{args.user}' deleted")
    return 0


def cmd_monitor(auth: HeartAuthenticator, args: argparse.Namespace) -> int:
    wearer = args.profile or args.user
    interval = args.interval or AuthenticationFrequency(args.frequency).interval
    done = threading.Event()

    def source(capture_seconds: float):
        return simulate_window(wearer, n=args.samples, noise_std=args.noise)

    def on_result(result: DecisionResult) -> None:
        print(describe(result))
        if monitor.runs >= args.count:
            done.set()

    monitor = ReauthenticationMonitor(auth, args.user, source,
                                      interval=interval, on_result=on_result)
    try:
        with monitor:
            done.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    return 0


COMMANDS = {
    "enroll": cmd_enroll,
    "authenticate": cmd_authenticate,
    "status": cmd_status,
    "reset": cmd_reset,
    "forget": cmd_forget,
    "monitor": cmd_monitor,
}


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
