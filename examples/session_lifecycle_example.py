#!/usr/bin/env python3
"""
Session Lifecycle Example

Demonstrates how vpnauth decides between reusing, refreshing and
regenerating a session:

1. Persisting a session with a cache duration
2. Loading it back and checking the time until expiry
3. Running the lifecycle against the live API with a plugged-in SRP engine
4. Exporting the lifecycle trace

Usage:
    python session_lifecycle_example.py                        # offline part only
    python session_lifecycle_example.py jdoe mypkg.srp:engine  # plus live login
"""

import sys
import tempfile
from datetime import timedelta
from pathlib import Path

from vpnauth import ClientConfig, Session, SessionLifecycle, SessionStore, VPNAuthError
from vpnauth.api import APITransport, AuthAPIClient
from vpnauth.core.srp import load_proof_engine
from vpnauth.core.timeutil import humanize_duration
from vpnauth.prompt import TerminalPrompter


def offline_demo() -> None:
    print("1. Persist a session")
    print("-" * 40)

    session = Session(
        access_token="example-access",
        refresh_token="example-refresh",
        uid="example-uid",
        scopes=["full", "self", "vpn"],
        expires_in=30 * 86400,
    )
    with tempfile.TemporaryDirectory() as tmp:
        store = SessionStore(path=Path(tmp) / "session.json")
        record = store.save(session, "carol", timedelta(hours=24))
        print(f"   Saved for:   {record.username}")
        print(f"   Expires at:  {record.expires_at.isoformat()} (capped at 24h)")
        print()

        print("2. Load it back")
        print("-" * 40)
        loaded, remaining = store.load("carol")
        print(f"   Same session: {loaded == session}")
        print(f"   Expires in:   {humanize_duration(remaining)}")
        other, _ = store.load("dave")
        print(f"   Visible to another account: {other is not None}")
        print()


def live_demo(username: str, engine_path: str) -> int:
    print("3. Run the lifecycle")
    print("-" * 40)

    config = ClientConfig(username=username)
    lifecycle = SessionLifecycle(
        config=config,
        api=AuthAPIClient(APITransport(base_url=config.api_url)),
        store=SessionStore(),
        prompter=TerminalPrompter(),
        srp_engine=load_proof_engine(engine_path),
    )
    try:
        session = lifecycle.run()
    except VPNAuthError as e:
        print(f"   Failed ({e.kind.name}): {e.message}")
        return 1

    print(f"   Origin: {lifecycle.context.origin.name}")
    print(f"   Scopes: {', '.join(sorted(session.scopes))}")
    print()

    print("4. Lifecycle trace")
    print("-" * 40)
    print(lifecycle.export_trace_json())
    return 0


def main() -> int:
    print("=" * 70)
    print("vpnauth - Session Lifecycle")
    print("=" * 70)
    print()

    offline_demo()
    if len(sys.argv) == 3:
        return live_demo(sys.argv[1], sys.argv[2])
    return 0


if __name__ == "__main__":
    sys.exit(main())
