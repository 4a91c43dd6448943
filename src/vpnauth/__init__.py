"""
vpnauth - Session-aware authentication client for the VPN API

Obtains an authenticated API session with the least user interaction:
a stored session is reused while valid, refreshed when close to expiry,
and replaced by an SRP password login otherwise. Sessions that need a
second factor are upgraded with a TOTP code before use.

Example Usage:
    from vpnauth import ClientConfig, SessionLifecycle, SessionStore
    from vpnauth.api import APITransport, AuthAPIClient
    from vpnauth.prompt import TerminalPrompter

    config = ClientConfig(username="jdoe", countries=["NL"])
    lifecycle = SessionLifecycle(
        config=config,
        api=AuthAPIClient(APITransport(base_url=config.api_url)),
        store=SessionStore(),
        prompter=TerminalPrompter(),
        srp_engine=my_engine,
    )
    session = lifecycle.run()
"""

from vpnauth.config import ClientConfig
from vpnauth.core.types import Session, PersistedSession
from vpnauth.core.exceptions import VPNAuthError, ErrorKind
from vpnauth.session.lifecycle import SessionLifecycle
from vpnauth.session.store import SessionStore

__version__ = "0.1.0"

__all__ = [
    # Main API
    "ClientConfig",
    "SessionLifecycle",
    "SessionStore",
    # Types
    "Session",
    "PersistedSession",
    # Errors
    "VPNAuthError",
    "ErrorKind",
    # Metadata
    "__version__",
]
