"""
vpnauth Session Module

Session persistence and the reuse/refresh/login lifecycle.
"""

from vpnauth.session.store import SessionStore, default_session_path
from vpnauth.session.types import LifecycleContext, LifecycleState, SessionOrigin
from vpnauth.session.lifecycle import LifecycleStateMachine, SessionLifecycle

__all__ = [
    "SessionStore",
    "default_session_path",
    "LifecycleContext",
    "LifecycleState",
    "SessionOrigin",
    "LifecycleStateMachine",
    "SessionLifecycle",
]
