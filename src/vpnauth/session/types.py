"""
Session lifecycle states, events and context.
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum, auto
from typing import FrozenSet, Optional

import attrs

from vpnauth.core.exceptions import ErrorKind
from vpnauth.core.types import Session


# =============================================================================
# STATES
# =============================================================================


class LifecycleState(Enum):
    """
    Session lifecycle states.

    - CHECKING_STORED: deciding whether a stored session can be used
    - NO_SESSION: fresh login required
    - AUTHENTICATING: SRP login in progress
    - HAVE_SESSION: a session exists (see SessionOrigin)
    - SCOPE_UPGRADING: proving a second factor to gain the VPN scope
    - READY: session usable for VPN calls
    - FAILED: run aborted
    """

    CHECKING_STORED = auto()
    NO_SESSION = auto()
    AUTHENTICATING = auto()
    HAVE_SESSION = auto()
    SCOPE_UPGRADING = auto()
    READY = auto()
    FAILED = auto()


class SessionOrigin(Enum):
    """How the current session was obtained."""

    FRESH = auto()
    REUSED = auto()
    REFRESHED = auto()


# =============================================================================
# CONTEXT
# =============================================================================


@attrs.define
class LifecycleContext:
    """
    Data carried through one lifecycle run.

    The password is never part of the context.
    """

    username: Optional[str] = None
    session: Optional[Session] = None
    origin: Optional[SessionOrigin] = None
    time_until_expiry: Optional[timedelta] = None
    upgraded: bool = False
    fallback_reason: str = ""
    error_kind: Optional[ErrorKind] = None
    error_message: str = ""


# =============================================================================
# EVENTS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class NoUsableSession:
    """The store had nothing usable; a fresh login is required."""

    reason: str


@attrs.define(frozen=True, slots=True)
class StoredSessionAccepted:
    """A stored session was verified or refreshed."""

    session: Session = attrs.field(repr=False)
    origin: SessionOrigin
    time_until_expiry: timedelta


@attrs.define(frozen=True, slots=True)
class LoginStarted:
    username: str


@attrs.define(frozen=True, slots=True)
class LoginSucceeded:
    session: Session = attrs.field(repr=False)


@attrs.define(frozen=True, slots=True)
class ScopeUpgradeStarted:
    scopes: FrozenSet[str]


@attrs.define(frozen=True, slots=True)
class ScopeUpgraded:
    scopes: FrozenSet[str]


@attrs.define(frozen=True, slots=True)
class SessionReady:
    pass


@attrs.define(frozen=True, slots=True)
class RunFailed:
    kind: ErrorKind
    message: str
