"""
vpnauth Core Module

Foundational types and abstractions shared by the API client, the
session store and the lifecycle orchestrator.

Components:
- types: Session, PersistedSession, AuthParameters, ClientProofs
- state_machine: Base state machine with invariant checking
- srp: SRP proof engine interface
- timeutil: Duration parsing and formatting
- exceptions: Error hierarchy keyed by ErrorKind
"""

from vpnauth.core.types import (
    AuthParameters,
    ClientProofs,
    Clock,
    PersistedSession,
    Scope,
    Session,
    clean_username,
    utc_now,
)
from vpnauth.core.state_machine import StateMachineBase, Transition
from vpnauth.core.srp import SRPProofEngine, load_proof_engine
from vpnauth.core.exceptions import (
    ErrorKind,
    VPNAuthError,
    InputError,
    ProtocolError,
    TransportError,
    ServerProofMismatch,
    AuthError,
    UnsupportedAccountMode,
    SessionStoreError,
    RefreshError,
    ScopeUpgradeError,
    StateError,
    InvariantViolation,
)

__all__ = [
    # Types
    "AuthParameters",
    "ClientProofs",
    "Clock",
    "PersistedSession",
    "Scope",
    "Session",
    "clean_username",
    "utc_now",
    # State Machine
    "StateMachineBase",
    "Transition",
    # SRP
    "SRPProofEngine",
    "load_proof_engine",
    # Exceptions
    "ErrorKind",
    "VPNAuthError",
    "InputError",
    "ProtocolError",
    "TransportError",
    "ServerProofMismatch",
    "AuthError",
    "UnsupportedAccountMode",
    "SessionStoreError",
    "RefreshError",
    "ScopeUpgradeError",
    "StateError",
    "InvariantViolation",
]
