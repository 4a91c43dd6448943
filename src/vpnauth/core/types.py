"""
vpnauth Core Types

Data types shared by the API client, the session store and the
lifecycle orchestrator.

Design Principles:
- Immutable: all types use frozen attrs classes
- Validated: constraints enforced at construction
- Wire-aware: each type knows its JSON representation
"""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional

import attrs
from attrs import field, validators


# Clock capability: returns the current time as an aware UTC datetime.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================


class Scope(str, Enum):
    """Session scopes the lifecycle cares about."""

    VPN = "vpn"
    TWO_FACTOR = "twofactor"


# =============================================================================
# IDENTITY
# =============================================================================

_MAIL_DOMAINS = ("@protonmail.com", "@protonmail.ch", "@proton.me", "@pm.me")


def clean_username(username: str) -> str:
    """
    Normalize a username for the API.

    Strips whitespace and a trailing Proton mail domain, since the
    API expects the bare account name.
    """
    username = username.strip()
    lowered = username.lower()
    for domain in _MAIL_DOMAINS:
        if lowered.endswith(domain):
            return username[: -len(domain)]
    return username


# =============================================================================
# SRP EXCHANGE TYPES
# =============================================================================


def _non_empty(instance: Any, attribute: attrs.Attribute, value: str) -> None:
    if not value:
        raise ValueError(f"received empty {attribute.name.replace('_', ' ')} from auth info")


@attrs.define(frozen=True, slots=True)
class AuthParameters:
    """
    Response of the auth-info call.

    Lives for a single login round-trip.

    INVARIANT: modulus and server_ephemeral are non-empty
    """

    version: int
    salt: str
    modulus: str = field(validator=_non_empty)
    server_ephemeral: str = field(validator=_non_empty)
    srp_session: str
    two_factor_enabled: bool = False
    totp: bool = False

    @property
    def requires_totp(self) -> bool:
        """Second factor must be sent with the proofs."""
        return self.two_factor_enabled and self.totp

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> AuthParameters:
        two_fa = payload.get("2FA") or {}
        if not isinstance(two_fa, dict):
            raise TypeError(f"malformed 2FA block: {two_fa!r}")
        return cls(
            version=int(payload.get("Version", 0)),
            salt=payload.get("Salt", ""),
            modulus=payload.get("Modulus", ""),
            server_ephemeral=payload.get("ServerEphemeral", ""),
            srp_session=payload.get("SRPSession", ""),
            two_factor_enabled=two_fa.get("Enabled") == 1,
            totp=two_fa.get("TOTP") == 1,
        )


@attrs.define(frozen=True, slots=True)
class ClientProofs:
    """
    Output of the SRP proof engine for one login attempt.

    Binary in memory; base64 on the wire.
    """

    client_ephemeral: bytes = field(validator=validators.instance_of(bytes), repr=False)
    client_proof: bytes = field(validator=validators.instance_of(bytes), repr=False)
    expected_server_proof: bytes = field(validator=validators.instance_of(bytes), repr=False)

    @property
    def client_ephemeral_b64(self) -> str:
        return base64.b64encode(self.client_ephemeral).decode("ascii")

    @property
    def client_proof_b64(self) -> str:
        return base64.b64encode(self.client_proof).decode("ascii")

    @property
    def expected_server_proof_b64(self) -> str:
        return base64.b64encode(self.expected_server_proof).decode("ascii")


# =============================================================================
# SESSION TYPES
# =============================================================================


def _to_scopes(value: Optional[Iterable[str]]) -> FrozenSet[str]:
    return frozenset(value or ())


@attrs.define(frozen=True, slots=True)
class Session:
    """
    Authenticated API session.

    INVARIANT: VPN-privileged calls require the "vpn" scope.
    A second-factor upgrade replaces scopes without new tokens.
    """

    access_token: str = field(validator=validators.instance_of(str), repr=False)
    refresh_token: str = field(validator=validators.instance_of(str), repr=False)
    uid: str = field(validator=validators.instance_of(str))
    scopes: FrozenSet[str] = field(factory=frozenset, converter=_to_scopes)
    expires_in: int = field(default=0, validator=validators.ge(0))
    token_type: str = "Bearer"

    @property
    def has_vpn_scope(self) -> bool:
        return Scope.VPN.value in self.scopes

    @property
    def has_two_factor_scope(self) -> bool:
        return Scope.TWO_FACTOR.value in self.scopes

    @property
    def needs_scope_upgrade(self) -> bool:
        """Second factor is set up but was not yet proven for this session."""
        return self.has_two_factor_scope and not self.has_vpn_scope

    def with_scopes(self, scopes: Iterable[str]) -> Session:
        return attrs.evolve(self, scopes=scopes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "AccessToken": self.access_token,
            "RefreshToken": self.refresh_token,
            "UID": self.uid,
            "Scopes": sorted(self.scopes),
            "ExpiresIn": self.expires_in,
            "TokenType": self.token_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Session:
        return cls(
            access_token=data["AccessToken"],
            refresh_token=data["RefreshToken"],
            uid=data["UID"],
            scopes=data.get("Scopes") or (),
            expires_in=int(data.get("ExpiresIn") or 0),
            token_type=data.get("TokenType") or "Bearer",
        )


@attrs.define(frozen=True, slots=True)
class PersistedSession:
    """
    On-disk representation of a session.

    INVARIANT: expires_at > saved_at unless the server declared no lifetime
    """

    session: Session
    username: str
    saved_at: datetime
    expires_at: datetime

    @classmethod
    def create(
        cls,
        session: Session,
        username: str,
        now: datetime,
        duration: Optional[timedelta] = None,
    ) -> PersistedSession:
        """
        Compute expiry for a freshly obtained session.

        expires_at = min(now + server lifetime, now + duration);
        without a duration preference the server lifetime wins.
        """
        api_expiry = now + timedelta(seconds=session.expires_in)
        if duration is None or duration <= timedelta(0):
            expires_at = api_expiry
        else:
            expires_at = min(api_expiry, now + duration)
        return cls(session=session, username=username, saved_at=now, expires_at=expires_at)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def time_until_expiry(self, now: datetime) -> timedelta:
        return self.expires_at - now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "username": self.username,
            "saved_at": self.saved_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PersistedSession:
        return cls(
            session=Session.from_dict(data["session"]),
            username=data["username"],
            saved_at=_parse_time(data["saved_at"]),
            expires_at=_parse_time(data["expires_at"]),
        )


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
