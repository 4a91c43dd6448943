"""
VPN API client.

Uses a READY session to request a WireGuard certificate and to list
logical servers. Calls are session bound and use the short timeout.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

import attrs
import structlog

from vpnauth.api.constants import CERTIFICATE_PATH, LOGICALS_PATH, STATUS_ONLINE, is_success_code
from vpnauth.api.transport import APITransport
from vpnauth.core.exceptions import AuthError, ProtocolError, ScopeUpgradeError
from vpnauth.core.types import Session

logger = structlog.get_logger()


@attrs.define(frozen=True, slots=True)
class VPNCertificate:
    """Certificate response for a client public key."""

    serial_number: str
    client_key_fingerprint: str
    certificate: str = attrs.field(repr=False)
    expiration_time: int
    refresh_time: int
    mode: str
    device_name: str
    server_public_key_mode: str
    server_public_key: str

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> VPNCertificate:
        return cls(
            serial_number=str(payload.get("SerialNumber", "")),
            client_key_fingerprint=payload.get("ClientKeyFingerprint", ""),
            certificate=payload.get("Certificate", ""),
            expiration_time=int(payload.get("ExpirationTime") or 0),
            refresh_time=int(payload.get("RefreshTime") or 0),
            mode=payload.get("Mode", ""),
            device_name=payload.get("DeviceName", ""),
            server_public_key_mode=payload.get("ServerPublicKeyMode", ""),
            server_public_key=payload.get("ServerPublicKey", ""),
        )


@attrs.define(frozen=True, slots=True)
class PhysicalServer:
    id: str
    entry_ip: str
    exit_ip: str
    domain: str
    status: int
    x25519_public_key: str = ""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> PhysicalServer:
        return cls(
            id=payload.get("ID", ""),
            entry_ip=payload.get("EntryIP", ""),
            exit_ip=payload.get("ExitIP", ""),
            domain=payload.get("Domain", ""),
            status=int(payload.get("Status") or 0),
            x25519_public_key=payload.get("X25519PublicKey") or "",
        )


@attrs.define(frozen=True, slots=True)
class LogicalServer:
    name: str
    entry_country: str
    exit_country: str
    city: str
    tier: int
    features: int
    score: float
    load: int
    status: int
    servers: Sequence[PhysicalServer] = ()

    @property
    def is_online(self) -> bool:
        return self.status == STATUS_ONLINE

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> LogicalServer:
        return cls(
            name=payload.get("Name", ""),
            entry_country=payload.get("EntryCountry", ""),
            exit_country=payload.get("ExitCountry", ""),
            city=payload.get("City") or "",
            tier=int(payload.get("Tier") or 0),
            features=int(payload.get("Features") or 0),
            score=float(payload.get("Score") or 0.0),
            load=int(payload.get("Load") or 0),
            status=int(payload.get("Status") or 0),
            servers=tuple(PhysicalServer.from_payload(s) for s in payload.get("Servers") or ()),
        )


@attrs.define
class VPNClient:
    """
    Session-bound VPN operations.

    Raises ScopeUpgradeError up front if the session lacks the VPN scope
    while having a second factor, since the API would reject it anyway.
    """

    transport: APITransport
    session: Session

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def get_certificate(
        self,
        public_key_pem: str,
        device_name: str,
        duration: str,
        accelerator: bool = True,
    ) -> VPNCertificate:
        """
        Request a persistent WireGuard certificate.

        Args:
            public_key_pem: PEM-encoded client public key
            device_name: Name shown in the account dashboard
            duration: API duration string, e.g. "1440 min"
            accelerator: Enable VPN accelerator (SplitTCP)

        Raises:
            ScopeUpgradeError: Session has not proven its second factor
            AuthError: API returned a non-success code
            ProtocolError: Malformed response
        """
        self._require_vpn_scope()
        body = {
            "ClientPublicKey": public_key_pem,
            "ClientPublicKeyMode": "EC",
            "Mode": "persistent",
            "DeviceName": device_name,
            "Duration": duration,
            "Features": {
                "NetShieldLevel": 0,
                "RandomNAT": False,
                "PortForwarding": False,
                "SplitTCP": accelerator,
            },
        }
        resp = self.transport.request("POST", CERTIFICATE_PATH, body, session=self.session)
        if not is_success_code(resp.code):
            if resp.code is None:
                raise ProtocolError(f"VPN certificate HTTP error {resp.status}: {resp.text}")
            error = resp.payload.get("Error")
            if error:
                raise AuthError(resp.code, f"VPN certificate error (code {resp.code}): {error}")
            raise AuthError(resp.code)

        certificate = VPNCertificate.from_payload(resp.payload)
        self._logger.info("certificate_issued", device_name=certificate.device_name)
        return certificate

    def get_servers(self) -> List[LogicalServer]:
        """
        Fetch the logical server list.

        Raises:
            AuthError: API returned a non-success code
            ProtocolError: Malformed response
        """
        resp = self.transport.request("GET", LOGICALS_PATH, session=self.session)
        if not is_success_code(resp.code):
            if resp.code is None:
                raise ProtocolError(f"server list HTTP error {resp.status}: {resp.text}")
            raise AuthError(resp.code, f"API returned error code: {resp.code}")

        servers = [LogicalServer.from_payload(s) for s in resp.payload.get("LogicalServers") or ()]
        self._logger.debug("servers_fetched", count=len(servers))
        return servers

    def _require_vpn_scope(self) -> None:
        if self.session.needs_scope_upgrade:
            raise ScopeUpgradeError("session lacks the VPN scope; complete 2FA first")


def servers_in_countries(servers: Sequence[LogicalServer], countries: Sequence[str]) -> List[LogicalServer]:
    """Online servers whose exit country is in the list, in API order."""
    wanted = {c.upper() for c in countries}
    return [s for s in servers if s.is_online and s.exit_country.upper() in wanted]
