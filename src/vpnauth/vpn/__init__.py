"""VPN certificate and server list client."""

from vpnauth.vpn.client import (
    LogicalServer,
    PhysicalServer,
    VPNCertificate,
    VPNClient,
    servers_in_countries,
)

__all__ = [
    "LogicalServer",
    "PhysicalServer",
    "VPNCertificate",
    "VPNClient",
    "servers_in_countries",
]
