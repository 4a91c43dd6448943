"""
vpnauth API Module

HTTP transport and the authentication endpoint client.
"""

from vpnauth.api.transport import APIResponse, APITransport
from vpnauth.api.client import AuthAPIClient, validate_two_factor_code

__all__ = [
    "APIResponse",
    "APITransport",
    "AuthAPIClient",
    "validate_two_factor_code",
]
