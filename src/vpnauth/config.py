"""
vpnauth Configuration

Immutable configuration built once at startup (by the CLI or an
embedding application) and handed to each component's constructor.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Optional, Tuple

import attrs

from vpnauth.api.constants import (
    APP_VERSION,
    AUTH_TIMEOUT,
    DEFAULT_API_URL,
    USER_AGENT,
    VPN_TIMEOUT,
)

# Sessions closer than this to expiry are refreshed instead of reused
SESSION_REFRESH_DAYS = 7

DEFAULT_CERT_DURATION = "365d"


def _optional_path(value: Optional[str]) -> Optional[Path]:
    return None if value is None else Path(value).expanduser()


@attrs.define(frozen=True)
class ClientConfig:
    """
    Run configuration.

    Attributes:
        username: Account name; prompted for when None
        password: Account password; prompted for when None
        clear_session: Delete any stored session before starting
        no_session: Neither read nor write the session store
        force_refresh: Refresh a stored session even if it is not near expiry
        session_duration: Cap on the cached session lifetime (None = server lifetime)
        api_url: API base URL
        app_version: x-pm-appversion header value
        user_agent: User-Agent header value
        auth_timeout: Timeout in seconds for the authentication calls
        vpn_timeout: Timeout in seconds for session-bound VPN calls
        renewal_threshold: Refresh stored sessions expiring sooner than this
        session_path: Session file location (None = default)
        srp_engine: "module:attribute" path of the SRP proof engine
        countries: Exit country filter for the server listing
        public_key_path: PEM public key to request a certificate for
        device_name: Device name for the certificate
        cert_duration: Certificate lifetime, e.g. "24h" or "365d"
        accelerator: Enable VPN accelerator in the certificate features
        debug: Verbose logging
    """

    username: Optional[str] = None
    password: Optional[str] = attrs.field(default=None, repr=False)

    clear_session: bool = False
    no_session: bool = False
    force_refresh: bool = False
    session_duration: Optional[timedelta] = None

    api_url: str = DEFAULT_API_URL
    app_version: str = APP_VERSION
    user_agent: str = USER_AGENT
    auth_timeout: float = AUTH_TIMEOUT
    vpn_timeout: float = VPN_TIMEOUT

    renewal_threshold: timedelta = timedelta(days=SESSION_REFRESH_DAYS)
    session_path: Optional[Path] = attrs.field(default=None, converter=_optional_path)
    srp_engine: Optional[str] = None

    countries: Tuple[str, ...] = attrs.field(
        default=(), converter=lambda cs: tuple(c.strip().upper() for c in cs if c.strip())
    )
    public_key_path: Optional[Path] = attrs.field(default=None, converter=_optional_path)
    device_name: str = ""
    cert_duration: str = DEFAULT_CERT_DURATION
    accelerator: bool = True

    debug: bool = False

    @property
    def persistence_enabled(self) -> bool:
        return not self.no_session
