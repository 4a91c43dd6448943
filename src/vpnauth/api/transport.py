"""
vpnauth API Transport Layer

JSON-over-HTTPS transport for the VPN API.

Every request carries the client identification headers; session
bound requests additionally carry the bearer token and session UID.
No request is retried.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import attrs
import requests
import structlog

from vpnauth.api.constants import APP_VERSION, AUTH_TIMEOUT, USER_AGENT
from vpnauth.core.exceptions import TransportError
from vpnauth.core.types import Session

logger = structlog.get_logger()


@attrs.define(frozen=True, slots=True)
class APIResponse:
    """HTTP status plus decoded JSON body (empty dict if not JSON)."""

    status: int
    payload: Dict[str, Any] = attrs.Factory(dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def code(self) -> Optional[int]:
        """API-level response code."""
        code = self.payload.get("Code")
        return code if isinstance(code, int) else None


@attrs.define
class APITransport:
    """
    HTTP transport bound to one API base URL and one timeout.

    Example:
        transport = APITransport(base_url="https://vpn-api.proton.me")
        response = transport.request("POST", "/core/v4/auth/info", {"Username": "jdoe"})
    """

    base_url: str = attrs.field(converter=lambda url: url.rstrip("/"))
    timeout: float = AUTH_TIMEOUT
    app_version: str = APP_VERSION
    user_agent: str = USER_AGENT

    _http: Any = attrs.field(factory=requests.Session, alias="_http")
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def headers(self, session: Optional[Session] = None) -> Dict[str, str]:
        """Build the request headers."""
        headers = {
            "Content-Type": "application/json",
            "x-pm-appversion": self.app_version,
            "User-Agent": self.user_agent,
        }
        if session is not None:
            headers["Authorization"] = f"Bearer {session.access_token}"
            headers["x-pm-uid"] = session.uid
        return headers

    def request(
        self,
        method: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        session: Optional[Session] = None,
    ) -> APIResponse:
        """
        Send a request and decode the response.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            body: JSON body (omitted if None)
            session: Session whose credentials authorize the request

        Returns:
            APIResponse for any HTTP status

        Raises:
            TransportError: If no HTTP response was received
        """
        url = self.base_url + path
        self._logger.debug("api_request", method=method, path=path, authenticated=session is not None)

        try:
            resp = self._http.request(
                method,
                url,
                json=body,
                headers=self.headers(session),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self._logger.error("api_request_failed", method=method, path=path, error=str(e))
            raise TransportError(f"request to {path} failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        self._logger.debug(
            "api_response",
            path=path,
            status=resp.status_code,
            code=payload.get("Code"),
        )
        return APIResponse(status=resp.status_code, payload=payload, text=resp.text)

    def close(self) -> None:
        """Close pooled connections."""
        self._http.close()

    def __enter__(self) -> "APITransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
