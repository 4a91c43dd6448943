"""
Pytest configuration and shared fixtures for vpnauth tests.

The remote party is simulated by FakeHTTP, a scripted stand-in for
requests.Session; prompting by ScriptedPrompter; time by FakeClock.
"""

import base64
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest
import requests

from vpnauth.api.client import AuthAPIClient
from vpnauth.api.transport import APITransport
from vpnauth.config import ClientConfig
from vpnauth.core.srp import SRPProofEngine
from vpnauth.core.types import ClientProofs, Session
from vpnauth.prompt import CredentialPrompter
from vpnauth.session.lifecycle import SessionLifecycle
from vpnauth.session.store import SessionStore


API_URL = "https://api.test"

CLIENT_EPHEMERAL = b"client-ephemeral"
CLIENT_PROOF = b"client-proof"
SERVER_PROOF = b"expected-server-proof"


# =============================================================================
# FAKE CLOCK
# =============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: Optional[datetime] = None) -> None:
        self.now = now or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


# =============================================================================
# FAKE HTTP LAYER
# =============================================================================


class FakeResponse:
    """Minimal requests.Response look-alike."""

    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else ("" if body is None else repr(body))

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


Scripted = Union[FakeResponse, Exception, Callable[[Dict[str, Any]], FakeResponse]]


class FakeHTTP:
    """
    Scripted replacement for requests.Session.

    Responses are queued per (method, path). Every call is recorded;
    an unscripted call fails the test.
    """

    def __init__(self, base_url: str = API_URL) -> None:
        self.base_url = base_url
        self.routes: Dict[Tuple[str, str], List[Scripted]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def add(self, method: str, path: str, response: Scripted) -> None:
        self.routes.setdefault((method, path), []).append(response)

    def reply(self, method: str, path: str, status: int = 200, **body: Any) -> None:
        self.add(method, path, FakeResponse(status, body))

    def paths(self) -> List[str]:
        return [call["path"] for call in self.calls]

    def calls_to(self, path: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["path"] == path]

    def request(self, method: str, url: str, json=None, headers=None, timeout=None) -> FakeResponse:
        assert url.startswith(self.base_url), url
        path = url[len(self.base_url):]
        call = {"method": method, "path": path, "json": json, "headers": headers, "timeout": timeout}
        self.calls.append(call)

        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"unexpected request {method} {path}")
        scripted = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(scripted, Exception):
            raise scripted
        if callable(scripted) and not isinstance(scripted, FakeResponse):
            return scripted(call)
        return scripted

    def close(self) -> None:
        self.closed = True


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class ScriptedPrompter(CredentialPrompter):
    """Prompter answering from fixed lists and recording notices."""

    def __init__(
        self,
        identities: Optional[List[str]] = None,
        secrets: Optional[List[str]] = None,
        codes: Optional[List[str]] = None,
    ) -> None:
        self.identities = list(identities or [])
        self.secrets = list(secrets or [])
        self.codes = list(codes or [])
        self.notices: List[str] = []
        self.requests: List[str] = []

    def request_identity(self) -> str:
        self.requests.append("identity")
        return self.identities.pop(0)

    def request_secret(self) -> str:
        self.requests.append("secret")
        return self.secrets.pop(0)

    def request_second_factor_code(self) -> str:
        self.requests.append("code")
        return self.codes.pop(0)

    def notify(self, message: str) -> None:
        self.notices.append(message)


class FakeSRPEngine(SRPProofEngine):
    """Returns fixed proofs and records its inputs."""

    def __init__(self) -> None:
        self.calls: List[Tuple[Any, ...]] = []

    def generate_proofs(self, version, username, password, salt, modulus, server_ephemeral):
        self.calls.append((version, username, password, salt, modulus, server_ephemeral))
        return ClientProofs(
            client_ephemeral=CLIENT_EPHEMERAL,
            client_proof=CLIENT_PROOF,
            expected_server_proof=SERVER_PROOF,
        )


# =============================================================================
# PAYLOAD HELPERS
# =============================================================================


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def auth_info_payload(totp: bool = False) -> Dict[str, Any]:
    return {
        "Code": 1000,
        "Version": 4,
        "Modulus": "-----BEGIN PGP SIGNED MESSAGE-----modulus",
        "ServerEphemeral": b64(b"server-ephemeral"),
        "Salt": b64(b"salt"),
        "SRPSession": "srp-session-id",
        "2FA": {"Enabled": 1 if totp else 0, "TOTP": 1 if totp else 0},
    }


def auth_payload(
    scopes: Tuple[str, ...] = ("full", "self", "vpn"),
    server_proof: bytes = SERVER_PROOF,
    expires_in: int = 86400,
    access_token: str = "fresh-access",
) -> Dict[str, Any]:
    return {
        "Code": 1000,
        "AccessToken": access_token,
        "RefreshToken": "fresh-refresh",
        "UID": "fresh-uid",
        "Scopes": list(scopes),
        "ExpiresIn": expires_in,
        "TokenType": "Bearer",
        "ServerProof": b64(server_proof),
    }


def logical_server_payload(name: str, country: str, status: int = 1) -> Dict[str, Any]:
    return {
        "Name": name,
        "EntryCountry": country,
        "ExitCountry": country,
        "City": "Somewhere",
        "Tier": 2,
        "Features": 0,
        "Score": 1.5,
        "Load": 40,
        "Status": status,
        "Servers": [
            {
                "ID": f"{name}-1",
                "EntryIP": "10.0.0.1",
                "ExitIP": "10.0.0.2",
                "Domain": f"{name.lower()}.example",
                "Status": status,
                "X25519PublicKey": "server-key",
            }
        ],
    }


CERT_PAYLOAD = {
    "Code": 1000,
    "SerialNumber": "1234",
    "ClientKeyFingerprint": "fingerprint",
    "ClientKey": "client-key",
    "Certificate": "-----BEGIN CERTIFICATE-----",
    "ExpirationTime": 1700000000,
    "RefreshTime": 1690000000,
    "Mode": "persistent",
    "DeviceName": "laptop",
    "ServerPublicKeyMode": "EC",
    "ServerPublicKey": "server-public",
}


def make_session(
    scopes: Tuple[str, ...] = ("full", "self", "vpn"),
    expires_in: int = 30 * 86400,
    access_token: str = "stored-access",
    refresh_token: str = "stored-refresh",
) -> Session:
    return Session(
        access_token=access_token,
        refresh_token=refresh_token,
        uid="stored-uid",
        scopes=scopes,
        expires_in=expires_in,
    )


def script_fresh_login(http: FakeHTTP, totp: bool = False, **auth_kwargs: Any) -> None:
    http.add("POST", "/core/v4/auth/info", FakeResponse(200, auth_info_payload(totp=totp)))
    http.add("POST", "/core/v4/auth", FakeResponse(200, auth_payload(**auth_kwargs)))


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def http() -> FakeHTTP:
    return FakeHTTP()


@pytest.fixture
def transport(http: FakeHTTP) -> APITransport:
    return APITransport(base_url=API_URL, _http=http)


@pytest.fixture
def api(transport: APITransport) -> AuthAPIClient:
    return AuthAPIClient(transport)


@pytest.fixture
def session() -> Session:
    return make_session()


@pytest.fixture
def session_path(tmp_path):
    return tmp_path / "session.json"


@pytest.fixture
def store(session_path, clock: FakeClock) -> SessionStore:
    return SessionStore(path=session_path, clock=clock)


@pytest.fixture
def prompter() -> ScriptedPrompter:
    return ScriptedPrompter(secrets=["hunter2"], codes=["123456"])


@pytest.fixture
def srp_engine() -> FakeSRPEngine:
    return FakeSRPEngine()


@pytest.fixture
def make_lifecycle(api, store, prompter, srp_engine, clock) -> Callable[..., SessionLifecycle]:
    """Factory building a lifecycle for user "alice" with overridable config."""

    def _make(**config_kwargs: Any) -> SessionLifecycle:
        config_kwargs.setdefault("username", "alice")
        return SessionLifecycle(
            config=ClientConfig(**config_kwargs),
            api=api,
            store=store,
            prompter=prompter,
            srp_engine=srp_engine,
            clock=clock,
        )

    return _make


@pytest.fixture
def connection_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection refused")


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests requiring the live API"
    )
