"""
vpnauth Auth API Client

Stateless wrappers around the remote authentication endpoints:

1. fetch_auth_parameters - SRP parameters for a username
2. submit_proofs         - SRP proofs (and optional TOTP) for a session
3. submit_second_factor  - TOTP upgrade of an existing session's scopes
4. refresh_tokens        - new tokens from a refresh token
5. verify_session        - cheap authenticated read to test a session

None of these retry. Failures are raised as typed VPNAuthError
subclasses so the lifecycle orchestrator can choose a fallback.
"""

from __future__ import annotations

import base64
import binascii
import hmac
from typing import Any, Dict, FrozenSet, Optional

import attrs
import structlog

from vpnauth.api.constants import (
    AUTH_2FA_PATH,
    AUTH_INFO_PATH,
    AUTH_PATH,
    LOGICALS_PATH,
    REFRESH_PATH,
    REFRESH_REDIRECT_URI,
    is_success_code,
)
from vpnauth.api.transport import APITransport
from vpnauth.core.exceptions import (
    CODE_MAILBOX_PASSWORD_ERROR,
    AuthError,
    InputError,
    ProtocolError,
    RefreshError,
    ServerProofMismatch,
    TransportError,
    UnsupportedAccountMode,
)
from vpnauth.core.types import AuthParameters, ClientProofs, Session

logger = structlog.get_logger()

TOTP_CODE_LENGTH = 6


def validate_two_factor_code(code: str) -> str:
    """
    Check a TOTP code locally.

    Returns:
        The code with surrounding whitespace removed

    Raises:
        InputError: If the code is empty, not all digits, or the wrong length
    """
    code = code.strip()
    if not code:
        raise InputError("2FA code cannot be empty")
    if not (code.isascii() and code.isdigit()):
        raise InputError(
            "2FA code must be numeric (TOTP only).\n"
            "FIDO2/WebAuthn security keys are not supported.\n"
            "Please ensure you have TOTP (authenticator app) configured as your 2FA method"
        )
    if len(code) != TOTP_CODE_LENGTH:
        raise InputError(f"2FA code must be exactly {TOTP_CODE_LENGTH} digits")
    return code


def _proofs_match(received: Any, expected: bytes) -> bool:
    if not isinstance(received, str):
        return False
    try:
        decoded = base64.b64decode(received, validate=True)
    except (binascii.Error, ValueError):
        return False
    return hmac.compare_digest(decoded, expected)


@attrs.define
class AuthAPIClient:
    """
    Client for the authentication endpoints.

    Example:
        client = AuthAPIClient(APITransport(base_url=DEFAULT_API_URL))
        params = client.fetch_auth_parameters("jdoe")
        proofs = engine.generate_proofs(params.version, "jdoe", password, ...)
        session = client.submit_proofs("jdoe", params, proofs)
    """

    transport: APITransport
    verify_path: str = LOGICALS_PATH

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def fetch_auth_parameters(self, username: str) -> AuthParameters:
        """
        Fetch SRP parameters for a username.

        Raises:
            ProtocolError: On HTTP failure, non-success code, or missing
                modulus / server ephemeral
        """
        resp = self.transport.request(
            "POST",
            AUTH_INFO_PATH,
            {"Username": username, "Intent": "Proton"},
        )
        if resp.status != 200:
            raise ProtocolError(f"HTTP error {resp.status}: {resp.text}", code=resp.code)
        if not is_success_code(resp.code):
            raise ProtocolError(f"failed to get auth info, code: {resp.code}", code=resp.code)

        try:
            params = AuthParameters.from_payload(resp.payload)
        except (TypeError, ValueError) as e:
            raise ProtocolError(str(e), code=resp.code) from e

        self._logger.debug(
            "auth_parameters_received",
            version=params.version,
            two_factor=params.two_factor_enabled,
            totp=params.totp,
        )
        return params

    def submit_proofs(
        self,
        username: str,
        params: AuthParameters,
        proofs: ClientProofs,
        two_factor_code: Optional[str] = None,
    ) -> Session:
        """
        Submit SRP proofs and verify the server's proof.

        Raises:
            UnsupportedAccountMode: Account uses legacy two-password mode
            AuthError: Remote party rejected the login
            ServerProofMismatch: Server proof differs from the expected one
            ProtocolError: HTTP failure or malformed body
        """
        body: Dict[str, Any] = {
            "Username": username,
            "ClientEphemeral": proofs.client_ephemeral_b64,
            "ClientProof": proofs.client_proof_b64,
            "SRPSession": params.srp_session,
            "PersistentCookies": 0,
        }
        if two_factor_code is not None:
            body["TwoFactorCode"] = two_factor_code

        resp = self.transport.request("POST", AUTH_PATH, body)

        # The API reports some login failures with HTTP 422 and a Code field.
        if resp.code == CODE_MAILBOX_PASSWORD_ERROR:
            raise UnsupportedAccountMode()
        if resp.code is not None and not is_success_code(resp.code):
            raise AuthError(resp.code)
        if resp.status != 200:
            raise ProtocolError(f"authentication HTTP error {resp.status}: {resp.text}")
        if resp.code is None:
            raise ProtocolError("malformed auth response: missing Code")

        if not _proofs_match(resp.payload.get("ServerProof", ""), proofs.expected_server_proof):
            self._logger.error("server_proof_mismatch", username=username)
            raise ServerProofMismatch()

        try:
            session = Session.from_dict(resp.payload)
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"malformed auth response: {e}") from e

        self._logger.info("login_accepted", username=username, scopes=sorted(session.scopes))
        return session

    def submit_second_factor(self, session: Session, code: str) -> FrozenSet[str]:
        """
        Prove a TOTP code for an existing session.

        The code is validated before any request is made.

        Returns:
            The session's new scope set

        Raises:
            InputError: Malformed code (no request sent)
            AuthError: Remote party rejected the code
            ProtocolError: HTTP failure or malformed body
        """
        code = validate_two_factor_code(code)

        resp = self.transport.request(
            "POST",
            AUTH_2FA_PATH,
            {"TwoFactorCode": code},
            session=session,
        )
        if resp.code is not None and not is_success_code(resp.code):
            error = resp.payload.get("Error")
            if error:
                raise AuthError(resp.code, f"2FA failed (code {resp.code}): {error}")
            raise AuthError(resp.code)
        if resp.status != 200:
            raise ProtocolError(f"2FA HTTP error {resp.status}: {resp.text}")
        if resp.code is None:
            raise ProtocolError("failed to parse 2FA response: missing Code")

        scopes = resp.payload.get("Scopes")
        if not isinstance(scopes, list):
            raise ProtocolError("failed to parse 2FA response: missing Scopes")
        return frozenset(scopes)

    def refresh_tokens(self, session: Session) -> Session:
        """
        Exchange the refresh token for new tokens.

        The old access token and UID authorize the request; the refresh
        token travels in the body.

        Raises:
            RefreshError: On any failure, including transport errors
        """
        body = {
            "ResponseType": "token",
            "GrantType": "refresh_token",
            "RefreshToken": session.refresh_token,
            "RedirectURI": REFRESH_REDIRECT_URI,
        }
        try:
            resp = self.transport.request("POST", REFRESH_PATH, body, session=session)
        except TransportError as e:
            raise RefreshError(f"refresh failed: {e.message}") from e

        if not resp.ok or not is_success_code(resp.code):
            raise RefreshError(
                f"refresh failed (status {resp.status}): {resp.text}",
                code=resp.code,
            )

        payload = resp.payload
        try:
            refreshed = Session(
                access_token=payload["AccessToken"],
                refresh_token=payload.get("RefreshToken") or session.refresh_token,
                uid=payload.get("UID") or session.uid,
                scopes=payload["Scopes"] if "Scopes" in payload else session.scopes,
                expires_in=int(payload.get("ExpiresIn") or 0),
                token_type=payload.get("TokenType") or session.token_type,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RefreshError(f"refresh failed: malformed response ({e})") from e

        if refreshed.refresh_token != session.refresh_token:
            self._logger.info("refresh_token_rotated", uid=refreshed.uid)
        return refreshed

    def verify_session(self, session: Session) -> bool:
        """
        Check whether the API still accepts a session.

        401 means invalid, any 2xx means valid; everything else,
        including network failure, counts as invalid.
        """
        try:
            resp = self.transport.request("GET", self.verify_path, session=session)
        except TransportError:
            return False

        if resp.status == 401:
            return False
        return resp.ok
