"""
Unit tests for vpnauth.api.client module.

The remote party is simulated with FakeHTTP.
"""

import pytest

from vpnauth.api.client import validate_two_factor_code
from vpnauth.core.exceptions import (
    AuthError,
    InputError,
    ProtocolError,
    RefreshError,
    ServerProofMismatch,
    UnsupportedAccountMode,
)
from vpnauth.core.types import AuthParameters, ClientProofs, Session
from tests.conftest import (
    CLIENT_EPHEMERAL,
    CLIENT_PROOF,
    SERVER_PROOF,
    FakeResponse,
    auth_info_payload,
    auth_payload,
    b64,
    make_session,
)


@pytest.fixture
def params() -> AuthParameters:
    return AuthParameters.from_payload(auth_info_payload())


@pytest.fixture
def proofs() -> ClientProofs:
    return ClientProofs(CLIENT_EPHEMERAL, CLIENT_PROOF, SERVER_PROOF)


class TestValidateTwoFactorCode:
    def test_valid_code_is_stripped(self):
        assert validate_two_factor_code(" 123456\n") == "123456"

    @pytest.mark.parametrize("code", ["", "   ", "12345a", "abcdef", "12 456", "١٢٣٤٥٦"])
    def test_non_digit_codes_rejected(self, code):
        with pytest.raises(InputError):
            validate_two_factor_code(code)

    @pytest.mark.parametrize("code", ["12345", "1234567"])
    def test_wrong_length_rejected(self, code):
        with pytest.raises(InputError, match="6 digits"):
            validate_two_factor_code(code)


class TestFetchAuthParameters:
    def test_success(self, api, http):
        http.add("POST", "/core/v4/auth/info", FakeResponse(200, auth_info_payload(totp=True)))

        params = api.fetch_auth_parameters("alice")

        assert params.requires_totp
        assert http.calls[0]["json"] == {"Username": "alice", "Intent": "Proton"}
        assert "Authorization" not in http.calls[0]["headers"]

    def test_http_error(self, api, http):
        http.add("POST", "/core/v4/auth/info", FakeResponse(500, None, text="oops"))
        with pytest.raises(ProtocolError, match="HTTP error 500"):
            api.fetch_auth_parameters("alice")

    def test_non_success_code(self, api, http):
        http.reply("POST", "/core/v4/auth/info", Code=2001)
        with pytest.raises(ProtocolError, match="2001"):
            api.fetch_auth_parameters("alice")

    def test_missing_modulus(self, api, http):
        payload = auth_info_payload()
        payload["Modulus"] = ""
        http.add("POST", "/core/v4/auth/info", FakeResponse(200, payload))
        with pytest.raises(ProtocolError, match="modulus"):
            api.fetch_auth_parameters("alice")

    def test_malformed_2fa_block(self, api, http):
        payload = auth_info_payload()
        payload["2FA"] = 1
        http.add("POST", "/core/v4/auth/info", FakeResponse(200, payload))
        with pytest.raises(ProtocolError, match="2FA"):
            api.fetch_auth_parameters("alice")


class TestSubmitProofs:
    def test_success(self, api, http, params, proofs):
        http.add("POST", "/core/v4/auth", FakeResponse(200, auth_payload()))

        session = api.submit_proofs("alice", params, proofs)

        assert session.access_token == "fresh-access"
        assert session.has_vpn_scope
        body = http.calls[0]["json"]
        assert body["ClientEphemeral"] == b64(CLIENT_EPHEMERAL)
        assert body["ClientProof"] == b64(CLIENT_PROOF)
        assert body["SRPSession"] == "srp-session-id"
        assert "TwoFactorCode" not in body

    def test_includes_two_factor_code(self, api, http, params, proofs):
        http.add("POST", "/core/v4/auth", FakeResponse(200, auth_payload()))
        api.submit_proofs("alice", params, proofs, two_factor_code="123456")
        assert http.calls[0]["json"]["TwoFactorCode"] == "123456"

    def test_server_proof_mismatch(self, api, http, params, proofs):
        http.add("POST", "/core/v4/auth", FakeResponse(200, auth_payload(server_proof=b"forged")))
        with pytest.raises(ServerProofMismatch):
            api.submit_proofs("alice", params, proofs)

    def test_garbage_server_proof(self, api, http, params, proofs):
        payload = auth_payload()
        payload["ServerProof"] = "not base64!!"
        http.add("POST", "/core/v4/auth", FakeResponse(200, payload))
        with pytest.raises(ServerProofMismatch):
            api.submit_proofs("alice", params, proofs)

    @pytest.mark.parametrize("value", [None, 42])
    def test_non_string_server_proof(self, api, http, params, proofs, value):
        payload = auth_payload()
        payload["ServerProof"] = value
        http.add("POST", "/core/v4/auth", FakeResponse(200, payload))
        with pytest.raises(ServerProofMismatch):
            api.submit_proofs("alice", params, proofs)

    def test_legacy_password_mode(self, api, http, params, proofs):
        http.reply("POST", "/core/v4/auth", status=422, Code=10013)
        with pytest.raises(UnsupportedAccountMode) as exc_info:
            api.submit_proofs("alice", params, proofs)
        assert "single-password" in exc_info.value.message or "One-password" in exc_info.value.message

    def test_wrong_password(self, api, http, params, proofs):
        http.reply("POST", "/core/v4/auth", status=422, Code=8002)
        with pytest.raises(AuthError) as exc_info:
            api.submit_proofs("alice", params, proofs)
        assert exc_info.value.code == 8002
        assert exc_info.value.message == "incorrect username or password"

    def test_http_error_without_code(self, api, http, params, proofs):
        http.add("POST", "/core/v4/auth", FakeResponse(503, None, text="unavailable"))
        with pytest.raises(ProtocolError, match="503"):
            api.submit_proofs("alice", params, proofs)


class TestSubmitSecondFactor:
    def test_success_returns_scopes(self, api, http):
        http.reply("POST", "/core/v4/auth/2fa", Code=1000, Scopes=["full", "vpn", "twofactor"])

        scopes = api.submit_second_factor(make_session(scopes=("twofactor",)), "123456")

        assert scopes == frozenset({"full", "vpn", "twofactor"})
        call = http.calls[0]
        assert call["json"] == {"TwoFactorCode": "123456"}
        assert call["headers"]["Authorization"] == "Bearer stored-access"

    def test_non_digit_code_sends_nothing(self, api, http):
        with pytest.raises(InputError):
            api.submit_second_factor(make_session(scopes=("twofactor",)), "12a456")
        assert http.calls == []

    def test_rejected_code_includes_error_text(self, api, http):
        http.reply("POST", "/core/v4/auth/2fa", status=422, Code=8002, Error="Incorrect code")
        with pytest.raises(AuthError, match="Incorrect code"):
            api.submit_second_factor(make_session(), "123456")

    def test_missing_scopes(self, api, http):
        http.reply("POST", "/core/v4/auth/2fa", Code=1000)
        with pytest.raises(ProtocolError, match="Scopes"):
            api.submit_second_factor(make_session(), "123456")


class TestRefreshTokens:
    def test_success_rotates_tokens(self, api, http):
        http.reply(
            "POST",
            "/auth/refresh",
            Code=1000,
            AccessToken="new-access",
            RefreshToken="new-refresh",
            UID="new-uid",
            Scopes=["full", "vpn"],
            ExpiresIn=86400,
            TokenType="Bearer",
        )
        old = make_session()

        new = api.refresh_tokens(old)

        assert new == Session(
            access_token="new-access",
            refresh_token="new-refresh",
            uid="new-uid",
            scopes=("full", "vpn"),
            expires_in=86400,
        )
        body = http.calls[0]["json"]
        assert body["GrantType"] == "refresh_token"
        assert body["RefreshToken"] == "stored-refresh"
        assert http.calls[0]["headers"]["x-pm-uid"] == "stored-uid"

    def test_missing_fields_carried_over(self, api, http):
        http.reply("POST", "/auth/refresh", Code=1000, AccessToken="new-access", ExpiresIn=3600)
        old = make_session(scopes=("full", "vpn"))

        new = api.refresh_tokens(old)

        assert new.access_token == "new-access"
        assert new.refresh_token == old.refresh_token
        assert new.uid == old.uid
        assert new.scopes == old.scopes
        assert new.expires_in == 3600

    def test_rejected(self, api, http):
        http.reply("POST", "/auth/refresh", status=422, Code=10013)
        with pytest.raises(RefreshError) as exc_info:
            api.refresh_tokens(make_session())
        assert exc_info.value.code == 10013

    def test_any_2xx_accepted(self, api, http):
        http.reply("POST", "/auth/refresh", status=202, Code=1000, AccessToken="new-access", ExpiresIn=60)
        assert api.refresh_tokens(make_session()).access_token == "new-access"

    def test_http_error(self, api, http):
        http.add("POST", "/auth/refresh", FakeResponse(401, None, text="unauthorized"))
        with pytest.raises(RefreshError, match="401"):
            api.refresh_tokens(make_session())

    def test_transport_failure(self, api, http, connection_error):
        http.add("POST", "/auth/refresh", connection_error)
        with pytest.raises(RefreshError):
            api.refresh_tokens(make_session())

    def test_missing_access_token(self, api, http):
        http.reply("POST", "/auth/refresh", Code=1000)
        with pytest.raises(RefreshError, match="malformed"):
            api.refresh_tokens(make_session())


class TestVerifySession:
    def test_2xx_is_valid(self, api, http):
        http.reply("GET", "/vpn/v1/logicals", Code=1000)
        assert api.verify_session(make_session()) is True
        assert http.calls[0]["headers"]["Authorization"] == "Bearer stored-access"

    def test_401_is_invalid(self, api, http):
        http.reply("GET", "/vpn/v1/logicals", status=401, Code=401)
        assert api.verify_session(make_session()) is False

    def test_other_status_is_invalid(self, api, http):
        http.add("GET", "/vpn/v1/logicals", FakeResponse(500, None))
        assert api.verify_session(make_session()) is False

    def test_network_failure_is_invalid(self, api, http, connection_error):
        http.add("GET", "/vpn/v1/logicals", connection_error)
        assert api.verify_session(make_session()) is False
