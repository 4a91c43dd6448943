"""
vpnauth Exception Types

Custom exceptions for authentication and session lifecycle errors.

Every exception carries a kind (what the caller should do about it),
an optional numeric API code, and a human-readable message.
"""

from enum import Enum, auto
from typing import Dict, Optional


class ErrorKind(Enum):
    """Category of failure, used by callers to pick a recovery path."""

    INPUT = auto()
    PROTOCOL = auto()
    TRANSPORT = auto()
    AUTHENTICATION = auto()
    ACCOUNT_MODE = auto()
    SESSION_STORE = auto()
    REFRESH = auto()
    SCOPE_UPGRADE = auto()
    STATE = auto()


# API response codes
CODE_WRONG_PASSWORD = 8002
CODE_WRONG_PASSWORD_FORMAT = 8004
CODE_CAPTCHA_REQUIRED = 9001
CODE_2FA_REQUIRED_FOR_VPN = 9100  # not in official docs
CODE_ACCOUNT_DELETED = 10002
CODE_ACCOUNT_DISABLED = 10003
CODE_MAILBOX_PASSWORD_ERROR = 10013  # meaning depends on the endpoint


class VPNAuthError(Exception):
    """Base exception for all vpnauth errors."""

    kind: ErrorKind = ErrorKind.PROTOCOL

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def is_recoverable(self) -> bool:
        """True if the lifecycle can fall back to another branch."""
        return self.kind in (ErrorKind.SESSION_STORE, ErrorKind.REFRESH)


class InputError(VPNAuthError):
    """
    Invalid or missing user input.

    Empty usernames, passwords or second-factor codes, and
    malformed second-factor codes. Never retried.
    """

    kind = ErrorKind.INPUT


class ProtocolError(VPNAuthError):
    """
    Protocol-level error.

    The remote party answered with something we cannot use, such as
    a malformed body or missing SRP parameters.
    """

    kind = ErrorKind.PROTOCOL


class TransportError(ProtocolError):
    """The request never produced an HTTP response (DNS, TLS, timeout)."""

    kind = ErrorKind.TRANSPORT


class ServerProofMismatch(ProtocolError):
    """
    Server SRP proof did not match the expected value.

    Either the transport was tampered with or client and server
    disagree about the SRP session. Never ignored.
    """

    def __init__(self, message: str = "server proof verification failed") -> None:
        super().__init__(message)


class AuthError(VPNAuthError):
    """
    Authentication rejected by the remote party.

    The message is derived from the API code unless one is given.
    """

    kind = ErrorKind.AUTHENTICATION

    ERROR_MESSAGES: Dict[int, str] = {
        CODE_WRONG_PASSWORD: "incorrect username or password",
        CODE_WRONG_PASSWORD_FORMAT: "password format is incorrect",
        CODE_CAPTCHA_REQUIRED: "CAPTCHA verification required",
        CODE_2FA_REQUIRED_FOR_VPN: (
            "2FA required for VPN operations - your session was authenticated "
            "without 2FA (device trust). Use --clear-session to force "
            "re-authentication with 2FA"
        ),
        CODE_ACCOUNT_DELETED: "account has been deleted",
        CODE_ACCOUNT_DISABLED: "account has been disabled",
        CODE_MAILBOX_PASSWORD_ERROR: (
            "account uses legacy 2-password mode - please switch to "
            "single-password mode at account.proton.me"
        ),
    }

    def __init__(self, code: int, message: Optional[str] = None) -> None:
        if message is None:
            message = self.ERROR_MESSAGES.get(
                code, f"authentication failed with code: {code}"
            )
        super().__init__(message, code)


class UnsupportedAccountMode(VPNAuthError):
    """
    The account uses legacy two-password mode.

    Cannot succeed until the user changes the account settings.
    """

    kind = ErrorKind.ACCOUNT_MODE

    REMEDIATION = (
        "your account uses legacy 2-password mode which is not supported.\n"
        "Please switch to single-password mode:\n"
        "  1. Go to account.proton.me\n"
        "  2. Settings -> All settings -> Account and password -> Passwords\n"
        "  3. Switch to 'One-password mode'\n"
        "This is recommended by Proton for most users and is required for this tool"
    )

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.REMEDIATION, CODE_MAILBOX_PASSWORD_ERROR)


class SessionStoreError(VPNAuthError):
    """Reading, parsing or writing the session file failed."""

    kind = ErrorKind.SESSION_STORE


class RefreshError(VPNAuthError):
    """Token refresh was rejected. The caller must log in again."""

    kind = ErrorKind.REFRESH


class ScopeUpgradeError(VPNAuthError):
    """Second-factor upgrade failed; the session lacks the VPN scope."""

    kind = ErrorKind.SCOPE_UPGRADE


class StateError(VPNAuthError):
    """
    Invalid state transition.

    An operation was attempted that is not valid in the current
    lifecycle state.
    """

    kind = ErrorKind.STATE


class InvariantViolation(StateError):
    """A lifecycle invariant failed after a transition."""

    pass


def is_account_error(error: BaseException) -> bool:
    """Check if the error is an account status error (deleted or disabled)."""
    return isinstance(error, AuthError) and error.code in (
        CODE_ACCOUNT_DELETED,
        CODE_ACCOUNT_DISABLED,
    )


def is_captcha_error(error: BaseException) -> bool:
    """Check if the error requires CAPTCHA verification."""
    return isinstance(error, AuthError) and error.code == CODE_CAPTCHA_REQUIRED
