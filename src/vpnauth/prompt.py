"""
Credential prompting.

The lifecycle never touches the terminal directly; it asks a
CredentialPrompter. TerminalPrompter is the interactive implementation
used by the CLI.
"""

from __future__ import annotations

import getpass
from abc import ABC, abstractmethod
from typing import Any, Callable

import attrs
from rich.console import Console

from vpnauth.core.exceptions import InputError


class CredentialPrompter(ABC):
    """Supplies credentials on demand and receives user-facing notices."""

    @abstractmethod
    def request_identity(self) -> str:
        """Ask for the account username."""
        ...

    @abstractmethod
    def request_secret(self) -> str:
        """Ask for the account password without echoing it."""
        ...

    @abstractmethod
    def request_second_factor_code(self) -> str:
        """Ask for a TOTP code."""
        ...

    @abstractmethod
    def notify(self, message: str) -> None:
        """Tell the user what is happening and why."""
        ...


@attrs.define
class TerminalPrompter(CredentialPrompter):
    """Interactive prompter reading from stdin."""

    console: Console = attrs.Factory(lambda: Console(stderr=True, highlight=False))
    read_line: Callable[[str], str] = input
    read_secret: Callable[[str], str] = getpass.getpass

    def request_identity(self) -> str:
        return self._read(self.read_line, "Username (without @protonmail.com): ", "username")

    def request_secret(self) -> str:
        return self._read(self.read_secret, "Password: ", "password", strip=False)

    def request_second_factor_code(self) -> str:
        return self._read(self.read_line, "2FA Code: ", "2FA code")

    def notify(self, message: str) -> None:
        self.console.print(message, markup=False)

    @staticmethod
    def _read(reader: Callable[[str], Any], prompt: str, what: str, strip: bool = True) -> str:
        try:
            value = reader(prompt)
        except EOFError as e:
            raise InputError(f"error reading {what}: no input available") from e
        return value.strip() if strip else value
