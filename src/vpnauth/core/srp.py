"""
SRP Proof Engine interface.

The SRP math lives outside this package. Implementations are plugged
in either directly (tests, embedding applications) or by import path
from the command line ("package.module:factory").
"""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod

import structlog

from vpnauth.core.exceptions import InputError
from vpnauth.core.types import ClientProofs

logger = structlog.get_logger()


class SRPProofEngine(ABC):
    """Computes SRP client proofs for a single login attempt."""

    @abstractmethod
    def generate_proofs(
        self,
        version: int,
        username: str,
        password: str,
        salt: str,
        modulus: str,
        server_ephemeral: str,
    ) -> ClientProofs:
        """
        Compute client ephemeral, client proof and expected server proof.

        Args:
            version: Auth protocol version from the auth-info response
            username: Account name
            password: Account password (never stored)
            salt: Base64 salt from the auth-info response
            modulus: Signed modulus from the auth-info response
            server_ephemeral: Base64 server ephemeral

        Raises:
            ProtocolError: If the parameters cannot be used
        """
        ...


def load_proof_engine(path: str) -> SRPProofEngine:
    """
    Load an engine from "module:attribute".

    The attribute may be an SRPProofEngine instance or a zero-argument
    factory returning one.

    Raises:
        InputError: If the path is malformed or does not resolve to an engine
    """
    module_name, sep, attr_name = path.partition(":")
    if not sep or not module_name or not attr_name:
        raise InputError(f"invalid SRP engine path {path!r}, expected 'module:attribute'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise InputError(f"cannot import SRP engine module {module_name!r}: {e}") from e

    target = getattr(module, attr_name, None)
    if target is None:
        raise InputError(f"module {module_name!r} has no attribute {attr_name!r}")

    engine = target if isinstance(target, SRPProofEngine) else target()
    if not isinstance(engine, SRPProofEngine):
        raise InputError(f"{path!r} did not produce an SRPProofEngine")

    logger.debug("srp_engine_loaded", path=path, engine=type(engine).__name__)
    return engine
