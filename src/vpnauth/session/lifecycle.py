"""
Session Lifecycle Orchestrator

Decides, once per run, whether to reuse, refresh or regenerate a session
and whether a second-factor upgrade is needed before the session can be
used for VPN calls.

Policy for a stored session, evaluated in order:
1. clear requested        -> delete it, log in
2. persistence disabled   -> ignore the store, log in
3. nothing stored         -> log in
4. force refresh          -> refresh; on failure delete it and log in
5. expires within N days  -> refresh; on failure delete it and log in
6. API accepts it         -> reuse it
7. otherwise              -> delete it, log in

Any session then goes through the scope check: if it carries the
"twofactor" scope but not the "vpn" scope, a TOTP code is proven to
upgrade it. Upgrade failure ends the run.

Fresh sessions are saved once the run is ready. Refreshed sessions are
saved as soon as the refresh succeeds, and again after an upgrade. A
reused session is only rewritten when it was upgraded.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple

import attrs
import structlog
from returns.result import Failure, Result, Success

from vpnauth.api.client import AuthAPIClient, validate_two_factor_code
from vpnauth.config import ClientConfig
from vpnauth.core.exceptions import (
    InputError,
    ProtocolError,
    RefreshError,
    ScopeUpgradeError,
    SessionStoreError,
    StateError,
    VPNAuthError,
)
from vpnauth.core.srp import SRPProofEngine
from vpnauth.core.state_machine import StateMachineBase, TransitionEntry
from vpnauth.core.timeutil import humanize_duration
from vpnauth.core.types import Clock, Session, clean_username, utc_now
from vpnauth.prompt import CredentialPrompter
from vpnauth.session.store import SessionStore
from vpnauth.session.types import (
    LifecycleContext,
    LifecycleState,
    LoginStarted,
    LoginSucceeded,
    NoUsableSession,
    RunFailed,
    ScopeUpgradeStarted,
    ScopeUpgraded,
    SessionOrigin,
    SessionReady,
    StoredSessionAccepted,
)

logger = structlog.get_logger()


# =============================================================================
# STATE MACHINE
# =============================================================================


def ready_session_has_capability(state: LifecycleState, ctx: LifecycleContext) -> bool:
    """A READY session never lacks the VPN scope when it has a second factor."""
    if state is not LifecycleState.READY:
        return True
    return ctx.session is not None and not ctx.session.needs_scope_upgrade


def session_states_have_session(state: LifecycleState, ctx: LifecycleContext) -> bool:
    if state in (LifecycleState.HAVE_SESSION, LifecycleState.SCOPE_UPGRADING, LifecycleState.READY):
        return ctx.session is not None and ctx.origin is not None
    return True


@attrs.define
class LifecycleStateMachine(
    StateMachineBase[LifecycleState, Any, LifecycleContext]
):
    """
    Session lifecycle transitions.

    CHECKING_STORED -> NO_SESSION -> AUTHENTICATING -> HAVE_SESSION
    CHECKING_STORED -> HAVE_SESSION
    HAVE_SESSION -> SCOPE_UPGRADING -> READY
    HAVE_SESSION -> READY
    any -> FAILED
    """

    def __attrs_post_init__(self) -> None:
        self.add_invariant("ready_session_has_capability", ready_session_has_capability)
        self.add_invariant("session_states_have_session", session_states_have_session)

    def initial_state(self) -> LifecycleState:
        return LifecycleState.CHECKING_STORED

    def transition_table(
        self,
    ) -> Dict[Tuple[LifecycleState, type], TransitionEntry]:
        table: Dict[Tuple[LifecycleState, type], TransitionEntry] = {
            (LifecycleState.CHECKING_STORED, NoUsableSession): (
                LifecycleState.NO_SESSION,
                self._handle_no_session,
            ),
            (LifecycleState.CHECKING_STORED, StoredSessionAccepted): (
                LifecycleState.HAVE_SESSION,
                self._handle_stored_accepted,
            ),
            (LifecycleState.NO_SESSION, LoginStarted): (
                LifecycleState.AUTHENTICATING,
                self._handle_login_started,
            ),
            (LifecycleState.AUTHENTICATING, LoginSucceeded): (
                LifecycleState.HAVE_SESSION,
                self._handle_login_succeeded,
            ),
            (LifecycleState.HAVE_SESSION, ScopeUpgradeStarted): (
                LifecycleState.SCOPE_UPGRADING,
                self._handle_upgrade_started,
            ),
            (LifecycleState.SCOPE_UPGRADING, ScopeUpgraded): (
                LifecycleState.READY,
                self._handle_upgraded,
            ),
            (LifecycleState.HAVE_SESSION, SessionReady): (
                LifecycleState.READY,
                self._handle_ready,
            ),
        }
        for state in LifecycleState:
            if state is not LifecycleState.FAILED:
                table[(state, RunFailed)] = (LifecycleState.FAILED, self._handle_failed)
        return table

    @staticmethod
    def _handle_no_session(event: NoUsableSession, ctx: LifecycleContext) -> LifecycleContext:
        return attrs.evolve(ctx, session=None, origin=None, fallback_reason=event.reason)

    @staticmethod
    def _handle_stored_accepted(
        event: StoredSessionAccepted, ctx: LifecycleContext
    ) -> LifecycleContext:
        return attrs.evolve(
            ctx,
            session=event.session,
            origin=event.origin,
            time_until_expiry=event.time_until_expiry,
        )

    @staticmethod
    def _handle_login_started(event: LoginStarted, ctx: LifecycleContext) -> LifecycleContext:
        return attrs.evolve(ctx, username=event.username)

    @staticmethod
    def _handle_login_succeeded(event: LoginSucceeded, ctx: LifecycleContext) -> LifecycleContext:
        return attrs.evolve(ctx, session=event.session, origin=SessionOrigin.FRESH)

    @staticmethod
    def _handle_upgrade_started(
        event: ScopeUpgradeStarted, ctx: LifecycleContext
    ) -> LifecycleContext:
        return ctx

    @staticmethod
    def _handle_upgraded(event: ScopeUpgraded, ctx: LifecycleContext) -> LifecycleContext:
        if ctx.session is None:
            raise ValueError("no session to upgrade")
        return attrs.evolve(ctx, session=ctx.session.with_scopes(event.scopes), upgraded=True)

    @staticmethod
    def _handle_ready(event: SessionReady, ctx: LifecycleContext) -> LifecycleContext:
        return ctx

    @staticmethod
    def _handle_failed(event: RunFailed, ctx: LifecycleContext) -> LifecycleContext:
        return attrs.evolve(ctx, error_kind=event.kind, error_message=event.message)


# =============================================================================
# ORCHESTRATOR
# =============================================================================


@attrs.define
class SessionLifecycle:
    """
    Runs the session lifecycle once and returns a READY session.

    Example:
        lifecycle = SessionLifecycle(
            config=config,
            api=AuthAPIClient(APITransport(base_url=config.api_url)),
            store=SessionStore(),
            prompter=TerminalPrompter(),
            srp_engine=engine,
        )
        session = lifecycle.run()
    """

    config: ClientConfig
    api: AuthAPIClient
    store: SessionStore
    prompter: CredentialPrompter
    srp_engine: Optional[SRPProofEngine] = None
    srp_engine_factory: Optional[Callable[[], SRPProofEngine]] = None
    clock: Clock = utc_now

    _machine: LifecycleStateMachine = attrs.field(init=False)
    _username: Optional[str] = attrs.field(init=False, default=None)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        self._machine = LifecycleStateMachine(
            _state=LifecycleState.CHECKING_STORED,
            _context=LifecycleContext(),
            _clock=self.clock,
        )

    @property
    def state(self) -> LifecycleState:
        return self._machine.state

    @property
    def context(self) -> LifecycleContext:
        return self._machine.context

    @property
    def machine(self) -> LifecycleStateMachine:
        return self._machine

    @property
    def username(self) -> Optional[str]:
        """Normalized username once run() has acquired it."""
        return self._username

    def run(self) -> Session:
        """
        Obtain a READY session.

        Raises:
            VPNAuthError: Any fatal error; the machine ends in FAILED
        """
        if self._machine.state is not LifecycleState.CHECKING_STORED:
            raise StateError(f"lifecycle already ran (state {self._machine.state.name})")

        try:
            username = self._ensure_username()
            self._username = username
            session = self._try_stored_session(username)
            if session is None:
                session = self._authenticate(username)
            session = self._upgrade_scopes_if_needed(session)
            self._persist_if_enabled(session, username)
            return session
        except VPNAuthError as e:
            self._advance(RunFailed(kind=e.kind, message=e.message))
            self._logger.error("lifecycle_failed", kind=e.kind.name, code=e.code, error=e.message)
            raise

    def export_trace_json(self) -> str:
        return self._machine.export_trace_json()

    # -------------------------------------------------------------------------
    # Stored session
    # -------------------------------------------------------------------------

    def _try_stored_session(self, username: str) -> Optional[Session]:
        if self.config.clear_session:
            self.prompter.notify("Clearing saved session...")
            self._discard_stored()
            self._advance(NoUsableSession(reason="cleared"))
            return None

        if not self.config.persistence_enabled:
            self._advance(NoUsableSession(reason="persistence disabled"))
            return None

        stored, remaining = self.store.load(username)
        if stored is None:
            self._advance(NoUsableSession(reason="no stored session"))
            return None

        if self.config.force_refresh:
            return self._refresh_or_fall_through(
                stored,
                username,
                remaining,
                f"Forcing session refresh (current session expires in {humanize_duration(remaining)})",
            )

        if timedelta(0) < remaining < self.config.renewal_threshold:
            return self._refresh_or_fall_through(
                stored,
                username,
                remaining,
                f"Session expires soon (in {humanize_duration(remaining)}), attempting refresh...",
            )

        if self.api.verify_session(stored):
            self.prompter.notify(f"Using saved session (expires in {humanize_duration(remaining)})")
            self._advance(
                StoredSessionAccepted(
                    session=stored, origin=SessionOrigin.REUSED, time_until_expiry=remaining
                )
            )
            return stored

        self.prompter.notify("Saved session invalid, re-authenticating...")
        self._discard_stored()
        self._advance(NoUsableSession(reason="stored session rejected"))
        return None

    def _refresh_or_fall_through(
        self, stored: Session, username: str, remaining: timedelta, reason: str
    ) -> Optional[Session]:
        self.prompter.notify(reason)
        self._logger.info("session_refresh_attempt", expires_in=humanize_duration(remaining))
        result = self._attempt_refresh(stored)

        if isinstance(result, Success):
            refreshed = result.unwrap()
            self.prompter.notify("Session refreshed successfully!")
            # The stored refresh token may be rotated out by now.
            self._save(refreshed, username, self.config.session_duration)
            self._advance(
                StoredSessionAccepted(
                    session=refreshed,
                    origin=SessionOrigin.REFRESHED,
                    time_until_expiry=timedelta(seconds=refreshed.expires_in),
                )
            )
            return refreshed

        error = result.failure()
        self.prompter.notify(f"Token refresh failed: {error.message}")
        self.prompter.notify("Re-authenticating with password...")
        self._discard_stored()
        self._advance(NoUsableSession(reason="refresh failed"))
        return None

    def _attempt_refresh(self, stored: Session) -> Result[Session, RefreshError]:
        try:
            return Success(self.api.refresh_tokens(stored))
        except RefreshError as e:
            self._logger.warning("session_refresh_failed", error=e.message, code=e.code)
            return Failure(e)

    def _discard_stored(self) -> None:
        try:
            self.store.delete()
        except SessionStoreError as e:
            self._logger.warning("session_delete_failed", error=e.message)
            self.prompter.notify(f"Warning: {e.message}")

    # -------------------------------------------------------------------------
    # Fresh login
    # -------------------------------------------------------------------------

    def _ensure_username(self) -> str:
        username = self.config.username
        if not username:
            username = self.prompter.request_identity()
        username = clean_username(username or "")
        if not username:
            raise InputError("username cannot be empty")
        return username

    def _ensure_password(self) -> str:
        password = self.config.password
        if not password:
            password = self.prompter.request_secret()
        if not password:
            raise InputError("password cannot be empty")
        return password

    def _request_two_factor_code(self) -> str:
        return validate_two_factor_code(self.prompter.request_second_factor_code())

    def _engine(self) -> SRPProofEngine:
        if self.srp_engine is None and self.srp_engine_factory is not None:
            self.srp_engine = self.srp_engine_factory()
        if self.srp_engine is None:
            raise InputError("no SRP proof engine configured (use --srp-engine module:attribute)")
        return self.srp_engine

    def _authenticate(self, username: str) -> Session:
        engine = self._engine()
        password = self._ensure_password()
        self._advance(LoginStarted(username=username))

        params = self.api.fetch_auth_parameters(username)

        try:
            proofs = engine.generate_proofs(
                params.version,
                username,
                password,
                params.salt,
                params.modulus,
                params.server_ephemeral,
            )
        except VPNAuthError:
            raise
        except Exception as e:
            raise ProtocolError(f"failed to generate SRP proofs: {e}") from e

        code = self._request_two_factor_code() if params.requires_totp else None

        session = self.api.submit_proofs(username, params, proofs, two_factor_code=code)
        self._advance(LoginSucceeded(session=session))
        return session

    # -------------------------------------------------------------------------
    # Scope upgrade and persistence
    # -------------------------------------------------------------------------

    def _upgrade_scopes_if_needed(self, session: Session) -> Session:
        if not session.needs_scope_upgrade:
            self._advance(SessionReady())
            return session

        self._advance(ScopeUpgradeStarted(scopes=session.scopes))
        self.prompter.notify(
            "Session lacks VPN scope - 2FA verification required to upgrade session..."
        )
        code = self._request_two_factor_code()
        try:
            scopes = self.api.submit_second_factor(session, code)
        except InputError:
            raise
        except VPNAuthError as e:
            raise ScopeUpgradeError(f"2FA verification failed: {e.message}", code=e.code) from e

        if session.with_scopes(scopes).needs_scope_upgrade:
            raise ScopeUpgradeError("2FA verification did not grant the VPN scope")

        self._advance(ScopeUpgraded(scopes=scopes))
        upgraded = self._machine.context.session
        self.prompter.notify("2FA verified - session upgraded with VPN scope")
        return upgraded

    def _persist_if_enabled(self, session: Session, username: str) -> None:
        ctx = self._machine.context
        if ctx.origin is not SessionOrigin.FRESH and not ctx.upgraded:
            return

        duration = self.config.session_duration
        if ctx.origin is SessionOrigin.REUSED:
            # Keep the stored expiry; only the scopes changed.
            duration = ctx.time_until_expiry
        self._save(session, username, duration)

    def _save(self, session: Session, username: str, duration: Optional[timedelta]) -> None:
        if not self.config.persistence_enabled:
            return
        try:
            self.store.save(session, username, duration)
        except SessionStoreError as e:
            self._logger.warning("session_save_failed", error=e.message)
            self.prompter.notify(f"Warning: Failed to save session: {e.message}")

    def _advance(self, event: Any) -> LifecycleState:
        result = self._machine.process_event(event)
        if isinstance(result, Failure):
            raise StateError(result.failure())
        return result.unwrap()
