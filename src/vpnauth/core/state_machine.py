"""
vpnauth State Machine Base

Table-driven state machine used by the session lifecycle.

Subclasses declare their initial state and a transition table mapping
(state, event class) to (next state, context updater). Updaters are
pure: they return a new context and never touch the network, the
terminal or the session file. Every committed step is recorded with
a snapshot of the resulting context, so a run can be exported as JSON
and replayed against the table afterwards.

Registered invariants are evaluated against the candidate (state,
context) pair; a step that would break one is never committed.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

import attrs
import structlog
from returns.result import Failure, Result, Success

from vpnauth.core.exceptions import InvariantViolation
from vpnauth.core.types import Clock, utc_now

logger = structlog.get_logger()


S = TypeVar("S", bound=Enum)
E = TypeVar("E")
C = TypeVar("C")

InvariantFn = Callable[[Any, Any], bool]

# (next_state, updater(event, context) -> context)
TransitionEntry = Tuple[Any, Callable[[Any, Any], Any]]


def _jsonable(value: Any) -> Any:
    """Render a context or event field for the exported trace."""
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (frozenset, set)):
        return sorted(value)
    if isinstance(value, bytes):
        return f"<bytes:{len(value)}>"
    # Nested records (sessions) are named, never expanded.
    if attrs.has(type(value)):
        return f"<{type(value).__name__}>"
    return value


def snapshot(obj: Any) -> Dict[str, Any]:
    """
    Public fields of an attrs instance, JSON ready.

    Fields declared with repr=False (tokens, sessions carried by events)
    are left out.
    """
    if not attrs.has(type(obj)):
        return {}
    return {
        a.name: _jsonable(getattr(obj, a.name))
        for a in attrs.fields(type(obj))
        if a.repr and not a.name.startswith("_")
    }


@attrs.define(frozen=True, slots=True)
class Transition(Generic[S]):
    """One committed step."""

    from_state: S
    event: str
    to_state: S
    at: datetime
    context: Dict[str, Any] = attrs.Factory(dict)
    event_data: Dict[str, Any] = attrs.Factory(dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_state.name,
            "event": self.event,
            "to": self.to_state.name,
            "at": self.at.isoformat(),
            "context": self.context,
            "event_data": self.event_data,
        }


@attrs.define
class StateMachineBase(ABC, Generic[S, E, C]):
    """
    Base class for table-driven state machines.

    Example:
        class DoorMachine(StateMachineBase[DoorState, Any, DoorContext]):
            def initial_state(self) -> DoorState:
                return DoorState.CLOSED

            def transition_table(self):
                return {(DoorState.CLOSED, Opened): (DoorState.OPEN, self._on_open)}

            @staticmethod
            def _on_open(event: Opened, ctx: DoorContext) -> DoorContext:
                return attrs.evolve(ctx, opened_by=event.who)
    """

    _state: S = attrs.field(alias="_state")
    _context: C = attrs.field(alias="_context")
    _clock: Clock = attrs.field(default=utc_now, alias="_clock")
    _history: List[Transition[S]] = attrs.field(factory=list, init=False)
    _invariants: Dict[str, InvariantFn] = attrs.field(factory=dict, init=False)
    _table: Optional[Dict[Tuple[S, type], TransitionEntry]] = attrs.field(default=None, init=False)
    _logger: Any = attrs.field(factory=lambda: structlog.get_logger(), init=False)

    @abstractmethod
    def initial_state(self) -> S:
        ...

    @abstractmethod
    def transition_table(self) -> Dict[Tuple[S, type], TransitionEntry]:
        """(state, event class) -> (next state, context updater)."""
        ...

    @property
    def state(self) -> S:
        return self._state

    @property
    def context(self) -> C:
        return self._context

    def add_invariant(self, name: str, invariant: InvariantFn) -> None:
        """Register a (state, context) -> bool check run before every commit."""
        self._invariants[name] = invariant

    def process_event(self, event: E) -> Result[S, str]:
        """
        Apply an event.

        Returns:
            Success(new_state), or Failure(reason) when the table has no
            entry for the event in the current state or the updater raised.
            A failure leaves state, context and history untouched.

        Raises:
            InvariantViolation: If the resulting state would break an invariant
        """
        name = type(event).__name__
        entry = self._transitions().get((self._state, type(event)))
        if entry is None:
            self._logger.warning("invalid_transition", state=self._state.name, event_type=name)
            return Failure(f"No transition for state {self._state.name} with event {name}")

        target, update = entry
        try:
            context = update(event, self._context)
        except Exception as e:
            self._logger.error("context_update_failed", state=self._state.name, event_type=name, error=str(e))
            return Failure(f"Context update failed: {e}")

        broken = self._broken_invariant(target, context)
        if broken is not None:
            self._logger.error(
                "invariant_violated", invariant=broken, from_state=self._state.name, to_state=target.name
            )
            raise InvariantViolation(f"Invariant '{broken}' violated")

        self._history.append(
            Transition(
                from_state=self._state,
                event=name,
                to_state=target,
                at=self._clock(),
                context=snapshot(context),
                event_data=snapshot(event),
            )
        )
        self._logger.info("state_transition", from_state=self._state.name, to_state=target.name, event_type=name)
        self._state, self._context = target, context
        return Success(target)

    def get_trace(self) -> List[Transition[S]]:
        return list(self._history)

    def allowed_transitions(self) -> Dict[Tuple[str, str], str]:
        """The transition table by name, as accepted by verify_trace."""
        return {
            (state.name, event.__name__): target.name
            for (state, event), (target, _) in self._transitions().items()
        }

    def export_trace_json(self) -> str:
        states = [t.from_state.name for t in self._history] + [self._state.name]
        return json.dumps(
            {
                "initial_state": self.initial_state().name,
                "final_state": self._state.name,
                "states": states,
                "transitions": [t.to_dict() for t in self._history],
            },
            indent=2,
        )

    def _transitions(self) -> Dict[Tuple[S, type], TransitionEntry]:
        if self._table is None:
            self._table = self.transition_table()
        return self._table

    def _broken_invariant(self, state: S, context: C) -> Optional[str]:
        for name, check in self._invariants.items():
            if not check(state, context):
                return name
        return None


def verify_trace(trace: List[Transition], allowed: Dict[Tuple[str, str], str]) -> List[str]:
    """
    Replay a recorded trace against a table of allowed steps.

    Returns one message per step that the table does not allow or that
    landed in a different state; an empty list means the trace is valid.
    """
    problems = []
    for i, step in enumerate(trace):
        arrow = f"{step.from_state.name} --[{step.event}]-->"
        expected = allowed.get((step.from_state.name, step.event))
        if expected is None:
            problems.append(f"step {i}: {arrow} {step.to_state.name} is not allowed")
        elif expected != step.to_state.name:
            problems.append(f"step {i}: {arrow} {step.to_state.name}, expected {expected}")
    return problems
