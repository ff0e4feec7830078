"""State definitions, guard outcomes and machine errors."""
from __future__ import annotations

from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Union

Context = dict[str, Any]

# (context, data) -> target state name. May mutate context in place.
Handler = Callable[[Context, Any], str]

EnterHook = Callable[[Context], Union[Context, None, Awaitable[Union[Context, None]]]]
Listener = Callable[[Union[str, None], Context], None]

STATE_KEYS = frozenset({"on", "guard", "enter", "goto"})


@dataclass(frozen=True, slots=True)
class Admit:
    """Guard outcome: the guarded state becomes current."""


@dataclass(frozen=True, slots=True)
class Reject:
    """Guard outcome: stay in the current state."""


@dataclass(frozen=True, slots=True)
class Redirect:
    """Guard outcome: transition to ``target`` instead."""

    target: str


GuardOutcome = Union[Admit, Reject, Redirect]
GuardResult = Union[GuardOutcome, bool, str, None]
Guard = Callable[[Context], Union[GuardResult, Awaitable[GuardResult]]]


def as_outcome(value: GuardResult, state: str) -> GuardOutcome:
    """Normalize a raw guard return value.

    ``True`` admits, ``False`` or ``None`` rejects, a string redirects.
    ``state`` names the guarded state and is only used in error messages.
    """
    if isinstance(value, (Admit, Reject, Redirect)):
        return value
    if value is True:
        return Admit()
    if value is False or value is None:
        return Reject()
    if isinstance(value, str):
        return Redirect(value)
    raise TypeError(
        f"Guard for state {state!r} returned unsupported value {value!r}"
    )


@dataclass(frozen=True)
class State:
    """Definition of a single machine state. Every part is optional.

    ``on`` maps event names to a target state name or to a handler
    ``handler(context, data) -> str``. ``guard`` decides whether the state
    may become current, ``enter`` runs once it has, and ``goto`` names a
    state to move to right after ``enter``.
    """

    on: Mapping[str, str | Handler] = field(default_factory=dict)
    guard: Guard | None = None
    enter: EnterHook | None = None
    goto: str | None = None

    @classmethod
    def build(cls, name: str, definition: State | Mapping[str, Any]) -> State:
        """Build a State from a State or a plain mapping with the same keys."""
        if isinstance(definition, State):
            return definition
        unknown = sorted(set(definition) - STATE_KEYS)
        if unknown:
            raise MachineDefinitionError(
                (f"State {name!r} has unknown keys: {', '.join(unknown)}",)
            )
        return cls(
            on=dict(definition.get("on") or {}),
            guard=definition.get("guard"),
            enter=definition.get("enter"),
            goto=definition.get("goto"),
        )


class MachineError(Exception):
    """Base class for all machine errors."""


class MachineDefinitionError(MachineError, ValueError):
    """Raised at construction when the machine definition is inconsistent."""

    def __init__(self, errors: tuple[str, ...]) -> None:
        self.errors = errors
        super().__init__("\n".join(errors))


class UnknownStateError(MachineError, LookupError):
    """Raised when a transition targets a state that is not defined.

    ``guarded`` is the state whose guard produced the target, if any.
    """

    def __init__(self, state: Any, guarded: str | None = None) -> None:
        self.state = state
        self.guarded = guarded
        if guarded is None:
            message = f"State {state!r} does not exist."
        else:
            message = (
                f"State {state!r} returned from guard in {guarded!r} does not exist."
            )
        super().__init__(message)


class GotoLoopError(MachineError):
    """Raised when a state's goto points back at itself."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"Goto loop detected in state {state!r}")
