"""Machine - async transition engine."""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from types import MappingProxyType
from typing import Any

from stately.types import (
    Admit,
    Context,
    GotoLoopError,
    Listener,
    MachineDefinitionError,
    Redirect,
    STATE_KEYS,
    State,
    UnknownStateError,
    as_outcome,
)

logger = logging.getLogger(__name__)


async def _settle(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Machine:
    """Flat finite state machine with a single active state.

    ``start`` and ``send`` are not serialized against each other unless
    ``serialize=True``; overlapping calls interleave at every await inside
    guards and enter hooks.
    """

    def __init__(
        self,
        context: Mapping[str, Any],
        states: Mapping[str, State | Mapping[str, Any]],
        initial: str,
        debug: bool = False,
        *,
        serialize: bool = False,
    ) -> None:
        errors: list[str] = []
        built: dict[str, State] = {}
        for name, definition in states.items():
            try:
                built[name] = State.build(name, definition)
            except MachineDefinitionError as exc:
                # Keep checking the known keys so every problem is reported.
                errors.extend(exc.errors)
                built[name] = State.build(
                    name, {k: v for k, v in definition.items() if k in STATE_KEYS}
                )

        self._context: Context = dict(context)
        self._states = MappingProxyType(built)
        self._initial = initial
        self._current: str | None = None
        self._debug = debug
        self._lock = asyncio.Lock() if serialize else None
        self._listeners: list[Listener] = []
        self._validate(errors)
        self._trace("Created with initial %r and states %s", initial, list(self._states))

    @property
    def current_state(self) -> str | None:
        return self._current

    @property
    def context(self) -> Context:
        return self._context

    @property
    def initial(self) -> str:
        return self._initial

    @property
    def states(self) -> Mapping[str, State]:
        return self._states

    @property
    def debug(self) -> bool:
        return self._debug

    # --- Observers ---

    def subscribe(self, listener: Listener) -> None:
        """Call ``listener(state, context)`` after every state or context write."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # --- Operations ---

    async def start(self, context: Mapping[str, Any] | None = None) -> None:
        """Enter the initial state, running its guard, enter hook and goto chain."""
        async with self._flight():
            self._trace("START: %r", self._initial)
            await self._transition(self._initial, context)

    async def send(
        self,
        event: str,
        data: Any = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        """Dispatch ``event`` against the current state.

        Undeclared events are logged and ignored. ``context`` is merged
        into the machine context before the target's guard runs.
        """
        async with self._flight():
            self._trace("SEND: %r with data: %r", event, data)
            state = self._states.get(self._current) if self._current is not None else None
            if state is None or event not in state.on:
                logger.error("Event %r not found in state %r", event, self._current)
                return
            target = state.on[event]
            if callable(target):
                target = target(self._context, data)
                self._publish()
            await self._transition(target, context)

    # --- Transition procedure ---

    async def _transition(
        self, target: str, patch: Mapping[str, Any] | None = None
    ) -> None:
        if patch:
            self._set_context({**self._context, **patch})
        if not isinstance(target, str) or target not in self._states:
            raise UnknownStateError(target)
        self._trace("TRANSITION: %r to %r", self._current, target)

        definition = self._states[target]
        if definition.guard is not None:
            self._trace("GUARD: %r", target)
            outcome = as_outcome(await _settle(definition.guard(self._context)), target)
            if isinstance(outcome, Redirect) and outcome.target != target:
                if outcome.target not in self._states:
                    raise UnknownStateError(outcome.target, guarded=target)
                self._trace("Redirecting to %r from guard in %r", outcome.target, target)
                return await self._transition(outcome.target)
            if isinstance(outcome, (Admit, Redirect)):
                self._set_state(target)
            else:
                self._trace("Guard failed for %r, staying in %r", target, self._current)
                if self._current is not None:
                    await self._enter()
                return
        else:
            self._set_state(target)

        await self._enter()
        goto = self._states[self._current].goto
        if goto is not None:
            await self._goto(goto)

    async def _goto(self, target: str) -> None:
        if target == self._current:
            raise GotoLoopError(target)
        self._trace("GOTO: %r", target)
        await self._transition(target)

    async def _enter(self) -> None:
        name = self._current
        hook = self._states[name].enter
        if hook is None:
            return
        self._trace("ENTER: %r", name)
        before = dict(self._context)
        try:
            result = await _settle(hook(self._context))
        except Exception:
            logger.exception("Enter hook for state %r failed", name)
            if self._context != before:
                self._set_context(before)
            return
        self._trace("ENTERED: %r returned %r", name, result)
        if result is None:
            if self._context != before:
                self._publish()
            return
        if not isinstance(result, Mapping):
            logger.error(
                "Enter hook for state %r returned %r, expected a mapping or None",
                name, result,
            )
            if self._context != before:
                self._set_context(before)
            return
        self._set_context(result)

    # --- Internals ---

    @asynccontextmanager
    async def _flight(self) -> AsyncIterator[None]:
        if self._lock is None:
            yield
            return
        async with self._lock:
            yield

    def _set_state(self, name: str) -> None:
        if name != self._current:
            self._current = name
            self._publish()

    def _set_context(self, value: Mapping[str, Any]) -> None:
        self._context = dict(value) if not isinstance(value, dict) else value
        self._publish()

    def _publish(self) -> None:
        for listener in tuple(self._listeners):
            listener(self._current, self._context)

    def _trace(self, message: str, *args: Any) -> None:
        if self._debug:
            logger.debug(
                "[FSM] " + message + " | current=%r context=%r",
                *args, self._current, self._context,
            )

    def _validate(self, errors: list[str]) -> None:
        if self._initial not in self._states:
            errors.append(f"Initial state {self._initial!r} is not defined")
        for name, definition in self._states.items():
            for event, target in definition.on.items():
                if isinstance(target, str) and target not in self._states:
                    errors.append(
                        f"Event {event!r} in state {name!r} targets undefined state {target!r}"
                    )
            if definition.goto is not None and definition.goto not in self._states:
                errors.append(
                    f"Goto in state {name!r} targets undefined state {definition.goto!r}"
                )
        if errors:
            raise MachineDefinitionError(tuple(errors))
