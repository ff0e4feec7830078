"""stately - Minimal async finite state machine runtime."""
from __future__ import annotations

from stately.log import configure_logging
from stately.machine import Machine
from stately.types import (
    Admit,
    GotoLoopError,
    GuardOutcome,
    MachineDefinitionError,
    MachineError,
    Redirect,
    Reject,
    State,
    UnknownStateError,
)

__all__ = [
    "Machine",
    "State",
    "Admit",
    "Reject",
    "Redirect",
    "GuardOutcome",
    "MachineError",
    "MachineDefinitionError",
    "UnknownStateError",
    "GotoLoopError",
    "configure_logging",
]
