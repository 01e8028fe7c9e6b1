"""Lifecycle state machine (states, transition table, history, faults)."""
from __future__ import annotations

from .state import (  # noqa: F401
    TRANSITIONS,
    Fault,
    HistoryEntry,
    Lifecycle,
    ModuleState,
)

__all__ = ["TRANSITIONS", "Fault", "HistoryEntry", "Lifecycle", "ModuleState"]
