"""Per-module lifecycle state machine.

    registered -> preloaded -> booting -> booted
         \\            \\          \\         \\
          +-> failed / disabled (see TRANSITIONS)

``transition_to`` enforces the table; ``mark_failed`` is the only forced
transition and succeeds from any state. History is append-only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from time import time
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Optional

from modflow.errors import InvalidTransitionError, map_exception
from modflow.events import ModuleStateChanged, publish

if TYPE_CHECKING:  # pragma: no cover
    from modflow.eventbus import EventBus

logger = logging.getLogger(__name__)


class ModuleState(str, Enum):
    REGISTERED = "registered"
    PRELOADED = "preloaded"
    BOOTING = "booting"
    BOOTED = "booted"
    FAILED = "failed"
    DISABLED = "disabled"

    @property
    def is_active(self) -> bool:
        return self in _ACTIVE

    @property
    def is_bootable(self) -> bool:
        return self is ModuleState.PRELOADED


_ACTIVE = frozenset(
    {
        ModuleState.REGISTERED,
        ModuleState.PRELOADED,
        ModuleState.BOOTING,
        ModuleState.BOOTED,
    }
)

TRANSITIONS: Dict[ModuleState, FrozenSet[ModuleState]] = {
    ModuleState.REGISTERED: frozenset(
        {ModuleState.PRELOADED, ModuleState.FAILED, ModuleState.DISABLED}
    ),
    ModuleState.PRELOADED: frozenset(
        {ModuleState.BOOTING, ModuleState.FAILED, ModuleState.DISABLED}
    ),
    ModuleState.BOOTING: frozenset({ModuleState.BOOTED, ModuleState.FAILED}),
    ModuleState.BOOTED: frozenset({ModuleState.DISABLED, ModuleState.FAILED}),
    ModuleState.FAILED: frozenset({ModuleState.REGISTERED, ModuleState.DISABLED}),
    ModuleState.DISABLED: frozenset({ModuleState.REGISTERED}),
}


@dataclass(frozen=True)
class HistoryEntry:
    state: ModuleState
    previous: Optional[ModuleState]
    reason: Optional[str]
    timestamp: float
    forced: bool = False


@dataclass(frozen=True)
class Fault:
    """Captured boot/runtime fault (set only when entering ``failed``)."""

    message: str
    origin: str
    timestamp: float
    error_type: str = "internal"
    exception: Optional[BaseException] = None

    @classmethod
    def from_exception(cls, exc: BaseException, origin: str) -> "Fault":
        return cls(
            message=str(exc) or exc.__class__.__name__,
            origin=origin,
            timestamp=time(),
            error_type=map_exception(exc, origin),
            exception=exc,
        )


class Lifecycle:
    """Lifecycle state owned one-to-one by a registered module."""

    __slots__ = ("module", "_current", "_history", "_last_error", "_bus")

    def __init__(self, module: str, bus: "EventBus | None" = None) -> None:
        self.module = module
        self._current = ModuleState.REGISTERED
        self._history: List[HistoryEntry] = [
            HistoryEntry(ModuleState.REGISTERED, None, "created", time())
        ]
        self._last_error: Optional[Fault] = None
        self._bus = bus

    @property
    def current(self) -> ModuleState:
        return self._current

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._history)

    @property
    def last_error(self) -> Optional[Fault]:
        return self._last_error

    def is_active(self) -> bool:
        return self._current.is_active

    def is_bootable(self) -> bool:
        return self._current.is_bootable

    def can_transition_to(self, state: ModuleState) -> bool:
        return ModuleState(state) in TRANSITIONS[self._current]

    def transition_to(self, state: ModuleState, reason: str | None = None) -> None:
        target = ModuleState(state)
        if target not in TRANSITIONS[self._current]:
            raise InvalidTransitionError(self.module, self._current, target)
        self._record(target, reason, forced=False)

    def mark_failed(
        self,
        fault: Fault | BaseException,
        reason: str | None = None,
        origin: str = "boot",
    ) -> Fault:
        if not isinstance(fault, Fault):
            fault = Fault.from_exception(fault, origin)
        self._last_error = fault
        self._record(ModuleState.FAILED, reason or fault.message, forced=True)
        logger.error(
            "Module %s failed (%s): %s", self.module, fault.origin, fault.message
        )
        return fault

    def _record(self, target: ModuleState, reason: str | None, forced: bool) -> None:
        previous = self._current
        self._current = target
        self._history.append(
            HistoryEntry(target, previous, reason, time(), forced=forced)
        )
        logger.debug(
            "Module %s: %s -> %s (%s)",
            self.module,
            previous.value,
            target.value,
            reason or "-",
        )
        publish(
            self._bus,
            ModuleStateChanged(
                module=self.module,
                state=target.value,
                previous=previous.value,
                reason=reason,
                forced=forced,
            ),
        )

    def __repr__(self) -> str:
        return f"Lifecycle({self.module!r}, {self._current.value})"
