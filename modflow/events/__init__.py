"""Lifecycle event dataclasses published on the EventBus.

Each event class carries its bus name in ``NAME``; ``publish(bus, event)``
serialises it via ``to_event`` and emits it. A ``None`` bus is a no-op so
standalone components (e.g. a bare ``Lifecycle``) can run without one.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from time import time
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Protocol

if TYPE_CHECKING:  # pragma: no cover
    from modflow.eventbus import EventBus


class SupportsEvent(Protocol):  # pragma: no cover
    NAME: ClassVar[str]

    def to_event(self) -> Dict[str, Any]:  # noqa: D401
        ...


@dataclass(slots=True)
class BaseEvent:
    NAME: ClassVar[str] = "event"

    def to_event(self) -> Dict[str, Any]:  # noqa: D401
        data = asdict(self)
        data["ts"] = data.get("ts") or time()
        return data


@dataclass(slots=True)
class ModuleRegistered(BaseEvent):
    NAME: ClassVar[str] = "module.registered"
    module: str
    version: str
    enabled: bool


@dataclass(slots=True)
class ModuleStateChanged(BaseEvent):
    NAME: ClassVar[str] = "module.state_changed"
    module: str
    state: str
    previous: str | None
    reason: str | None = None
    forced: bool = False


@dataclass(slots=True)
class ModuleBooting(BaseEvent):
    NAME: ClassVar[str] = "module.booting"
    module: str
    trigger: str


@dataclass(slots=True)
class ModuleBooted(BaseEvent):
    NAME: ClassVar[str] = "module.booted"
    module: str
    trigger: str
    boot_ms: int


@dataclass(slots=True)
class ModuleFailed(BaseEvent):
    NAME: ClassVar[str] = "module.failed"
    module: str
    error_type: str
    message: str
    trigger: str | None = None


@dataclass(slots=True)
class ModuleLazyLoaded(BaseEvent):
    """Deferred module booted by a trigger (route/service/event/...)."""
    NAME: ClassVar[str] = "module.lazy_loaded"
    module: str
    trigger: str
    detail: str | None
    duration_ms: int


@dataclass(slots=True)
class ServiceExposed(BaseEvent):
    NAME: ClassVar[str] = "service.exposed"
    module: str
    service: str
    access: str
    allowed_modules: list[str] | None = None


@dataclass(slots=True)
class ConflictDetected(BaseEvent):
    NAME: ClassVar[str] = "conflict.detected"
    domain: str
    key: str
    modules: list[str]
    policy: str
    winner: str | None = None


def publish(bus: "EventBus | None", event: BaseEvent) -> None:
    if bus is None:
        return
    bus.emit(event.NAME, event.to_event())


__all__ = [
    "BaseEvent",
    "ModuleRegistered",
    "ModuleStateChanged",
    "ModuleBooting",
    "ModuleBooted",
    "ModuleFailed",
    "ModuleLazyLoaded",
    "ServiceExposed",
    "ConflictDetected",
    "publish",
]
