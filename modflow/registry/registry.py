"""Module registry: name -> (descriptor, lifecycle, instance) records.

The registry only stores; resolution, conflict detection and booting live in
their own components and read from here. Registration order is preserved and
used as the stable tie-break everywhere.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

from modflow.errors import DuplicateModuleError, ModuleNotFoundError
from modflow.eventbus import EventBus
from modflow.events import ModuleRegistered, publish
from modflow.lifecycle import Lifecycle, ModuleState
from modflow.metrics import Metrics
from modflow.suggest import closest

from .descriptor import ModuleDescriptor

logger = logging.getLogger(__name__)


class ModuleHandle:
    """Registry record for one module (what ``load`` hands back)."""

    __slots__ = ("descriptor", "lifecycle", "instance", "enabled", "index", "trigger")

    def __init__(
        self,
        descriptor: ModuleDescriptor,
        lifecycle: Lifecycle,
        index: int,
    ) -> None:
        self.descriptor = descriptor
        self.lifecycle = lifecycle
        self.instance: Any | None = None
        self.enabled = descriptor.enabled
        self.index = index
        self.trigger: str | None = None  # what booted it (observability)

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def state(self) -> ModuleState:
        return self.lifecycle.current

    @property
    def is_booted(self) -> bool:
        return self.lifecycle.current is ModuleState.BOOTED

    def info(self) -> dict[str, Any]:
        err = self.lifecycle.last_error
        return {
            "name": self.name,
            "version": self.descriptor.version,
            "state": self.state.value,
            "enabled": self.enabled,
            "required": self.descriptor.required,
            "priority": self.descriptor.priority,
            "dependencies": [d.name for d in self.descriptor.dependencies],
            "capabilities": sorted(c.value for c in self.descriptor.capabilities),
            "trigger": self.trigger,
            "last_error": err.message if err else None,
        }

    def __repr__(self) -> str:
        return f"ModuleHandle({self.name!r}, {self.state.value})"


class ModuleRegistry:
    def __init__(
        self,
        bus: EventBus | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self._handles: Dict[str, ModuleHandle] = {}
        self._bus = bus
        self._metrics = metrics
        # bumped on material change (module added / enabled / disabled)
        self.generation = 0

    def register(self, descriptor: ModuleDescriptor | Dict[str, Any]) -> ModuleHandle:
        if not isinstance(descriptor, ModuleDescriptor):
            descriptor = ModuleDescriptor.model_validate(descriptor)
        name = descriptor.name
        if name in self._handles:
            raise DuplicateModuleError(name)
        handle = ModuleHandle(
            descriptor, Lifecycle(name, bus=self._bus), index=len(self._handles)
        )
        self._handles[name] = handle
        self.generation += 1
        if not handle.enabled:
            handle.lifecycle.transition_to(
                ModuleState.DISABLED, "disabled at registration"
            )
        if self._metrics is not None:
            self._metrics.inc("modules_registered_total")
        publish(
            self._bus,
            ModuleRegistered(
                module=name, version=descriptor.version, enabled=handle.enabled
            ),
        )
        logger.info("Registered module: %s v%s", name, descriptor.version)
        return handle

    def get(self, name: str) -> Optional[ModuleHandle]:
        return self._handles.get(name)

    def require(self, name: str) -> ModuleHandle:
        handle = self._handles.get(name)
        if handle is None:
            raise ModuleNotFoundError(name, closest(name, self._handles))
        return handle

    def __contains__(self, name: object) -> bool:
        return name in self._handles

    def __iter__(self) -> Iterator[ModuleHandle]:
        return iter(list(self._handles.values()))

    def __len__(self) -> int:
        return len(self._handles)

    def names(self) -> List[str]:
        return list(self._handles)

    def enabled_handles(self) -> List[ModuleHandle]:
        return [h for h in self._handles.values() if h.enabled]

    def set_enabled(self, name: str, enabled: bool) -> ModuleHandle:
        handle = self.require(name)
        if handle.enabled != enabled:
            handle.enabled = enabled
            self.generation += 1
        return handle
