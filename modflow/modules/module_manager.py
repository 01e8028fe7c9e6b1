"""ModuleManager: composition root of the orchestration engine.

Responsibilities:
 - Own one registry, event bus, metrics sink, service registry, booter and
   lazy-load scheduler (no process-wide instances; tests build their own)
 - Run the bootstrap sequence:
       register -> validate -> conflicts + policy -> resolve order
       -> expose services -> preload -> boot eager / defer lazy
 - Serialise every mutation with an RLock (single writer)
 - Rehydrate from / snapshot to the manifest cache
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional

from modflow.config import EngineConfig, get_config
from modflow.conflicts import ConflictDetector, ConflictRecord, PolicyOutcome
from modflow.errors import ModuleBootError
from modflow.eventbus import EventBus
from modflow.lifecycle import Lifecycle, ModuleState
from modflow.metrics import Metrics
from modflow.observability import configure_logging
from modflow.registry import (
    ManifestCache,
    ModuleDescriptor,
    ModuleHandle,
    ModuleRegistry,
    build_manifest,
    descriptors_from_manifest,
)
from modflow.resolver import DependencyResolver, MissingDependency
from modflow.services import ServiceRegistry

from .booter import Booter, TriggerKind
from .scheduler import LazyLoadScheduler

logger = logging.getLogger(__name__)


@dataclass
class BootReport:
    order: List[str] = field(default_factory=list)
    eager: List[str] = field(default_factory=list)
    deferred: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    missing: List[MissingDependency] = field(default_factory=list)
    conflicts: List[ConflictRecord] = field(default_factory=list)
    rehydrated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": list(self.order),
            "eager": list(self.eager),
            "deferred": list(self.deferred),
            "failed": list(self.failed),
            "missing": [m.describe() for m in self.missing],
            "conflicts": [c.to_dict() for c in self.conflicts],
            "rehydrated": self.rehydrated,
        }


class ModuleManager:
    def __init__(
        self,
        config: EngineConfig | None = None,
        bus: EventBus | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        if metrics is None:
            metrics = bus.metrics if bus is not None else Metrics()
        self.metrics = metrics
        # shared with the booter and scheduler
        self._lock = RLock()
        self.bus = bus if bus is not None else EventBus(metrics)
        self.registry = ModuleRegistry(self.bus, self.metrics)
        self.resolver = DependencyResolver(priority_boot=self.config.boot.priority_boot)
        self.detector = ConflictDetector(self.bus, self.metrics)
        self.services = ServiceRegistry(self.registry, self.bus, self.metrics)
        self.booter = Booter(
            self.registry,
            self.services,
            self.config.boot,
            self.bus,
            self.metrics,
            lock=self._lock,
        )
        self.scheduler = LazyLoadScheduler(
            self.registry,
            self.booter,
            self.config.lazy_load,
            self.bus,
            self.metrics,
            lock=self._lock,
        )
        self.services.attach_loader(self.scheduler)
        self._cache: ManifestCache | None = None
        if self.config.cache.enabled:
            self._cache = ManifestCache(self.config.cache.path, self.config.cache.ttl_s)
        self._outcome: PolicyOutcome | None = None
        self._order: List[str] | None = None
        self._events_bound = False

    @classmethod
    def from_config(cls, **kwargs: Any) -> "ModuleManager":
        """Manager configured from ``get_config()`` (yaml + env).

        Also installs the engine log handler described by ``logging``.
        """
        cfg = get_config()
        configure_logging(cfg.logging)
        return cls(cfg, **kwargs)

    # --- registration ----------------------------------------------------
    def register(self, descriptor: ModuleDescriptor | Dict[str, Any]) -> ModuleHandle:
        if not isinstance(descriptor, ModuleDescriptor):
            descriptor = ModuleDescriptor.model_validate(descriptor)
        if descriptor.name in self.config.disabled_modules and descriptor.enabled:
            descriptor = descriptor.model_copy(update={"enabled": False})
            logger.info("Module %s disabled by config", descriptor.name)
        with self._lock:
            handle = self.registry.register(descriptor)
            self._order = None
            return handle

    def register_many(
        self, descriptors: Iterable[ModuleDescriptor | Dict[str, Any]]
    ) -> List[ModuleHandle]:
        with self._lock:
            return [self.register(d) for d in descriptors]

    # --- bootstrap -------------------------------------------------------
    def bootstrap(
        self,
        descriptors: Iterable[ModuleDescriptor | Dict[str, Any]] | None = None,
        *,
        route: str | None = None,
        role: str | None = None,
    ) -> BootReport:
        """Run the full sequence; returns what was booted, deferred, failed.

        Validation and conflict errors abort before any module boots. A
        required module's boot fault propagates as ``ModuleBootError`` after
        being recorded.
        """
        with self._lock:
            report = BootReport()
            if descriptors is not None:
                self.register_many(descriptors)
                if self._cache is not None:
                    self._cache.save(self.snapshot_manifest())
            elif self._cache is not None and len(self.registry) == 0:
                manifest = self._cache.load()
                if manifest:
                    self.register_many(descriptors_from_manifest(manifest))
                    report.rehydrated = True
                    logger.info("Registry rehydrated from %s", self._cache.path)

            report.missing = self.resolver.validate(self.registry)
            records = self.detector.detect(self.registry)
            self._outcome = self.detector.apply_policy(records, self.config.conflicts.table())
            report.conflicts = records
            self.scheduler.set_outcome(self._outcome)

            report.order = self.resolver.order(self.registry)
            self._order = list(report.order)

            for name in report.order:
                self.services.expose_module(self.registry.require(name).descriptor, self._outcome)

            if not self._events_bound:
                self.scheduler.bind_events(self.bus)
                self._events_bound = True
            self.scheduler.preload(route=route, role=role)

            eager = self.scheduler.load_eager(report.order)
            report.eager = [h.name for h in eager]
            report.failed = [h.name for h in self.registry if h.state is ModuleState.FAILED]
            report.deferred = [
                n for n in report.order
                if self.scheduler.is_deferred(n) and not self.registry.require(n).is_booted
            ]
            logger.info(
                "Bootstrap complete: %d eager, %d deferred, %d failed",
                len(report.eager),
                len(report.deferred),
                len(report.failed),
            )
            return report

    def warm_up(self) -> List[ModuleHandle]:
        with self._lock:
            return self.scheduler.warm_up(self.boot_order())

    # --- lookup ----------------------------------------------------------
    def handle(self, name: str) -> ModuleHandle:
        return self.registry.require(name)

    def lifecycle(self, name: str) -> Lifecycle:
        return self.registry.require(name).lifecycle

    def state(self, name: str) -> ModuleState:
        return self.registry.require(name).state

    def get(self, name: str) -> Any:
        """Module instance; deferred modules are loaded on first access."""
        with self._lock:
            handle = self.registry.require(name)
            if not handle.is_booted and handle.enabled:
                if self.scheduler.is_deferred(name):
                    self.scheduler.load(name, TriggerKind.MANUAL)
                else:
                    self.booter.boot(name, TriggerKind.MANUAL)
            if not handle.is_booted:
                raise ModuleBootError(name, f"module is {handle.state.value}")
            return handle.instance

    def is_enabled(self, name: str) -> bool:
        handle = self.registry.get(name)
        return handle is not None and handle.enabled

    def list_enabled(self) -> List[str]:
        return [h.name for h in self.registry.enabled_handles()]

    def boot_order(self) -> List[str]:
        with self._lock:
            if self._order is None:
                self._order = self.resolver.resolve(self.registry)
            return list(self._order)

    def resolve_service(self, full_name: str, requester: Optional[str] = None) -> Any:
        with self._lock:
            return self.services.resolve(full_name, requester)

    def conflicts(self) -> List[ConflictRecord]:
        if self._outcome is not None:
            return list(self._outcome.records)
        return self.detector.detect(self.registry)

    @property
    def outcome(self) -> PolicyOutcome | None:
        return self._outcome

    def dependency_tree(self) -> Dict[str, Dict[str, Any]]:
        return self.resolver.dependency_tree(self.registry)

    # --- mutation --------------------------------------------------------
    def enable(self, name: str) -> ModuleHandle:
        with self._lock:
            handle = self.registry.set_enabled(name, True)
            if handle.state is ModuleState.DISABLED:
                handle.lifecycle.transition_to(ModuleState.REGISTERED, "enabled")
            if self._outcome is not None:
                self.services.expose_module(handle.descriptor, self._outcome)
            self._order = None
            self.scheduler.clear_cache()
            return handle

    def disable(self, name: str) -> ModuleHandle:
        with self._lock:
            handle = self.registry.require(name)
            if handle.state is not ModuleState.DISABLED:
                handle.lifecycle.transition_to(ModuleState.DISABLED, "disabled")
            self.registry.set_enabled(name, False)
            self.services.unregister_module(name)
            handle.instance = None
            self._order = None
            self.scheduler.clear_cache()
            dependents = [
                h.name
                for h in self.registry.enabled_handles()
                if h.descriptor.depends_on(name)
            ]
            if dependents:
                logger.warning(
                    "Module %s disabled; dependents affected: %s",
                    name,
                    ", ".join(dependents),
                )
            return handle

    def reset(self, name: str) -> ModuleHandle:
        """Move a failed module back to registered so it can be retried."""
        with self._lock:
            handle = self.registry.require(name)
            handle.lifecycle.transition_to(ModuleState.REGISTERED, "reset")
            handle.instance = None
            handle.trigger = None
            if self._outcome is not None and handle.enabled:
                self.services.expose_module(handle.descriptor, self._outcome)
            return handle

    # --- introspection ---------------------------------------------------
    def modules(self) -> List[Dict[str, Any]]:
        return [h.info() for h in self.registry]

    def snapshot_manifest(self) -> Dict[str, Any]:
        return build_manifest(
            h.descriptor.model_copy(update={"enabled": h.enabled}) for h in self.registry
        )

    def statistics(self) -> Dict[str, Any]:
        states = Counter(h.state.value for h in self.registry)
        return {
            "modules": len(self.registry),
            "enabled": len(self.registry.enabled_handles()),
            "states": dict(states),
            "boot_order": list(self._order or []),
            "services": len(self.services.names()),
            "conflicts": len(self.conflicts()),
            "lazy_load": self.scheduler.statistics(),
            "metrics": self.metrics.snapshot(),
        }


__all__ = ["ModuleManager", "BootReport"]
