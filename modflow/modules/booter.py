"""Single boot path shared by eager boot, lazy loads and warm-up.

    registered -> preloaded -> (dependencies) -> booting -> booted
                                                   \\-> failed (mark_failed)

Faults are recorded on the module's lifecycle and only re-raised (as
``ModuleBootError``) for ``required`` modules or when
``boot.throw_on_boot_failure`` is set.
"""
from __future__ import annotations

import logging
import time
from enum import Enum
from threading import RLock
from typing import Set

from modflow.config.schemas.engine import BootConfig
from modflow.errors import ModuleBootError
from modflow.eventbus import EventBus
from modflow.events import ModuleBooted, ModuleBooting, ModuleFailed, publish
from modflow.lifecycle import Fault, ModuleState
from modflow.metrics import Metrics
from modflow.registry import ModuleHandle, ModuleRegistry
from modflow.services import ServiceRegistry

logger = logging.getLogger(__name__)


class TriggerKind(str, Enum):
    """Why a module booted. Observability only."""

    ROUTE = "route"
    SERVICE = "service"
    EVENT = "event"
    COMMAND = "command"
    WARMUP = "warmup"
    MANUAL = "manual"
    DEPENDENCY = "dependency"
    PRELOAD = "preload"
    EAGER = "eager"


class DependencyFailed(RuntimeError):
    pass


class Booter:
    def __init__(
        self,
        registry: ModuleRegistry,
        services: ServiceRegistry | None = None,
        cfg: BootConfig | None = None,
        bus: EventBus | None = None,
        metrics: Metrics | None = None,
        lock: RLock | None = None,
    ) -> None:
        self._registry = registry
        self._services = services
        self.cfg = cfg or BootConfig()
        self._bus = bus
        self._metrics = metrics
        self._in_progress: Set[str] = set()
        self._lock = lock if lock is not None else RLock()

    def boot(self, name: str, trigger: TriggerKind | str = TriggerKind.MANUAL) -> ModuleHandle:
        """Boot ``name`` (dependencies first). Returns the handle in any state.

        Already booted, failed, disabled or currently booting modules are
        returned untouched; a failed module needs ``ModuleManager.reset``
        before it is retried.
        """
        trigger = TriggerKind(trigger).value
        with self._lock:
            handle = self._registry.require(name)
            state = handle.state
            if (
                not handle.enabled
                or name in self._in_progress
                or state not in (ModuleState.REGISTERED, ModuleState.PRELOADED)
            ):
                return handle
            self._in_progress.add(name)
            try:
                self._boot(handle, trigger)
            finally:
                self._in_progress.discard(name)
            return handle

    def _boot(self, handle: ModuleHandle, trigger: str) -> None:
        name = handle.name
        lc = handle.lifecycle
        if lc.current is ModuleState.REGISTERED:
            lc.transition_to(ModuleState.PRELOADED, f"preload ({trigger})")
        t0 = time.perf_counter()
        try:
            self._boot_dependencies(handle)
            lc.transition_to(ModuleState.BOOTING, f"boot ({trigger})")
            publish(self._bus, ModuleBooting(module=name, trigger=trigger))
            handle.instance = handle.descriptor.create_instance()
        except ModuleBootError as e:
            # a required dependency aborted the sequence
            self._record_failure(handle, e, trigger)
            raise
        except Exception as e:  # noqa: BLE001
            fault = self._record_failure(handle, e, trigger)
            if handle.descriptor.required or self.cfg.throw_on_boot_failure:
                raise ModuleBootError(name, fault.message) from e
            return
        boot_ms = int((time.perf_counter() - t0) * 1000)
        lc.transition_to(ModuleState.BOOTED, f"booted ({trigger})")
        handle.trigger = trigger
        if self._metrics is not None:
            self._metrics.inc("module_boot_total", {"module": name, "status": "ok"})
            self._metrics.observe("module_boot_ms", boot_ms, {"module": name})
        publish(self._bus, ModuleBooted(module=name, trigger=trigger, boot_ms=boot_ms))
        logger.info("Booted module %s (%s, %d ms)", name, trigger, boot_ms)

    def _boot_dependencies(self, handle: ModuleHandle) -> None:
        for dep in handle.descriptor.dependencies:
            target = self._registry.get(dep.name)
            if target is None or not target.enabled:
                continue  # tolerated miss, reported by the resolver
            if not target.is_booted:
                self.boot(dep.name, TriggerKind.DEPENDENCY)
            if target.is_booted:
                continue
            if dep.optional:
                logger.warning(
                    "Module %s: optional dependency %s is %s; continuing",
                    handle.name,
                    dep.name,
                    target.state.value,
                )
                continue
            raise DependencyFailed(
                f"dependency '{dep.name}' is {target.state.value}"
            )

    def _record_failure(self, handle: ModuleHandle, exc: Exception, trigger: str) -> Fault:
        name = handle.name
        fault = handle.lifecycle.mark_failed(exc, origin="boot")
        if self._metrics is not None:
            self._metrics.inc("module_boot_total", {"module": name, "status": "failed"})
        publish(
            self._bus,
            ModuleFailed(
                module=name,
                error_type=fault.error_type,
                message=fault.message,
                trigger=trigger,
            ),
        )
        if self.cfg.rollback_on_boot_failure:
            self.rollback(handle)
        return fault

    def rollback(self, handle: ModuleHandle) -> None:
        """Withdraw a failed module: drop its services, move it to disabled."""
        if self._services is not None:
            self._services.unregister_module(handle.name)
        handle.instance = None
        if handle.lifecycle.can_transition_to(ModuleState.DISABLED):
            handle.lifecycle.transition_to(ModuleState.DISABLED, "rollback after boot failure")
        self._registry.set_enabled(handle.name, False)
        logger.warning("Module %s rolled back (disabled)", handle.name)


__all__ = ["Booter", "TriggerKind"]
