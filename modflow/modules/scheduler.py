"""Lazy-load scheduler: eager/deferred partition and trigger entry points.

Partition (``lazy_load`` config):
    - lazy loading disabled      -> nothing is deferred
    - module in ``eager``        -> never deferred
    - ``lazy`` empty             -> every other module is deferred
    - otherwise                  -> only modules listed in ``lazy``

Every load goes through ``Booter.boot`` so a module behaves the same
whether it was booted eagerly, by a trigger or by ``warm_up``.
"""
from __future__ import annotations

import logging
import re
import time
from threading import RLock
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from modflow.config.schemas.engine import LazyLoadConfig
from modflow.eventbus import EventBus
from modflow.events import ModuleLazyLoaded, publish
from modflow.metrics import Metrics
from modflow.registry import Capability, ModuleHandle, ModuleRegistry

from .booter import Booter, TriggerKind

logger = logging.getLogger(__name__)


class PolicyView(Protocol):  # pragma: no cover
    def is_winner(self, domain: str, key: str, module: str) -> bool: ...


def _normalise_path(path: str) -> str:
    return path.split("?", 1)[0].split("#", 1)[0].strip("/")


class LazyLoadScheduler:
    def __init__(
        self,
        registry: ModuleRegistry,
        booter: Booter,
        cfg: LazyLoadConfig | None = None,
        bus: EventBus | None = None,
        metrics: Metrics | None = None,
        lock: RLock | None = None,
    ) -> None:
        self._registry = registry
        self._booter = booter
        self.cfg = cfg or LazyLoadConfig()
        self._bus = bus
        self._metrics = metrics
        self._outcome: PolicyView | None = None
        self._route_map: Optional[Dict[str, str]] = None
        self._route_map_gen = -1
        self._by_trigger: Dict[str, int] = {}
        self._bound: List[Tuple[EventBus, str, Callable]] = []
        self._lock = lock if lock is not None else RLock()

    # --- partition -------------------------------------------------------
    @property
    def metrics(self) -> Metrics | None:
        return self._metrics

    @property
    def enabled(self) -> bool:
        return self.cfg.enabled

    def is_lazy_loadable(self, name: str) -> bool:
        if not self.cfg.enabled:
            return False
        if name in self.cfg.eager:
            return False
        if not self.cfg.lazy:
            return True
        return name in self.cfg.lazy

    def is_deferred(self, name: str) -> bool:
        handle = self._registry.require(name)
        return handle.enabled and self.is_lazy_loadable(name)

    def loaded(self) -> List[str]:
        """Deferred modules that have booted (by any trigger)."""
        return [
            h.name
            for h in self._registry.enabled_handles()
            if self.is_lazy_loadable(h.name) and h.is_booted
        ]

    def pending(self) -> List[str]:
        """Deferred modules still waiting for a trigger."""
        return [
            h.name
            for h in self._registry.enabled_handles()
            if self.is_lazy_loadable(h.name) and not h.is_booted
        ]

    def set_outcome(self, outcome: PolicyView | None) -> None:
        """Conflict outcome used to keep only winning route prefixes."""
        self._outcome = outcome
        self.clear_cache()

    # --- loading ---------------------------------------------------------
    def load(
        self,
        name: str,
        trigger: TriggerKind | str = TriggerKind.MANUAL,
        detail: str | None = None,
    ) -> Optional[ModuleHandle]:
        """Boot a deferred module once.

        Returns ``None`` when loading does not apply (module not deferred or
        disabled), otherwise the handle, which may be ``failed``.
        """
        trigger = TriggerKind(trigger)
        with self._lock:
            handle = self._registry.require(name)
            if handle.is_booted:
                return handle if self.is_lazy_loadable(name) else None
            if not self.is_lazy_loadable(name):
                return None
            if not handle.enabled:
                logger.debug("Lazy load skipped: %s is disabled", name)
                return None
            t0 = time.perf_counter()
            self._booter.boot(name, trigger)
            if not handle.is_booted:
                return handle
            duration_ms = int((time.perf_counter() - t0) * 1000)
            self._by_trigger[trigger.value] = self._by_trigger.get(trigger.value, 0) + 1
        if self._metrics is not None:
            self._metrics.inc("lazy_loads_total", {"trigger": trigger.value})
        publish(
            self._bus,
            ModuleLazyLoaded(
                module=name,
                trigger=trigger.value,
                detail=detail,
                duration_ms=duration_ms,
            ),
        )
        logger.info(
            "Lazy loaded module %s (trigger=%s%s, %d ms)",
            name,
            trigger.value,
            f":{detail}" if detail else "",
            duration_ms,
        )
        return handle

    def load_eager(self, order: Sequence[str] | None = None) -> List[ModuleHandle]:
        """Boot every enabled, non-deferred module in ``order``.

        ``order`` defaults to registration order; dependencies are booted
        first either way.
        """
        names = list(order) if order is not None else self._registry.names()
        booted: List[ModuleHandle] = []
        for name in names:
            handle = self._registry.require(name)
            if not handle.enabled or self.is_lazy_loadable(name):
                continue
            self._booter.boot(name, TriggerKind.EAGER)
            if handle.is_booted:
                booted.append(handle)
        logger.info(
            "Loaded eager modules: %d (%s)",
            len(booted),
            ", ".join(h.name for h in booted) or "-",
        )
        return booted

    def warm_up(self, order: Sequence[str] | None = None) -> List[ModuleHandle]:
        """Load every still-deferred module (cache priming)."""
        names = list(order) if order is not None else self._registry.names()
        loaded: List[ModuleHandle] = []
        for name in names:
            handle = self._registry.get(name)
            if handle is None or handle.is_booted or not self.is_deferred(name):
                continue
            result = self.load(name, TriggerKind.WARMUP)
            if result is not None and result.is_booted:
                loaded.append(result)
        logger.info("Warm-up loaded %d deferred module(s)", len(loaded))
        return loaded

    # --- triggers --------------------------------------------------------
    def route_map(self) -> Dict[str, str]:
        """``route prefix -> module`` for deferred, route-capable winners."""
        with self._lock:
            if self._route_map is None or self._route_map_gen != self._registry.generation:
                self._route_map = self._build_route_map()
                self._route_map_gen = self._registry.generation
            return dict(self._route_map)

    def _build_route_map(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for handle in self._registry.enabled_handles():
            desc = handle.descriptor
            if not desc.has(Capability.ROUTES) or not self.is_lazy_loadable(desc.name):
                continue
            prefix = desc.route_prefix
            if self._outcome is not None and not self._outcome.is_winner(
                "routes", prefix, desc.name  # type: ignore[arg-type]
            ):
                continue
            out.setdefault(prefix, desc.name)  # type: ignore[arg-type]
        return out

    def match_route(self, path: str) -> Optional[str]:
        """Module owning the longest prefix of ``path`` (segment boundaries)."""
        norm = _normalise_path(path)
        best: Optional[str] = None
        best_len = -1
        for prefix, module in self.route_map().items():
            if (norm == prefix or norm.startswith(prefix + "/")) and len(prefix) > best_len:
                best, best_len = module, len(prefix)
        return best

    def load_by_route(self, path: str) -> Optional[ModuleHandle]:
        if not self.cfg.strategies.route:
            return None
        module = self.match_route(path)
        if module is None:
            return None
        return self.load(module, TriggerKind.ROUTE, detail=path.split("?", 1)[0])

    def load_by_service(self, module: str, service: str) -> Optional[ModuleHandle]:
        if not self.cfg.strategies.service:
            return None
        return self.load(module, TriggerKind.SERVICE, detail=service)

    def load_by_event(self, module: str, event: str) -> Optional[ModuleHandle]:
        if not self.cfg.strategies.event:
            return None
        return self.load(module, TriggerKind.EVENT, detail=event)

    def load_by_command(self, module: str, command: str) -> Optional[ModuleHandle]:
        if not self.cfg.strategies.command:
            return None
        return self.load(module, TriggerKind.COMMAND, detail=command)

    def _load_configured(
        self, name: str, trigger: TriggerKind, detail: str
    ) -> Optional[ModuleHandle]:
        # names coming from config may refer to modules that were never registered
        if name not in self._registry:
            logger.warning("lazy_load config names unknown module '%s' (%s)", name, detail)
            return None
        if trigger is TriggerKind.EVENT:
            return self.load_by_event(name, detail)
        return self.load(name, trigger, detail=detail)

    def preload(
        self, route: str | None = None, role: str | None = None
    ) -> List[ModuleHandle]:
        """Load modules configured for a route pattern and/or a user role."""
        out: List[ModuleHandle] = []
        if route is not None:
            for pattern, modules in self.cfg.preload.routes.items():
                if re.search(pattern, route):
                    for name in modules:
                        h = self._load_configured(name, TriggerKind.PRELOAD, f"route:{route}")
                        if h is not None and h.is_booted and h not in out:
                            out.append(h)
        if role is not None:
            for name in self.cfg.preload.roles.get(role, []):
                h = self._load_configured(name, TriggerKind.PRELOAD, f"role:{role}")
                if h is not None and h.is_booted and h not in out:
                    out.append(h)
        return out

    def bind_events(self, bus: EventBus) -> int:
        """Subscribe to each ``lazy_load.events`` name; returns handler count."""
        count = 0
        for event, modules in self.cfg.events.items():

            def handler(_payload, _event=event, _modules=tuple(modules)) -> None:
                for name in _modules:
                    self._load_configured(name, TriggerKind.EVENT, _event)

            bus.subscribe(event, handler)
            self._bound.append((bus, event, handler))
            count += 1
        return count

    def unbind_events(self) -> None:
        for bus, event, handler in self._bound:
            bus.unsubscribe(event, handler)
        self._bound.clear()

    # --- maintenance -----------------------------------------------------
    def clear_cache(self) -> None:
        with self._lock:
            self._route_map = None
            self._route_map_gen = -1

    def statistics(self) -> Dict[str, object]:
        loaded = self.loaded()
        pending = self.pending()
        return {
            "enabled": self.cfg.enabled,
            "total_modules": len(self._registry),
            "eager_modules": len(
                [h for h in self._registry.enabled_handles() if not self.is_lazy_loadable(h.name)]
            ),
            "loaded_modules": len(loaded),
            "pending_modules": len(pending),
            "loaded_list": loaded,
            "pending_list": pending,
            "loads_by_trigger": dict(self._by_trigger),
            "route_map": self.route_map(),
            "strategies": self.cfg.strategies.model_dump(),
        }


__all__ = ["LazyLoadScheduler", "TriggerKind"]
