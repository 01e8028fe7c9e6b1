"""Service exposure registry (public / linked services, lazy singletons).

Full names are ``lower(module) + "." + service``. Lookups normalise the
module part, so ``Blog.editor`` and ``blog.editor`` address the same entry.

Resolution:
    1. public exposures
    2. linked exposures + allow-list check (owner always allowed)
    3. otherwise ServiceNotFoundError with a "did you mean" hint

Before an instance is returned the owner module must be booted; when it is
not, the attached loader (the lazy-load scheduler) gets one chance to boot
it via ``load_by_service``.
"""
from __future__ import annotations

import logging
from threading import RLock
from typing import Any, Dict, List, Optional, Protocol, Sequence

from modflow.errors import (
    ConflictError,
    ServiceAccessDeniedError,
    ServiceNotFoundError,
    ServiceUnavailableError,
)
from modflow.eventbus import EventBus
from modflow.events import ServiceExposed, publish
from modflow.metrics import Metrics
from modflow.registry import (
    Access,
    ModuleDescriptor,
    ModuleRegistry,
    ServiceDescriptor,
    full_service_name,
)
from modflow.suggest import closest

logger = logging.getLogger(__name__)

_UNSET = object()


class ServiceLoader(Protocol):  # pragma: no cover
    def load_by_service(self, module: str, service: str) -> Any: ...


class PolicyView(Protocol):  # pragma: no cover
    def is_winner(self, domain: str, key: str, module: str) -> bool: ...


def normalise(full_name: str) -> str:
    module, sep, service = full_name.partition(".")
    if not sep:
        return full_name
    return f"{module.lower()}.{service}"


class Exposure:
    __slots__ = ("owner", "service", "full_name", "descriptor", "instance")

    def __init__(self, owner: str, service: str, descriptor: ServiceDescriptor) -> None:
        self.owner = owner
        self.service = service
        self.full_name = full_service_name(owner, service)
        self.descriptor = descriptor
        self.instance: Any = _UNSET

    @property
    def access(self) -> Access:
        return self.descriptor.access

    @property
    def instantiated(self) -> bool:
        return self.instance is not _UNSET

    def info(self) -> Dict[str, Any]:
        return {
            "name": self.full_name,
            "module": self.owner,
            "access": self.access.value,
            "allowed_modules": list(self.descriptor.allowed_modules),
            "instantiated": self.instantiated,
        }


def _as_descriptor(descriptor: Any) -> ServiceDescriptor:
    if isinstance(descriptor, ServiceDescriptor):
        return descriptor
    return ServiceDescriptor.public(descriptor)


class ServiceRegistry:
    def __init__(
        self,
        registry: ModuleRegistry | None = None,
        bus: EventBus | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self._registry = registry
        self._bus = bus
        self._metrics = metrics
        self._public: Dict[str, Exposure] = {}
        self._linked: Dict[str, Exposure] = {}
        self._loader: ServiceLoader | None = None
        self._lock = RLock()

    def attach_loader(self, loader: ServiceLoader | None) -> None:
        self._loader = loader

    # --- exposure --------------------------------------------------------
    def expose_public(
        self, module: str, name: str, descriptor: Any, *, replace: bool = False
    ) -> Exposure:
        desc = _as_descriptor(descriptor)
        if desc.access is not Access.PUBLIC:
            desc = ServiceDescriptor.public(desc.factory)
        return self._expose(module, name, desc, replace)

    def expose_linked(
        self,
        module: str,
        name: str,
        descriptor: Any,
        allowed_modules: Sequence[str],
        *,
        replace: bool = False,
    ) -> Exposure:
        desc = _as_descriptor(descriptor)
        desc = ServiceDescriptor.linked(desc.factory, list(allowed_modules))
        return self._expose(module, name, desc, replace)

    def expose_module(
        self, descriptor: ModuleDescriptor, outcome: PolicyView | None = None
    ) -> List[Exposure]:
        """Expose every declared service the module still owns after policy."""
        out: List[Exposure] = []
        for name, svc in descriptor.exposes.items():
            full = descriptor.service_full_name(name)
            if outcome is not None and not outcome.is_winner("services", full, descriptor.name):
                logger.debug("Service %s: %s lost the claim, not exposed", full, descriptor.name)
                continue
            out.append(self._expose(descriptor.name, name, svc, replace=True))
        return out

    def _expose(
        self, module: str, name: str, desc: ServiceDescriptor, replace: bool
    ) -> Exposure:
        exp = Exposure(module, name, desc)
        key = exp.full_name
        with self._lock:
            existing = self._public.get(key) or self._linked.get(key)
            if existing is not None and existing.owner != module and not replace:
                raise ConflictError("services", key, [existing.owner, module])
            if existing is not None and existing.owner == module and existing.descriptor == desc:
                # unchanged declaration keeps its cached singleton
                return existing
            self._public.pop(key, None)
            self._linked.pop(key, None)
            target = self._public if desc.access is Access.PUBLIC else self._linked
            target[key] = exp
        publish(
            self._bus,
            ServiceExposed(
                module=module,
                service=key,
                access=desc.access.value,
                allowed_modules=list(desc.allowed_modules) or None,
            ),
        )
        logger.debug("Service exposed: %s (%s)", key, desc.access.value)
        return exp

    # --- resolution ------------------------------------------------------
    def resolve(self, full_name: str, requester: Optional[str] = None) -> Any:
        """Instance of ``full_name`` for ``requester``.

        The lock covers the lookup and the instance cache only; booting the
        owner through the loader happens outside it.
        """
        key = normalise(full_name)
        with self._lock:
            exp = self._public.get(key)
            if exp is None:
                exp = self._linked.get(key)
                if exp is None:
                    self._count("not_found")
                    raise ServiceNotFoundError(key, closest(key, self.names()))
                if requester != exp.owner and not exp.descriptor.allows(requester):
                    self._count("denied")
                    raise ServiceAccessDeniedError(key, requester)
        self._ensure_owner(exp)
        with self._lock:
            if not exp.instantiated:
                exp.instance = exp.descriptor.create()
                logger.debug("Service instantiated: %s", key)
            self._count("ok")
            return exp.instance

    def _ensure_owner(self, exp: Exposure) -> None:
        if self._registry is None:
            return
        handle = self._registry.get(exp.owner)
        if handle is None or handle.is_booted:
            return
        if self._loader is not None:
            self._loader.load_by_service(exp.owner, exp.service)
        if not handle.is_booted:
            self._count("unavailable")
            raise ServiceUnavailableError(exp.full_name, exp.owner, handle.state.value)

    def _count(self, status: str) -> None:
        if self._metrics is not None:
            self._metrics.inc("service_resolutions_total", {"status": status})

    # --- maintenance -----------------------------------------------------
    def has(self, full_name: str) -> bool:
        key = normalise(full_name)
        with self._lock:
            return key in self._public or key in self._linked

    def owner_of(self, full_name: str) -> Optional[str]:
        key = normalise(full_name)
        with self._lock:
            exp = self._public.get(key) or self._linked.get(key)
            return exp.owner if exp else None

    def names(self) -> List[str]:
        with self._lock:
            return list(self._public) + list(self._linked)

    def exposures(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [e.info() for e in [*self._public.values(), *self._linked.values()]]

    def invalidate(self, full_name: Optional[str] = None) -> int:
        """Drop cached instance(s); returns how many were dropped."""
        with self._lock:
            if full_name is None:
                targets = [*self._public.values(), *self._linked.values()]
            else:
                key = normalise(full_name)
                exp = self._public.get(key) or self._linked.get(key)
                targets = [exp] if exp else []
            dropped = 0
            for exp in targets:
                if exp.instantiated:
                    exp.instance = _UNSET
                    dropped += 1
            return dropped

    def unregister_module(self, module: str) -> List[str]:
        with self._lock:
            removed = [
                k for k, e in [*self._public.items(), *self._linked.items()]
                if e.owner == module
            ]
            for k in removed:
                self._public.pop(k, None)
                self._linked.pop(k, None)
        if removed:
            logger.info("Services of %s unregistered: %s", module, ", ".join(removed))
        return removed

    def clear(self) -> None:
        with self._lock:
            self._public.clear()
            self._linked.clear()


__all__ = ["ServiceRegistry", "Exposure", "normalise"]
