"""Dependency resolver: validation, cycle detection, boot order, version checks.

The graph is derived on every call from the registry's *enabled* modules;
nothing is cached, so enable/disable toggles and late registrations are
always reflected.

Order of checks in ``resolve``:
    1. validate()        missing / disabled dependencies (hard for required)
    2. find_cycle()      first cycle in registration order -> abort
    3. check_versions()  every violated edge collected, raised once
    4. topological order (postorder DFS, priority tie-break)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from modflow.errors import (
    CircularDependencyError,
    DependencyNotFoundError,
    VersionConstraintError,
)
from modflow.registry import ModuleRegistry
from modflow.suggest import closest
from modflow.versioning import parse_constraint

from .graph import depths, find_cycle, reverse_edges, topological_order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MissingDependency:
    module: str
    dependency: str
    constraint: str
    reason: str  # missing | disabled
    optional: bool = False
    required_module: bool = False
    suggestion: Optional[str] = None

    @property
    def hard(self) -> bool:
        """Aborts resolution (required module, non-optional dependency)."""
        return self.required_module and not self.optional

    def describe(self) -> str:
        msg = f"Module '{self.module}' depends on '{self.dependency}' which is {self.reason}"
        if self.suggestion:
            msg += f" (did you mean '{self.suggestion}'?)"
        return msg


class DependencyResolver:
    def __init__(self, priority_boot: bool = True) -> None:
        self.priority_boot = priority_boot

    # --- graph -----------------------------------------------------------
    def graph(self, registry: ModuleRegistry) -> Dict[str, List[str]]:
        """``module -> [present enabled dependency, ...]`` in declaration order."""
        enabled = {h.name for h in registry.enabled_handles()}
        return {
            h.name: [d.name for d in h.descriptor.dependencies if d.name in enabled]
            for h in registry.enabled_handles()
        }

    def _order_key(self, registry: ModuleRegistry):
        def key(name: str):
            handle = registry.require(name)
            if self.priority_boot:
                return (-handle.descriptor.priority, handle.index)
            return (handle.index,)

        return key

    # --- passes ----------------------------------------------------------
    def validate(self, registry: ModuleRegistry) -> List[MissingDependency]:
        """Return soft misses; raise ``DependencyNotFoundError`` on hard ones."""
        out: List[MissingDependency] = []
        known = registry.names()
        for handle in registry.enabled_handles():
            desc = handle.descriptor
            for dep in desc.dependencies:
                target = registry.get(dep.name)
                if target is not None and target.enabled:
                    continue
                reason = "missing" if target is None else "disabled"
                out.append(
                    MissingDependency(
                        module=desc.name,
                        dependency=dep.name,
                        constraint=dep.constraint,
                        reason=reason,
                        optional=dep.optional,
                        required_module=desc.required,
                        suggestion=closest(dep.name, known) if target is None else None,
                    )
                )
        hard = [m for m in out if m.hard]
        if hard:
            raise DependencyNotFoundError(hard)
        for m in out:
            logger.warning("%s; continuing without it", m.describe())
        return out

    def find_cycle(self, registry: ModuleRegistry) -> Optional[List[str]]:
        graph = self.graph(registry)
        return find_cycle(graph, order=[h.name for h in registry.enabled_handles()])

    def check_versions(self, registry: ModuleRegistry) -> List[VersionConstraintError]:
        """Every edge whose present target violates its constraint."""
        violations: List[VersionConstraintError] = []
        for handle in registry.enabled_handles():
            for dep in handle.descriptor.dependencies:
                target = registry.get(dep.name)
                if target is None or not target.enabled:
                    continue
                constraint = parse_constraint(dep.constraint)
                if constraint.is_any:
                    continue
                if not constraint.allows(target.descriptor.version):
                    violations.append(
                        VersionConstraintError(
                            handle.name,
                            dep.name,
                            dep.constraint,
                            target.descriptor.version,
                        )
                    )
        return violations

    def resolve(self, registry: ModuleRegistry) -> List[str]:
        """Deterministic boot order of enabled modules.

        Raises ``DependencyNotFoundError``, ``CircularDependencyError`` or an
        aggregated ``VersionConstraintError``; no partial order is returned.
        """
        self.validate(registry)
        return self.order(registry)

    def order(self, registry: ModuleRegistry) -> List[str]:
        """``resolve`` without the validation pass (caller already ran it)."""
        cycle = self.find_cycle(registry)
        if cycle:
            raise CircularDependencyError(cycle)
        violations = self.check_versions(registry)
        if violations:
            raise VersionConstraintError.aggregate(violations)
        order = topological_order(self.graph(registry), key=self._order_key(registry))
        logger.debug("Resolved boot order: %s", " -> ".join(order))
        return order

    # --- introspection ---------------------------------------------------
    def dependents(self, registry: ModuleRegistry, name: str) -> List[str]:
        registry.require(name)
        return reverse_edges(self.graph(registry)).get(name, [])

    def dependency_tree(self, registry: ModuleRegistry) -> Dict[str, Dict[str, Any]]:
        graph = self.graph(registry)
        rev = reverse_edges(graph)
        depth = depths(graph)
        return {
            name: {
                "dependencies": list(deps),
                "dependents": rev[name],
                "depth": depth.get(name, 0),
            }
            for name, deps in graph.items()
        }


__all__ = ["DependencyResolver", "MissingDependency"]
