"""modflow: module orchestration engine.

Public entry points:
    ModuleManager      composition root (register, bootstrap, lookups)
    ModuleDescriptor   declared module contract (pydantic)
    ServiceDescriptor  public / linked service declaration
    EngineConfig       engine configuration (pydantic; yaml + env loader)

Components live in subpackages: versioning, registry, resolver, lifecycle,
conflicts, services, modules (booter / scheduler / manager), config, http.
"""
from __future__ import annotations

from modflow.config import EngineConfig, get_config, load_config  # noqa: F401
from modflow.lifecycle import ModuleState  # noqa: F401
from modflow.modules import BootReport, ModuleManager, TriggerKind  # noqa: F401
from modflow.registry import ModuleDescriptor, ServiceDescriptor  # noqa: F401
from modflow.versioning import bump, is_stable, satisfies  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "get_config",
    "load_config",
    "ModuleState",
    "BootReport",
    "ModuleManager",
    "TriggerKind",
    "ModuleDescriptor",
    "ServiceDescriptor",
    "bump",
    "is_stable",
    "satisfies",
    "__version__",
]
