"""Module registry.

Responsibilities:
- Validate module descriptors (pydantic schema, capability flags)
- Keep name -> handle records in registration order
- Serialise / rehydrate descriptor sets (manifest cache)
"""
from __future__ import annotations

from .descriptor import (  # noqa: F401
    Access,
    Capability,
    DependencySpec,
    ModuleDescriptor,
    ServiceDescriptor,
    full_service_name,
)
from .manifest import (  # noqa: F401
    ManifestCache,
    build_manifest,
    descriptors_from_manifest,
)
from .registry import ModuleHandle, ModuleRegistry  # noqa: F401

__all__ = [
    "Access",
    "Capability",
    "DependencySpec",
    "ModuleDescriptor",
    "ServiceDescriptor",
    "full_service_name",
    "ManifestCache",
    "build_manifest",
    "descriptors_from_manifest",
    "ModuleHandle",
    "ModuleRegistry",
]
