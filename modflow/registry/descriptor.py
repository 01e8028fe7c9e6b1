"""Module descriptor schema (identity + declared contract of a module)."""
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from modflow.errors import ManifestError
from modflow.versioning import parse_constraint, parse_version

from .importing import import_path_of, is_import_path, resolve_hook

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_\-]*$")
_SERVICE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-.]*$")


class Capability(str, Enum):
    """Optional behaviours a module declares up front (no runtime probing)."""

    ROUTES = "routes"
    VIEWS = "views"
    CONFIG = "config"
    SERVICES = "services"


# capability -> descriptor field holding its claim
CLAIM_FIELDS: Dict[Capability, str] = {
    Capability.ROUTES: "route_prefix",
    Capability.VIEWS: "view_namespace",
    Capability.CONFIG: "config_key",
    Capability.SERVICES: "exposes",
}


class Access(str, Enum):
    PUBLIC = "public"
    LINKED = "linked"


def _check_hook(v: Any) -> Any:
    if v is None:
        return v
    if isinstance(v, str):
        if not is_import_path(v):
            raise ValueError(f"hook '{v}' must be 'pkg.module:attr'")
        return v
    if not callable(v):
        raise ValueError("hook must be callable or an import path")
    return v


def full_service_name(module: str, service: str) -> str:
    return f"{module.lower()}.{service}"


class ServiceDescriptor(BaseModel):
    factory: Any
    access: Access = Access.PUBLIC
    allowed_modules: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("factory")
    @classmethod
    def _factory_ref(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("factory is required")
        return _check_hook(v)

    @model_validator(mode="after")
    def _access_rules(self) -> "ServiceDescriptor":
        if self.access is Access.LINKED and not self.allowed_modules:
            raise ValueError("linked services need a non-empty allowed_modules")
        if self.access is Access.PUBLIC and self.allowed_modules:
            raise ValueError("public services cannot restrict allowed_modules")
        return self

    @classmethod
    def public(cls, factory: Any) -> "ServiceDescriptor":
        return cls(factory=factory)

    @classmethod
    def linked(cls, factory: Any, allowed: List[str] | Tuple[str, ...]) -> "ServiceDescriptor":
        return cls(factory=factory, access=Access.LINKED, allowed_modules=tuple(allowed))

    def create(self) -> Any:
        return resolve_hook(self.factory)()

    def allows(self, requester: Optional[str]) -> bool:
        if self.access is Access.PUBLIC:
            return True
        return requester is not None and requester in self.allowed_modules


class DependencySpec(BaseModel):
    name: str
    constraint: str = "*"
    optional: bool = False

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("name")
    @classmethod
    def _name_ok(cls, v: str) -> str:
        if not _NAME_RE.match(v or ""):
            raise ValueError(f"invalid dependency name '{v}'")
        return v

    @field_validator("constraint")
    @classmethod
    def _constraint_ok(cls, v: str) -> str:
        parse_constraint(v)
        return v.strip()


def _coerce_dependencies(raw: Any) -> List[Any]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        return [{"name": k, "constraint": v or "*"} for k, v in raw.items()]
    out: List[Any] = []
    for item in raw:
        if isinstance(item, str):
            name, _, constraint = item.partition(":")
            out.append({"name": name.strip(), "constraint": constraint.strip() or "*"})
        else:
            out.append(item)
    return out


class ModuleDescriptor(BaseModel):
    """Declared metadata of a module.

    Dependencies accept three shorthand forms besides full ``DependencySpec``
    items: ``["Auth"]``, ``["Auth:^1.0"]`` and ``{"Auth": "^1.0"}``.

    ``capabilities`` is derived from the claim fields when omitted and must
    agree with them when given explicitly.
    """

    name: str
    version: str = "1.0.0"
    description: str = ""
    author: str = ""
    dependencies: Tuple[DependencySpec, ...] = ()
    required: bool = False
    priority: int = 0
    enabled: bool = True
    capabilities: FrozenSet[Capability] = frozenset()
    route_prefix: Optional[str] = None
    view_namespace: Optional[str] = None
    config_key: Optional[str] = None
    exposes: Dict[str, ServiceDescriptor] = {}
    boot: Any = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _derive_capabilities(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("capabilities") is None:
            data = dict(data)
            data["capabilities"] = [
                cap.value for cap, fld in CLAIM_FIELDS.items() if data.get(fld)
            ]
        return data

    @field_validator("name")
    @classmethod
    def _name_ok(cls, v: str) -> str:
        if not _NAME_RE.match(v or ""):
            raise ValueError(
                f"module name '{v}' must start with a letter and contain only "
                "letters, digits, '_' or '-'"
            )
        return v

    @field_validator("version")
    @classmethod
    def _version_ok(cls, v: str) -> str:
        parse_version(v)
        return v.strip()

    @field_validator("dependencies", mode="before")
    @classmethod
    def _deps_shorthand(cls, v: Any) -> Any:
        return _coerce_dependencies(v)

    @field_validator("dependencies")
    @classmethod
    def _deps_unique(cls, v: Tuple[DependencySpec, ...]) -> Tuple[DependencySpec, ...]:
        seen: set[str] = set()
        for dep in v:
            if dep.name in seen:
                raise ValueError(f"duplicate dependency '{dep.name}'")
            seen.add(dep.name)
        return v

    @field_validator("route_prefix")
    @classmethod
    def _route_prefix(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().strip("/")
        return v or None

    @field_validator("exposes", mode="before")
    @classmethod
    def _exposes_shorthand(cls, v: Any) -> Any:
        if not v:
            return {}
        out = {}
        for name, desc in dict(v).items():
            if callable(desc) or isinstance(desc, str):
                desc = {"factory": desc}
            out[name] = desc
        return out

    @field_validator("exposes")
    @classmethod
    def _service_names(cls, v: Dict[str, ServiceDescriptor]) -> Dict[str, ServiceDescriptor]:
        for name in v:
            if not _SERVICE_RE.match(name):
                raise ValueError(f"invalid service name '{name}'")
        return v

    @field_validator("boot")
    @classmethod
    def _boot_hook(cls, v: Any) -> Any:
        return _check_hook(v)

    @model_validator(mode="after")
    def _capabilities_consistent(self) -> "ModuleDescriptor":
        for cap, fld in CLAIM_FIELDS.items():
            declared = cap in self.capabilities
            claimed = bool(getattr(self, fld))
            if declared and not claimed:
                raise ValueError(f"capability '{cap.value}' declared but '{fld}' is empty")
            if claimed and not declared:
                raise ValueError(f"'{fld}' set but capability '{cap.value}' not declared")
        return self

    # --- queries ---------------------------------------------------------
    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def depends_on(self, name: str) -> bool:
        return any(d.name == name for d in self.dependencies)

    def dependency(self, name: str) -> Optional[DependencySpec]:
        for d in self.dependencies:
            if d.name == name:
                return d
        return None

    def service_full_name(self, service: str) -> str:
        return full_service_name(self.name, service)

    def claims(self) -> Dict[str, List[str]]:
        """Conflict-domain claims keyed by domain name."""
        out: Dict[str, List[str]] = {}
        if self.has(Capability.ROUTES):
            out["routes"] = [self.route_prefix]  # type: ignore[list-item]
        if self.has(Capability.VIEWS):
            out["views"] = [self.view_namespace]  # type: ignore[list-item]
        if self.has(Capability.CONFIG):
            out["config"] = [self.config_key]  # type: ignore[list-item]
        if self.has(Capability.SERVICES):
            out["services"] = [self.service_full_name(s) for s in self.exposes]
        return out

    def create_instance(self) -> Any:
        if self.boot is None:
            return None
        return resolve_hook(self.boot)()

    # --- manifest --------------------------------------------------------
    def to_manifest(self) -> Dict[str, Any]:
        def ref(hook: Any, what: str) -> Optional[str]:
            if hook is None:
                return None
            path = import_path_of(hook)
            if path is None:
                raise ManifestError(
                    f"Module '{self.name}': {what} {hook!r} is not importable "
                    "by path and cannot be cached",
                    context={"module": self.name},
                )
            return path

        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "dependencies": [d.model_dump() for d in self.dependencies],
            "required": self.required,
            "priority": self.priority,
            "enabled": self.enabled,
            "capabilities": sorted(c.value for c in self.capabilities),
            "route_prefix": self.route_prefix,
            "view_namespace": self.view_namespace,
            "config_key": self.config_key,
            "exposes": {
                name: {
                    "factory": ref(svc.factory, f"service '{name}' factory"),
                    "access": svc.access.value,
                    "allowed_modules": list(svc.allowed_modules),
                }
                for name, svc in self.exposes.items()
            },
            "boot": ref(self.boot, "boot hook"),
        }
