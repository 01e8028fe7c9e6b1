"""Central error taxonomy and exception hierarchy.

Every engine error carries an ``error_type`` code from a closed taxonomy so
hosts can log / reject on stable identifiers instead of class names.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence

_ALLOWED_ERROR_TYPES = {
    # versioning
    "malformed-version",
    "malformed-constraint",
    # resolution
    "dependency-not-found",
    "circular-dependency",
    "version-constraint",
    # lifecycle
    "invalid-transition",
    "module-not-found",
    "boot-failed",
    # conflicts
    "conflict",
    "duplicate-module",
    # services
    "service-not-found",
    "service-unavailable",
    "service-access-denied",
    # infra
    "config-invalid",
    "config-out-of-range",
    "manifest-invalid",
    "event-handler-error",
    "internal",
}


def validate_error_type(code: str) -> str:
    assert (
        code in _ALLOWED_ERROR_TYPES
    ), f"Unknown error_type '{code}' (not in taxonomy)"
    return code


class ModFlowError(Exception):
    """Base exception for the orchestration engine."""

    error_type = "internal"

    def __init__(
        self, message: str = "", *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(message)
        self.context: Dict[str, Any] = dict(context or {})

    def to_json_error(self) -> Dict[str, Any]:
        return {
            "message": str(self),
            "code": validate_error_type(self.error_type),
            "context": self.context,
        }


class MalformedVersionError(ModFlowError, ValueError):
    error_type = "malformed-version"

    def __init__(self, version: str) -> None:
        super().__init__(
            f"Invalid version '{version}': expected "
            "MAJOR.MINOR.PATCH[-prerelease][+build]",
            context={"version": version},
        )
        self.version = version


class MalformedConstraintError(ModFlowError, ValueError):
    error_type = "malformed-constraint"

    def __init__(self, constraint: str, detail: str = "") -> None:
        msg = f"Invalid version constraint '{constraint}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg, context={"constraint": constraint})
        self.constraint = constraint


class DependencyNotFoundError(ModFlowError):
    """A required module depends on a module that is absent or disabled.

    ``missing`` lists every hard failure found in the validation pass; the
    message describes all of them.
    """

    error_type = "dependency-not-found"

    def __init__(self, missing: Sequence[Any]) -> None:
        lines = []
        for m in missing:
            line = (
                f"Module '{m.module}' depends on '{m.dependency}' "
                f"which is {m.reason}"
            )
            if m.suggestion:
                line += f" (did you mean '{m.suggestion}'?)"
            lines.append(line)
        super().__init__(
            "; ".join(lines),
            context={
                "missing": [
                    {"module": m.module, "dependency": m.dependency}
                    for m in missing
                ]
            },
        )
        self.missing = list(missing)


class CircularDependencyError(ModFlowError):
    error_type = "circular-dependency"

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(
            "Circular dependency detected: " + " -> ".join(self.cycle),
            context={"cycle": self.cycle},
        )


class VersionConstraintError(ModFlowError):
    """Dependency edge whose target version does not satisfy the constraint.

    Resolution reports every violated edge at once: the raised error carries
    its own fields (first violation) plus ``violations`` with all of them.
    """

    error_type = "version-constraint"

    def __init__(
        self,
        module: str,
        dependency: str,
        constraint: str,
        actual: str,
    ) -> None:
        super().__init__(
            f"Module '{module}' requires '{dependency}' {constraint} "
            f"but installed version is {actual}",
            context={
                "module": module,
                "dependency": dependency,
                "constraint": constraint,
                "actual": actual,
            },
        )
        self.module = module
        self.dependency = dependency
        self.constraint = constraint
        self.actual = actual
        self.violations: list[VersionConstraintError] = [self]

    @classmethod
    def aggregate(
        cls, violations: Sequence["VersionConstraintError"]
    ) -> "VersionConstraintError":
        first = violations[0]
        err = cls(first.module, first.dependency, first.constraint, first.actual)
        err.violations = list(violations)
        if len(violations) > 1:
            err.args = (
                "; ".join(str(v) for v in violations),
            )
        return err


class InvalidTransitionError(ModFlowError):
    error_type = "invalid-transition"

    def __init__(self, module: str, from_state: Any, to_state: Any) -> None:
        f = getattr(from_state, "value", from_state)
        t = getattr(to_state, "value", to_state)
        super().__init__(
            f"Invalid state transition from {f} to {t} for module {module}",
            context={"module": module, "from": f, "to": t},
        )
        self.module = module
        self.from_state = from_state
        self.to_state = to_state


class ModuleNotFoundError(ModFlowError, KeyError):  # noqa: A001
    error_type = "module-not-found"

    def __init__(self, name: str, suggestion: str | None = None) -> None:
        msg = f"Module '{name}' is not registered"
        if suggestion:
            msg += f" (did you mean '{suggestion}'?)"
        ModFlowError.__init__(self, msg, context={"module": name})
        self.name = name
        self.suggestion = suggestion

    def __str__(self) -> str:  # KeyError repr-quotes its arg otherwise
        return self.args[0]


class ModuleBootError(ModFlowError, RuntimeError):
    error_type = "boot-failed"

    def __init__(self, module: str, message: str) -> None:
        super().__init__(
            f"Failed to boot module {module}: {message}",
            context={"module": module},
        )
        self.module = module


class ConflictError(ModFlowError):
    error_type = "conflict"

    def __init__(self, domain: str, key: str, modules: Sequence[str]) -> None:
        self.domain = domain
        self.key = key
        self.modules = list(modules)
        super().__init__(
            f"Conflict in {domain}: '{key}' claimed by modules "
            + ", ".join(self.modules),
            context={"domain": domain, "key": key, "modules": self.modules},
        )


class DuplicateModuleError(ConflictError):
    error_type = "duplicate-module"

    def __init__(self, name: str) -> None:
        super().__init__("modules", name, [name, name])


class ServiceNotFoundError(ModFlowError, LookupError):
    error_type = "service-not-found"

    def __init__(
        self,
        service: str,
        suggestion: str | None = None,
        message: str | None = None,
    ) -> None:
        msg = message or f"Service '{service}' not found"
        if suggestion:
            msg += f" (did you mean '{suggestion}'?)"
        super().__init__(msg, context={"service": service})
        self.service = service
        self.suggestion = suggestion


class ServiceUnavailableError(ServiceNotFoundError):
    """Service is declared but its owner module could not be booted."""

    error_type = "service-unavailable"

    def __init__(self, service: str, owner: str, state: str) -> None:
        super().__init__(
            service,
            message=(
                f"Service '{service}' is unavailable: owner module "
                f"'{owner}' is {state}"
            ),
        )
        self.owner = owner
        self.state = state


class ServiceAccessDeniedError(ModFlowError, PermissionError):
    error_type = "service-access-denied"

    def __init__(self, service: str, requester: str | None) -> None:
        who = requester if requester is not None else "<anonymous>"
        super().__init__(
            f"Service '{service}' is not accessible from module {who}",
            context={"service": service, "requester": requester},
        )
        self.service = service
        self.requester = requester


class ManifestError(ModFlowError, ValueError):
    error_type = "manifest-invalid"


class ConfigError(ModFlowError):
    error_type = "config-invalid"


def map_exception(e: BaseException, phase: str) -> str:
    """Map an arbitrary exception to a taxonomy code for fault records."""
    if isinstance(e, ModFlowError):
        return e.error_type
    name = e.__class__.__name__.lower()
    msg = str(e).lower()
    if phase == "boot":
        return "boot-failed"
    if phase == "service":
        if "denied" in msg or "permission" in name:
            return "service-access-denied"
        return "service-not-found"
    if phase == "config":
        return "config-invalid"
    return "internal"


__all__ = [
    "validate_error_type",
    "map_exception",
    "ModFlowError",
    "MalformedVersionError",
    "MalformedConstraintError",
    "DependencyNotFoundError",
    "CircularDependencyError",
    "VersionConstraintError",
    "InvalidTransitionError",
    "ModuleNotFoundError",
    "ModuleBootError",
    "ConflictError",
    "DuplicateModuleError",
    "ServiceNotFoundError",
    "ServiceUnavailableError",
    "ServiceAccessDeniedError",
    "ManifestError",
    "ConfigError",
]
