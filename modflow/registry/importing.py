"""Hook references: callables or ``"pkg.module:attr"`` import paths.

Import paths keep descriptors serialisable (manifest cache) and let heavy
module code be imported only when the hook actually runs.
"""
from __future__ import annotations

import importlib
import re
from typing import Any, Callable, Optional

_PATH_RE = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_][\w.]*$")


def is_import_path(value: str) -> bool:
    return bool(_PATH_RE.match(value))


def import_string(path: str) -> Any:
    if not is_import_path(path):
        raise ValueError(f"Invalid import path '{path}' (expected 'pkg.mod:attr')")
    mod_name, attr_path = path.split(":", 1)
    obj: Any = importlib.import_module(mod_name)
    for part in attr_path.split("."):
        obj = getattr(obj, part)
    return obj


def import_path_of(obj: Any) -> Optional[str]:
    """Reverse of ``import_string`` when ``obj`` is reachable by name."""
    if isinstance(obj, str):
        return obj if is_import_path(obj) else None
    mod = getattr(obj, "__module__", None)
    qual = getattr(obj, "__qualname__", None)
    if not mod or not qual or "<" in qual:
        return None
    path = f"{mod}:{qual}"
    try:
        if import_string(path) is not obj:
            return None
    except (ImportError, AttributeError, ValueError):
        return None
    return path


def resolve_hook(hook: Any) -> Callable[[], Any]:
    target = import_string(hook) if isinstance(hook, str) else hook
    if not callable(target):
        raise TypeError(f"Hook {hook!r} is not callable")
    return target


__all__ = ["import_string", "import_path_of", "is_import_path", "resolve_hook"]
