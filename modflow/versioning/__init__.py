"""Version Matcher: semver parsing, constraints, bump and stability checks."""
from __future__ import annotations

from .matcher import (  # noqa: F401
    Comparator,
    Constraint,
    Version,
    bump,
    compare,
    is_stable,
    max_satisfying,
    parse_constraint,
    parse_version,
    satisfies,
)

__all__ = [
    "Comparator",
    "Constraint",
    "Version",
    "bump",
    "compare",
    "is_stable",
    "max_satisfying",
    "parse_constraint",
    "parse_version",
    "satisfies",
]
