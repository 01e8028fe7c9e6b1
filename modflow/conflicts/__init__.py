"""Conflict detection (routes / views / config / services) and policy."""
from __future__ import annotations

from .detector import (  # noqa: F401
    DEFAULT_POLICY,
    DOMAINS,
    ConflictDetector,
    ConflictPolicy,
    ConflictRecord,
    PolicyOutcome,
)

__all__ = [
    "DEFAULT_POLICY",
    "DOMAINS",
    "ConflictDetector",
    "ConflictPolicy",
    "ConflictRecord",
    "PolicyOutcome",
]
