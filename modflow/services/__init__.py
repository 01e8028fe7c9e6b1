"""Service exposure registry."""
from __future__ import annotations

from .registry import Exposure, ServiceRegistry, normalise  # noqa: F401

__all__ = ["Exposure", "ServiceRegistry", "normalise"]
