"""Dependency resolver (graph validation, cycle detection, boot order)."""
from __future__ import annotations

from .graph import find_cycle, reverse_edges, topological_order  # noqa: F401
from .resolver import DependencyResolver, MissingDependency  # noqa: F401

__all__ = [
    "DependencyResolver",
    "MissingDependency",
    "find_cycle",
    "reverse_edges",
    "topological_order",
]
