"""Build the internal import graph of a package (architecture guardrail).

Parses every ``.py`` file under ``root`` with ``ast`` and collects edges
between package-internal modules (absolute and relative imports, including
those under ``TYPE_CHECKING``). Used in tests to enforce:
  - No import cycles.
  - No forbidden edges (layering rules).

Cycle search reuses the dependency resolver's explicit-stack walk so the
reported cycle is deterministic (sorted module order).
"""
from __future__ import annotations

import ast
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from modflow.resolver.graph import find_cycle


def _module_name(py: Path, root: Path, package: str) -> Tuple[str, bool]:
    rel = py.relative_to(root).with_suffix("")
    parts = [package, *rel.parts]
    is_pkg = parts[-1] == "__init__"
    if is_pkg:
        parts = parts[:-1]
    return ".".join(parts), is_pkg


def _resolve_relative(current: str, is_pkg: bool, level: int, module: Optional[str]) -> str:
    base = current.split(".")
    if not is_pkg:
        base = base[:-1]
    if level > 1:
        base = base[: len(base) - (level - 1)]
    if module:
        base = base + module.split(".")
    return ".".join(base)


def build_import_graph(
    root: str | Path = "modflow", package: str | None = None
) -> Dict[str, Set[str]]:
    root_path = Path(root)
    package = package or root_path.name
    edges: Dict[str, Set[str]] = {}
    for py in sorted(root_path.rglob("*.py")):
        if "__pycache__" in py.parts:
            continue
        src, is_pkg = _module_name(py, root_path, package)
        edges.setdefault(src, set())
        try:
            tree = ast.parse(py.read_text(encoding="utf-8"))
        except SyntaxError:
            continue
        for node in ast.walk(tree):
            targets: List[str] = []
            if isinstance(node, ast.Import):
                targets = [n.name for n in node.names]
            elif isinstance(node, ast.ImportFrom):
                if node.level:
                    base = _resolve_relative(src, is_pkg, node.level, node.module)
                    if node.module:
                        targets = [base]
                    else:  # from . import x
                        targets = [f"{base}.{n.name}" for n in node.names]
                elif node.module:
                    targets = [node.module]
            for tgt in targets:
                if tgt == package or tgt.startswith(package + "."):
                    if tgt != src:
                        edges[src].add(tgt)
    for n in list(edges.keys()):
        for dst in edges[n]:
            edges.setdefault(dst, set())
    return edges


def detect_cycles(graph: Dict[str, Set[str]]) -> List[List[str]]:
    """First import cycle (as a one-element list) or ``[]``."""
    adjacency = {n: sorted(deps) for n, deps in sorted(graph.items())}
    cycle = find_cycle(adjacency)
    return [cycle] if cycle else []


def forbidden_edges(
    graph: Dict[str, Set[str]], rules: List[Tuple[str, str]]
) -> List[Tuple[str, str]]:
    found: List[Tuple[str, str]] = []
    for src, targets in sorted(graph.items()):
        for dst in sorted(targets):
            for a, b in rules:
                if src.startswith(a) and dst.startswith(b):
                    found.append((src, dst))
    return found


__all__ = [
    "build_import_graph",
    "detect_cycles",
    "forbidden_edges",
]
