from pathlib import Path

import modflow
from modflow.dev.import_graph import (
    build_import_graph,
    detect_cycles,
    forbidden_edges,
)

PKG_ROOT = Path(modflow.__file__).resolve().parent

# Layering:
#   errors/metrics/suggest/versioning/events -> foundation (import nothing above)
#   registry/lifecycle/resolver/conflicts/services -> engine components
#   modules -> orchestrator; components must not import it.
#   http -> outermost adapter; nothing inside the engine imports it.


def test_import_graph_no_cycles_and_forbidden_edges():
    graph = build_import_graph(PKG_ROOT)
    cycles = detect_cycles(graph)
    assert not cycles, f"Import cycles detected: {cycles}"
    foundation = [
        "modflow.errors",
        "modflow.metrics",
        "modflow.suggest",
        "modflow.versioning",
        "modflow.events",
    ]
    upper = [
        "modflow.registry",
        "modflow.resolver",
        "modflow.conflicts",
        "modflow.services",
        "modflow.modules",
        "modflow.http",
    ]
    rules = [(low, up) for low in foundation for up in upper]
    rules += [
        (component, "modflow.modules")
        for component in (
            "modflow.registry",
            "modflow.lifecycle",
            "modflow.resolver",
            "modflow.conflicts",
            "modflow.services",
            "modflow.config",
        )
    ]
    bad = forbidden_edges(graph, rules)
    assert not bad, f"Forbidden import edges: {bad}"
    http_importers = [
        src for src, targets in graph.items()
        if any(t.startswith("modflow.http") for t in targets)
        and not src.startswith("modflow.http")
    ]
    assert not http_importers


def test_relative_imports_resolved():
    graph = build_import_graph(PKG_ROOT)
    assert "modflow.modules.booter" in graph["modflow.modules.scheduler"]
    assert "modflow.resolver.graph" in graph["modflow.resolver"]


def test_cycle_reported(tmp_path):
    pkg = tmp_path / "pkg"
    pkg.mkdir()
    (pkg / "__init__.py").write_text("", encoding="utf-8")
    (pkg / "a.py").write_text("import pkg.b\n", encoding="utf-8")
    (pkg / "b.py").write_text("from . import c\n", encoding="utf-8")
    (pkg / "c.py").write_text("import pkg.a\nimport os\n", encoding="utf-8")
    graph = build_import_graph(pkg)
    assert graph["pkg.c"] == {"pkg.a"}
    assert detect_cycles(graph) == [["pkg.a", "pkg.b", "pkg.c", "pkg.a"]]
