from modflow.metrics import Metrics
from modflow.modules import ModuleManager


def test_metrics_snapshot_counters_and_histograms():
    m = Metrics()
    m.inc("lazy_loads_total", {"trigger": "route"})
    m.inc("lazy_loads_total", {"trigger": "route"}, 2)
    for v in (5, 1, 9):
        m.observe("module_boot_ms", v, {"module": "Blog"})
    snap = m.snapshot()
    assert snap["counters"]["lazy_loads_total{trigger=route}"] == 3
    hist = snap["histograms"]["module_boot_ms{module=Blog}"]
    assert hist == {"count": 3, "min": 1, "max": 9, "p50": 5, "last": 9}
    m.reset()
    assert m.snapshot()["counters"] == {}


def test_labels_are_order_insensitive():
    m = Metrics()
    m.inc("conflicts_total", {"policy": "warning", "domain": "routes"})
    assert m.counter("conflicts_total", {"domain": "routes", "policy": "warning"}) == 1
    assert "conflicts_total{domain=routes,policy=warning}" in m.snapshot()["counters"]


def test_managers_own_separate_metrics():
    a, b = ModuleManager(), ModuleManager()
    a.bootstrap([{"name": "Core"}])
    a.get("Core")
    assert a.metrics.counter("modules_registered_total") == 1
    assert b.metrics.counter("modules_registered_total") == 0
    assert a.metrics.counter("module_boot_total", {"module": "Core", "status": "ok"}) == 1
