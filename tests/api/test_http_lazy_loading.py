from fastapi import Request
from fastapi.testclient import TestClient

from modflow.config import EngineConfig
from modflow.http import create_app
from modflow.lifecycle import ModuleState
from modflow.modules import ModuleManager


def payments_down():
    raise RuntimeError("gateway offline")


def _manager():
    cfg = EngineConfig(lazy_load={"enabled": True, "eager": ["Core"]})
    mm = ModuleManager(cfg)
    mm.bootstrap(
        [
            {"name": "Core", "boot": dict},
            {"name": "Blog", "route_prefix": "blog", "dependencies": ["Core"]},
            {"name": "News", "route_prefix": "blog"},
            {"name": "Payments", "route_prefix": "pay", "required": True, "boot": payments_down},
        ]
    )
    return mm


def _client(mm):
    app = create_app(mm)

    @app.get("/blog/{slug}")
    def post(slug: str, request: Request):
        return {"slug": slug, "module": getattr(request.state, "modflow_module", None)}

    return TestClient(app)


def test_api_health_ok():
    mm = _manager()
    r = _client(mm).get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "modules": 4}


def test_request_lazy_loads_route_owner():
    mm = _manager()
    client = _client(mm)
    assert mm.state("Blog") is ModuleState.REGISTERED
    r = client.get("/blog/hello")
    assert r.status_code == 200
    assert r.json() == {"slug": "hello", "module": "Blog"}
    assert mm.state("Blog") is ModuleState.BOOTED
    assert mm.handle("Blog").trigger == "route"
    assert mm.state("News") is ModuleState.REGISTERED  # lost the route claim
    assert "route_lazy_load_ms{module=Blog}" in mm.metrics.snapshot()["histograms"]


def test_unmatched_path_passes_through():
    mm = _manager()
    r = _client(mm).get("/nothing-here")
    assert r.status_code == 404
    assert mm.scheduler.loaded() == []


def test_required_lazy_module_failure_returns_503():
    mm = _manager()
    r = _client(mm).get("/pay/checkout")
    assert r.status_code == 503
    body = r.json()
    assert body["code"] == "boot-failed"
    assert body["context"] == {"module": "Payments"}
    assert mm.state("Payments") is ModuleState.FAILED


def test_status_endpoints():
    mm = _manager()
    client = _client(mm)
    client.get("/blog/x")

    data = client.get("/_modflow/modules").json()
    assert data["boot_order"] == ["Core", "Blog", "News", "Payments"]
    states = {m["name"]: m["state"] for m in data["modules"]}
    assert states == {
        "Core": "booted",
        "Blog": "booted",
        "News": "registered",
        "Payments": "registered",
    }

    blog = client.get("/_modflow/modules/Blog").json()
    assert [h["state"] for h in blog["history"]] == [
        "registered",
        "preloaded",
        "booting",
        "booted",
    ]
    assert blog["trigger"] == "route"

    r = client.get("/_modflow/modules/Blgo")
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "module-not-found"

    conflicts = client.get("/_modflow/conflicts").json()
    assert conflicts["records"] == [
        {"domain": "routes", "key": "blog", "modules": ["Blog", "News"], "winner": "Blog"}
    ]
    assert conflicts["by_policy"] == {"warning": 1}

    stats = client.get("/_modflow/lazy-load/stats").json()
    assert stats["loads_by_trigger"] == {"route": 1}
    assert stats["route_map"] == {"blog": "Blog", "pay": "Payments"}
    assert stats["pending_list"] == ["News", "Payments"]
