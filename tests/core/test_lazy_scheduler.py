from modflow.config.schemas.engine import LazyLoadConfig
from modflow.conflicts import ConflictDetector
from modflow.eventbus import EventBus
from modflow.lifecycle import ModuleState
from modflow.modules import Booter, LazyLoadScheduler, TriggerKind
from modflow.registry import ModuleRegistry


def boom():
    raise RuntimeError("no db")


MODULES = [
    {"name": "Core", "boot": dict},
    {"name": "Blog", "route_prefix": "blog", "dependencies": ["Core"], "boot": list},
    {"name": "Shop", "route_prefix": "/shop/"},
    {"name": "ShopAdmin", "route_prefix": "shop/admin"},
    {"name": "Profile"},
]


def _scheduler(modules=MODULES, **cfg):
    cfg.setdefault("enabled", True)
    cfg.setdefault("eager", ["Core"])
    bus = EventBus()
    reg = ModuleRegistry(bus, bus.metrics)
    for spec in modules:
        reg.register(spec)
    booter = Booter(reg, bus=bus, metrics=bus.metrics)
    sched = LazyLoadScheduler(reg, booter, LazyLoadConfig(**cfg), bus, bus.metrics)
    return sched, reg, bus


def test_partition():
    sched, _, _ = _scheduler()
    assert not sched.is_lazy_loadable("Core")
    assert sched.is_deferred("Blog")
    sched, _, _ = _scheduler(lazy=["Blog"])
    assert sched.is_deferred("Blog")
    assert not sched.is_deferred("Shop")
    sched, _, _ = _scheduler(enabled=False)
    assert not sched.is_deferred("Blog")


def test_load_eager_skips_deferred_modules():
    sched, reg, _ = _scheduler()
    booted = sched.load_eager()
    assert [h.name for h in booted] == ["Core"]
    assert reg.require("Blog").state is ModuleState.REGISTERED
    assert sched.pending() == ["Blog", "Shop", "ShopAdmin", "Profile"]
    assert sched.loaded() == []


def test_route_trigger_boots_deferred_module_once():
    sched, reg, bus = _scheduler()
    lazy = []
    bus.subscribe("module.lazy_loaded", lazy.append)
    handle = sched.load_by_route("/blog/posts/7?draft=1")
    assert handle is reg.require("Blog")
    assert handle.is_booted and handle.trigger == "route"
    assert reg.require("Core").is_booted  # dependency came along
    assert sched.load_by_route("/blog") is handle
    assert len(lazy) == 1
    assert lazy[0]["detail"] == "/blog/posts/7"
    assert bus.metrics.counter("lazy_loads_total", {"trigger": "route"}) == 1
    assert sched.statistics()["loads_by_trigger"] == {"route": 1}


def test_route_matching_on_segment_boundaries():
    sched, _, _ = _scheduler()
    assert sched.match_route("/blogger") is None
    assert sched.match_route("blog") == "Blog"
    assert sched.match_route("/shop/cart") == "Shop"
    assert sched.match_route("/shop/admin/users") == "ShopAdmin"
    assert sched.match_route("/shop/administrator") == "Shop"
    assert sched.match_route("/") is None
    assert sched.load_by_route("/unknown") is None


def test_route_map_tracks_registry_changes():
    sched, reg, _ = _scheduler()
    assert "news" not in sched.route_map()
    reg.register({"name": "News", "route_prefix": "news"})
    assert sched.route_map()["news"] == "News"
    reg.set_enabled("News", False)
    assert "news" not in sched.route_map()


def test_route_map_keeps_policy_winner_only():
    modules = [
        {"name": "Blog", "route_prefix": "blog"},
        {"name": "BlogV2", "route_prefix": "blog"},
    ]
    sched, reg, _ = _scheduler(modules, eager=[])
    det = ConflictDetector()
    sched.set_outcome(det.apply_policy(det.detect(reg), {"routes": "override"}))
    assert sched.route_map() == {"blog": "BlogV2"}
    assert sched.load_by_route("/blog").name == "BlogV2"
    assert not reg.require("Blog").is_booted


def test_disabled_strategy_returns_none():
    sched, reg, _ = _scheduler(strategies={"route": False, "command": False})
    assert sched.load_by_route("/blog") is None
    assert sched.load_by_command("Profile", "profile:sync") is None
    assert not reg.require("Blog").is_booted
    assert sched.load_by_service("Profile", "card").trigger == "service"
    assert sched.load_by_event("Shop", "order.placed").trigger == "event"


def test_load_not_applicable_returns_none():
    sched, reg, _ = _scheduler()
    assert sched.load("Core") is None  # eager
    sched.load_eager()
    assert sched.load("Core") is None  # eager, already booted
    reg.set_enabled("Profile", False)
    assert sched.load("Profile") is None


def test_failed_lazy_load_returns_failed_handle_and_is_not_counted():
    modules = [{"name": "Reports", "route_prefix": "reports", "boot": boom}]
    sched, _, bus = _scheduler(modules, eager=[])
    handle = sched.load_by_route("/reports")
    assert handle.state is ModuleState.FAILED
    assert bus.metrics.counter("lazy_loads_total", {"trigger": "route"}) == 0
    assert sched.pending() == ["Reports"]


def test_preload_by_route_pattern_and_role():
    sched, reg, _ = _scheduler(
        preload={
            "routes": {r"^/checkout": ["Shop"], r"^/admin": ["ShopAdmin", "Ghost"]},
            "roles": {"editor": ["Blog", "Profile"]},
        }
    )
    out = sched.preload(route="/checkout/step-1", role="editor")
    assert [h.name for h in out] == ["Shop", "Blog", "Profile"]
    assert reg.require("Shop").trigger == "preload"
    assert not reg.require("ShopAdmin").is_booted
    # unknown module names in config are skipped
    assert [h.name for h in sched.preload(route="/admin")] == ["ShopAdmin"]


def test_bound_events_trigger_loads():
    sched, reg, bus = _scheduler(events={"user.login": ["Profile", "Ghost"]})
    assert sched.bind_events(bus) == 1
    bus.emit("user.login", {"user": 1})
    assert reg.require("Profile").is_booted
    assert reg.require("Profile").trigger == "event"
    sched.unbind_events()
    assert not bus.has_listeners("user.login")


def test_warm_up_loads_all_pending():
    sched, reg, _ = _scheduler()
    sched.load_eager()
    loaded = sched.warm_up()
    assert [h.name for h in loaded] == ["Blog", "Shop", "ShopAdmin", "Profile"]
    assert sched.pending() == []
    assert all(h.trigger == "warmup" for h in loaded)
    assert sched.warm_up() == []


def test_manual_load_records_trigger():
    sched, reg, _ = _scheduler()
    assert sched.load("Profile", TriggerKind.COMMAND, detail="cli").trigger == "command"


def test_statistics_shape():
    sched, _, _ = _scheduler()
    sched.load_eager()
    stats = sched.statistics()
    assert stats["enabled"] is True
    assert stats["total_modules"] == 5
    assert stats["eager_modules"] == 1
    assert stats["pending_modules"] == 4 and stats["loaded_modules"] == 0
    assert stats["route_map"] == {"blog": "Blog", "shop": "Shop", "shop/admin": "ShopAdmin"}
    assert stats["strategies"]["route"] is True
