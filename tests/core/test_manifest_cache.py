import json
import os
import time

import pytest

from modflow.config import EngineConfig
from modflow.errors import ManifestError
from modflow.modules import ModuleManager
from modflow.registry import (
    ManifestCache,
    ModuleDescriptor,
    ServiceDescriptor,
    build_manifest,
    descriptors_from_manifest,
)


def make_cart():
    return {"items": []}


def _descriptors():
    return [
        ModuleDescriptor(name="Core", version="1.2.0", required=True, boot="builtins:dict"),
        ModuleDescriptor(
            name="Shop",
            dependencies=["Core:^1.0"],
            route_prefix="shop",
            exposes={
                "cart": make_cart,
                "orders": ServiceDescriptor.linked("builtins:list", ["Admin"]),
            },
            boot=dict,
        ),
    ]


def test_manifest_round_trip_keeps_hooks_importable():
    manifest = build_manifest(_descriptors())
    restored = descriptors_from_manifest(json.loads(json.dumps(manifest)))
    assert [d.name for d in restored] == ["Core", "Shop"]
    shop = restored[1]
    assert shop.boot == "builtins:dict"
    assert shop.exposes["cart"].create() == {"items": []}
    assert shop.exposes["orders"].allowed_modules == ("Admin",)
    assert shop.dependency("Core").constraint == "^1.0"
    assert shop.route_prefix == "shop"
    assert shop.create_instance() == {}


def test_lambda_hook_cannot_be_cached():
    desc = ModuleDescriptor(name="Temp", boot=lambda: None)
    with pytest.raises(ManifestError) as ei:
        build_manifest([desc])
    assert "not importable" in str(ei.value)


def test_unsupported_manifest_version():
    with pytest.raises(ManifestError):
        descriptors_from_manifest({"manifest_version": 99, "modules": []})


def test_invalid_manifest_entry():
    with pytest.raises(ManifestError) as ei:
        descriptors_from_manifest({"manifest_version": 1, "modules": [{"name": "1bad"}]})
    assert ei.value.context == {"module": "1bad"}


def test_cache_save_load_and_ttl(tmp_path):
    cache = ManifestCache(tmp_path / "nested" / "modules.json", ttl_s=60)
    assert not cache.exists()
    assert cache.load() == {}
    cache.save(build_manifest(_descriptors()))
    assert cache.exists()
    assert [m["name"] for m in cache.load()["modules"]] == ["Core", "Shop"]
    old = time.time() - 120
    os.utime(cache.path, (old, old))
    assert not cache.exists()
    assert cache.load() == {}
    cache.clear()
    cache.clear()  # missing file is fine
    assert not cache.path.exists()


def test_corrupt_cache_file(tmp_path):
    path = tmp_path / "modules.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ManifestError):
        ManifestCache(path).load()


def test_manager_rehydrates_from_cache(tmp_path):
    cfg = EngineConfig(cache={"enabled": True, "path": str(tmp_path / "modules.json")})
    first = ModuleManager(cfg)
    first.bootstrap(_descriptors())
    first.disable("Shop")
    snap = first.snapshot_manifest()
    assert [m["enabled"] for m in snap["modules"]] == [True, False]

    second = ModuleManager(cfg)
    report = second.bootstrap()
    assert report.rehydrated
    assert report.order == ["Core", "Shop"]
    assert second.resolve_service("shop.cart") == {"items": []}


def test_stale_cache_is_a_miss(tmp_path):
    cfg = EngineConfig(cache={"enabled": True, "path": str(tmp_path / "modules.json"), "ttl_s": 60})
    ModuleManager(cfg).bootstrap(_descriptors())
    old = time.time() - 120
    os.utime(tmp_path / "modules.json", (old, old))
    report = ModuleManager(cfg).bootstrap()
    assert not report.rehydrated
    assert report.order == []
