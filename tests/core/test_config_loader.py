import os
import tempfile
from pathlib import Path

import pytest

from modflow.config import ConfigError, clear_config_cache, get_config, load_config
from modflow.metrics import Metrics


def _with_temp_config(yaml_text: str, overrides: str | None = None):
    with tempfile.TemporaryDirectory() as d:
        tmp = Path(d)
        (tmp / "base.yaml").write_text(yaml_text, encoding="utf-8")
        if overrides is not None:
            (tmp / "overrides.local.yaml").write_text(overrides, encoding="utf-8")
        os.environ["MODFLOW_CONFIG_DIR"] = str(tmp)
        clear_config_cache()
        yield tmp


VALID = (
    "schema_version: 1\n"
    "disabled_modules: [Legacy]\n"
    "conflicts: {routes: override}\n"
    "lazy_load:\n"
    "  enabled: true\n"
    "  eager: [Core, Auth]\n"
    "  preload: {routes: {'^/admin': [Admin]}}\n"
    "boot: {priority_boot: false}\n"
)


def test_valid_load():
    for _ in _with_temp_config(VALID):
        cfg = get_config()
        assert cfg.disabled_modules == ["Legacy"]
        assert cfg.conflicts.routes == "override"
        assert cfg.conflicts.services == "warning"  # default kept
        assert cfg.lazy_load.eager == ["Core", "Auth"]
        assert cfg.lazy_load.preload.routes == {"^/admin": ["Admin"]}
        assert cfg.boot.priority_boot is False
        assert get_config() is cfg  # cached


def test_invalid_key_rejected():
    for _ in _with_temp_config(VALID + "boot_mode: fast\n"):
        with pytest.raises(ConfigError):
            get_config()
    for _ in _with_temp_config("lazy_load: {enabled: true, unknown_field: 1}\n"):
        with pytest.raises(ConfigError):
            get_config()


def test_invalid_policy_rejected():
    with pytest.raises(ConfigError):
        load_config({"conflicts": {"routes": "explode"}})


def test_overrides_file_merged():
    for _ in _with_temp_config(VALID, overrides="lazy_load: {eager: [Core]}\n"):
        cfg = get_config()
        assert cfg.lazy_load.eager == ["Core"]
        assert cfg.lazy_load.preload.routes == {"^/admin": ["Admin"]}  # untouched sibling survives merge


def test_env_override_metric_and_logging(caplog):
    metrics = Metrics()
    for _ in _with_temp_config(VALID):
        os.environ["MODFLOW__BOOT__PRIORITY_BOOT"] = "true"
        os.environ["MODFLOW__LAZY_LOAD__EAGER"] = '["Core"]'
        os.environ["MODFLOW__CACHE__TTL_S"] = "60"
        with caplog.at_level("INFO", logger="modflow.config.loader"):
            cfg = load_config(metrics=metrics)
        assert cfg.boot.priority_boot is True
        assert cfg.lazy_load.eager == ["Core"]
        assert cfg.cache.ttl_s == 60
        assert metrics.counter("env_override_total", {"path": "boot.priority_boot"}) == 1
        assert any("path=cache.ttl_s" in r.getMessage() for r in caplog.records)


def test_ttl_out_of_range():
    metrics = Metrics()
    with pytest.raises(ConfigError) as ei:
        load_config({"cache": {"ttl_s": 0}}, metrics=metrics)
    assert ei.value.error_type == "config-out-of-range"
    assert metrics.counter(
        "config_validation_errors_total",
        {"path": "cache.ttl_s", "code": "config-out-of-range"},
    ) == 1


def test_eager_lazy_overlap_invalid():
    with pytest.raises(ConfigError) as ei:
        load_config({"lazy_load": {"eager": ["Core"], "lazy": ["Core", "Blog"]}})
    assert ei.value.error_type == "config-invalid"
    assert "Core" in str(ei.value)


def test_bad_preload_regex_invalid():
    with pytest.raises(ConfigError):
        load_config({"lazy_load": {"preload": {"routes": {"^/admin(": ["Admin"]}}}})


def test_migration_adds_schema_version():
    for _ in _with_temp_config("boot: {throw_on_boot_failure: true}\n"):
        cfg = get_config()
        assert cfg.schema_version == 1
        assert cfg.boot.throw_on_boot_failure is True


def test_unparseable_and_non_mapping_yaml():
    for _ in _with_temp_config("boot: [unclosed\n"):
        with pytest.raises(ConfigError):
            get_config()
    for _ in _with_temp_config("- just\n- a list\n"):
        with pytest.raises(ConfigError):
            get_config()


def test_missing_dir_gives_defaults():
    os.environ["MODFLOW_CONFIG_DIR"] = "/nonexistent/modflow-config"
    cfg = get_config()
    assert cfg.lazy_load.enabled is True
    assert cfg.conflicts.table() == {
        "routes": "warning",
        "views": "warning",
        "config": "warning",
        "services": "warning",
    }


def test_repository_base_yaml_is_valid():
    root = Path(__file__).resolve().parents[2]
    os.environ["MODFLOW_CONFIG_DIR"] = str(root / "configs")
    assert get_config().model_dump() == load_config({}).model_dump()
