"""Configuration loading & validation.

Precedence (last wins): base.yaml → overrides.local.yaml → ENV (MODFLOW__*).

ENV keys use ``__`` for nesting, e.g. ``MODFLOW__BOOT__PRIORITY_BOOT=false``
or ``MODFLOW__LAZY_LOAD__EAGER='["Core","Auth"]'`` (JSON lists accepted).

Unknown keys are rejected at every level (``extra="forbid"``).
"""
from __future__ import annotations

import json
import logging
import os
import pathlib
import re
import threading
from functools import lru_cache
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, ConfigDict, Field

from modflow.errors import ConfigError, validate_error_type
from modflow.metrics import Metrics

from .schemas.engine import (
    BootConfig,
    CacheConfig,
    ConflictsConfig,
    LazyLoadConfig,
)
from .schemas.observability import LoggingConfig

logger = logging.getLogger(__name__)


class EngineConfig(BaseModel):
    schema_version: int = 1
    disabled_modules: List[str] = Field(default_factory=list)
    conflicts: ConflictsConfig = ConflictsConfig()
    lazy_load: LazyLoadConfig = LazyLoadConfig()
    boot: BootConfig = BootConfig()
    cache: CacheConfig = CacheConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = ConfigDict(extra="forbid")


DEFAULT_CONFIG_DIR = "configs"
ENV_PREFIX = "MODFLOW__"
CONFIG_DIR_ENV = "MODFLOW_CONFIG_DIR"
CURRENT_SCHEMA_VERSION = 1


def _load_yaml_if_exists(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at top level")
    return data


def _merge_dict(
    base: Dict[str, Any], override: Dict[str, Any]
) -> Dict[str, Any]:
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k] = _merge_dict(base[k], v)
        else:
            base[k] = v
    return base


def _cast_env(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    if value[:1] in "[{":
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    try:
        return int(value)
    except ValueError:
        try:
            return float(value)
        except ValueError:
            return value


def _apply_env(cfg: Dict[str, Any], metrics: Metrics | None = None) -> None:
    prefix_len = len(ENV_PREFIX)
    for env_key, value in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        path_parts = env_key[prefix_len:].lower().split("__")
        target = cfg
        for part in path_parts[:-1]:
            if part not in target or not isinstance(target[part], dict):
                target[part] = {}
            target = target[part]
        target[path_parts[-1]] = _cast_env(value)
        dotted_path = ".".join(path_parts)
        if metrics is not None:
            metrics.inc("env_override_total", {"path": dotted_path})
        logger.info(
            "config env override: path=%s value=*** source=env", dotted_path
        )


_lock = threading.Lock()


def _resolve_config_dir() -> pathlib.Path:
    """Resolve config directory each call honoring env var changes."""
    return pathlib.Path(os.getenv(CONFIG_DIR_ENV, DEFAULT_CONFIG_DIR))


def _migrate_legacy(data: Dict[str, Any]) -> Dict[str, Any]:
    """Fill ``schema_version`` for configs written before it existed."""
    if "schema_version" not in data:
        logger.warning("config: schema_version missing -> assuming %d", CURRENT_SCHEMA_VERSION)
        data["schema_version"] = CURRENT_SCHEMA_VERSION
    return data


def _normalize_and_validate(raw: Dict[str, Any], metrics: Metrics | None = None) -> None:
    """Cross-field checks that a per-field schema cannot express.

    Validations (error → raise):
      - cache.ttl_s > 0
      - lazy_load.eager and lazy_load.lazy are disjoint
      - lazy_load.preload.routes keys are valid regular expressions
    """
    errors: list[tuple[str, str, str]] = []  # (path, code, msg)

    ttl = (raw.get("cache") or {}).get("ttl_s")
    if isinstance(ttl, (int, float)) and ttl <= 0:
        errors.append(("cache.ttl_s", "config-out-of-range", ">0 required"))

    lazy = raw.get("lazy_load") or {}
    both = set(lazy.get("eager") or []) & set(lazy.get("lazy") or [])
    if both:
        errors.append(
            (
                "lazy_load",
                "config-invalid",
                "listed as both eager and lazy: " + ", ".join(sorted(both)),
            )
        )

    for pattern in ((lazy.get("preload") or {}).get("routes") or {}):
        try:
            re.compile(pattern)
        except re.error as e:
            errors.append(
                ("lazy_load.preload.routes", "config-invalid", f"{pattern!r}: {e}")
            )

    if errors:
        for path, code, _ in errors:
            if metrics is not None:
                metrics.inc(
                    "config_validation_errors_total", {"path": path, "code": code}
                )
        for _, code, _ in errors:
            validate_error_type(code)
        details = ", ".join(f"{p}:{c}:{m}" for p, c, m in errors)
        err = ConfigError(
            f"config validation failed: {details}",
            context={"errors": [{"path": p, "code": c} for p, c, _ in errors]},
        )
        if all(c == "config-out-of-range" for _, c, _ in errors):
            err.error_type = "config-out-of-range"
        raise err


def load_config(
    raw: Dict[str, Any] | None = None, metrics: Metrics | None = None
) -> EngineConfig:
    """Validate a config mapping (or read the config dir when ``raw`` is None)."""
    if raw is None:
        cfg_dir = _resolve_config_dir()
        base_cfg = _load_yaml_if_exists(cfg_dir / "base.yaml")
        overrides_cfg = _load_yaml_if_exists(cfg_dir / "overrides.local.yaml")
        raw = _merge_dict(base_cfg, overrides_cfg)
        _apply_env(raw, metrics)
    else:
        raw = _merge_dict({}, raw)
    migrated = _migrate_legacy(raw)
    _normalize_and_validate(migrated, metrics)
    try:
        return EngineConfig.model_validate(migrated)
    except Exception as e:  # noqa: BLE001
        raise ConfigError(str(e)) from e


@lru_cache(maxsize=1)
def get_config() -> EngineConfig:  # noqa: D401
    with _lock:
        return load_config()


def clear_config_cache() -> None:
    """Clear cached config (primarily for tests)."""
    get_config.cache_clear()


def as_dict() -> Dict[str, Any]:
    return get_config().model_dump()
