"""Config subsystem public API.

Provides:
    get_config()  -> EngineConfig (cached; base.yaml + overrides + env)
    load_config() -> EngineConfig from an explicit mapping (uncached)
    as_dict()     -> dict representation
    ConfigError   -> raised on validation / unknown key
"""

from modflow.errors import ConfigError  # noqa: F401

from .loader import (  # noqa: F401
    EngineConfig,
    as_dict,
    clear_config_cache,
    get_config,
    load_config,
)
from .schemas.engine import (  # noqa: F401
    BootConfig,
    CacheConfig,
    ConflictsConfig,
    LazyLoadConfig,
    PreloadConfig,
    StrategiesConfig,
)
from .schemas.observability import LoggingConfig  # noqa: F401


def reset_for_tests() -> None:
    """Drop the cached config so the next get_config() re-reads env / files."""
    clear_config_cache()


__all__ = [
    "get_config",
    "load_config",
    "as_dict",
    "ConfigError",
    "clear_config_cache",
    "reset_for_tests",
    "EngineConfig",
    "BootConfig",
    "CacheConfig",
    "ConflictsConfig",
    "LazyLoadConfig",
    "PreloadConfig",
    "StrategiesConfig",
    "LoggingConfig",
]
