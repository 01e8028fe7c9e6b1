"""Engine schemas: conflict policy, lazy loading, boot, manifest cache."""
from __future__ import annotations

from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

Policy = Literal["exception", "warning", "override", "ignore"]


class ConflictsConfig(BaseModel):
    """Conflict policy per domain (see ``modflow.conflicts``)."""

    routes: Policy = "warning"
    views: Policy = "warning"
    config: Policy = "warning"
    services: Policy = "warning"

    model_config = ConfigDict(extra="forbid")

    def table(self) -> Dict[str, str]:
        return self.model_dump()


class StrategiesConfig(BaseModel):
    route: bool = True
    service: bool = True
    event: bool = True
    command: bool = True

    model_config = ConfigDict(extra="forbid")


class PreloadConfig(BaseModel):
    # regex (matched with re.search against the request path) -> modules
    routes: Dict[str, List[str]] = Field(default_factory=dict)
    roles: Dict[str, List[str]] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class LazyLoadConfig(BaseModel):
    enabled: bool = True
    eager: List[str] = Field(default_factory=list)
    lazy: List[str] = Field(default_factory=list)
    strategies: StrategiesConfig = StrategiesConfig()
    preload: PreloadConfig = PreloadConfig()
    # bus event name -> modules loaded when it is emitted
    events: Dict[str, List[str]] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class BootConfig(BaseModel):
    priority_boot: bool = True
    throw_on_boot_failure: bool = False
    rollback_on_boot_failure: bool = False

    model_config = ConfigDict(extra="forbid")


class CacheConfig(BaseModel):
    enabled: bool = False
    path: str = "storage/cache/modules.json"
    ttl_s: float = 3600

    model_config = ConfigDict(extra="forbid")
