"""Modules package: boot path, lazy-load scheduler and the ModuleManager.

 - Booter: one boot path (dependencies first, faults captured)
 - LazyLoadScheduler: eager/deferred partition, route/service/event/command
   triggers, warm-up, preload
 - ModuleManager: composition root running the bootstrap sequence
"""
from __future__ import annotations

from .booter import Booter, TriggerKind  # noqa: F401
from .module_manager import BootReport, ModuleManager  # noqa: F401
from .scheduler import LazyLoadScheduler  # noqa: F401

__all__ = [
    "Booter",
    "TriggerKind",
    "BootReport",
    "ModuleManager",
    "LazyLoadScheduler",
]
