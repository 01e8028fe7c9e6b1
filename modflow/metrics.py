"""Minimal in-memory metrics collector.

Purpose:
    - Counters and simple latency samples for boot / lazy-load visibility.
    - Zero external deps; can be swapped by a Prometheus exporter later.

Core API (intentionally tiny):
    inc(name, labels=None, value=1)
    observe(name, value, labels=None)
    snapshot() -> dict (copy for safe reading)

One ``Metrics`` instance is owned by each ``ModuleManager`` so isolated
managers (tests, per-request contexts) never share counters.

Metric names emitted by the engine:
    - modules_registered_total
    - module_boot_total{module,status}
    - module_boot_ms{module}                 (histogram)
    - lazy_loads_total{trigger}
    - conflicts_total{domain,policy}
    - service_resolutions_total{status}
    - events_emitted_total{event}, handler_exceptions_total{event}
"""
from __future__ import annotations

from threading import RLock
from time import time
from typing import Any, Dict, Tuple

_Key = Tuple[str, Tuple[Tuple[str, str], ...]]


def _norm_labels(labels: dict[str, Any] | None) -> Tuple[Tuple[str, str], ...]:
    if not labels:
        return tuple()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _label_str(labels: Tuple[Tuple[str, str], ...]) -> str:
    if not labels:
        return ""
    return "{" + ",".join(f"{k}={v}" for k, v in labels) + "}"


class Metrics:
    def __init__(self) -> None:
        self._counters: Dict[_Key, float] = {}
        self._hist: Dict[_Key, list] = {}
        self._lock = RLock()

    def inc(
        self,
        name: str,
        labels: dict[str, Any] | None = None,
        value: float = 1.0,
    ) -> None:
        key = (name, _norm_labels(labels))
        with self._lock:
            self._counters[key] = self._counters.get(key, 0.0) + value

    def observe(
        self,
        name: str,
        value: float,
        labels: dict[str, Any] | None = None,
    ) -> None:
        key = (name, _norm_labels(labels))
        with self._lock:
            self._hist.setdefault(key, []).append(value)

    def counter(self, name: str, labels: dict[str, Any] | None = None) -> float:
        with self._lock:
            return self._counters.get((name, _norm_labels(labels)), 0.0)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            counters = {
                name + _label_str(labels): v
                for (name, labels), v in self._counters.items()
            }
            hist = {}
            for (name, labels), vals in self._hist.items():
                if not vals:
                    continue
                hist[name + _label_str(labels)] = {
                    "count": len(vals),
                    "min": min(vals),
                    "max": max(vals),
                    "p50": sorted(vals)[len(vals) // 2],
                    "last": vals[-1],
                }
            return {"ts": time(), "counters": counters, "histograms": hist}

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._hist.clear()


__all__ = ["Metrics"]
