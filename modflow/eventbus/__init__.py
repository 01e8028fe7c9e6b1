"""EventBus (sync in-process).

Features:
  - subscribe(event_name, handler) / unsubscribe
  - emit(event_name, payload) adds ts if missing
  - handler isolation (exceptions counted + logged, not propagated)
  - metrics counters:
        events_emitted_total{event}, handler_exceptions_total{event},
        dispatch_latency_accum_ms{event}, dispatch_count{event}

The bus is a plain instance owned by the composition root and handed to
collaborators; there is no process-wide bus.
"""
from __future__ import annotations

import logging
from threading import RLock
from time import time
from typing import Any, Callable, Dict, List

from modflow.metrics import Metrics

Handler = Callable[[Dict[str, Any]], None]

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self, metrics: Metrics | None = None) -> None:
        self._subs: Dict[str, List[Handler]] = {}
        self._lock = RLock()
        self._metrics = metrics if metrics is not None else Metrics()

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    def subscribe(self, event: str, handler: Handler) -> None:
        with self._lock:
            self._subs.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subs.get(event)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def has_listeners(self, event: str) -> bool:
        with self._lock:
            return bool(self._subs.get(event))

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        t0 = time()
        if "ts" not in payload:
            payload["ts"] = t0
        with self._lock:
            subs = list(self._subs.get(event, ()))
        self._metrics.inc("events_emitted_total", {"event": event})
        for h in subs:
            try:
                h(dict(payload))  # shallow copy for safety
            except Exception:  # noqa: BLE001
                self._metrics.inc("handler_exceptions_total", {"event": event})
                logger.exception("Event handler failed for %s", event)
        latency_ms = int((time() - t0) * 1000)
        self._metrics.inc(
            "dispatch_latency_accum_ms", {"event": event}, latency_ms
        )
        self._metrics.inc("dispatch_count", {"event": event})

    def clear(self) -> None:
        with self._lock:
            self._subs.clear()


__all__ = ["EventBus", "Handler"]
