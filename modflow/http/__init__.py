"""FastAPI adapter: route-triggered lazy loading + read-only status endpoints.

    app = FastAPI()
    install_lazy_loading(app, manager.scheduler)
    app.include_router(create_status_router(manager), prefix="/_modflow")

The engine itself never imports this package; hosts without FastAPI skip it.
"""
from __future__ import annotations

import logging
import time

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from modflow.errors import ModFlowError, ModuleNotFoundError
from modflow.modules import LazyLoadScheduler, ModuleManager

logger = logging.getLogger(__name__)


def install_lazy_loading(app: FastAPI, scheduler: LazyLoadScheduler) -> None:
    """Boot the deferred module owning the request path before handling it."""

    @app.middleware("http")
    async def _lazy_load_mw(request: Request, call_next):  # noqa: D401
        path = request.url.path
        start = time.time()
        try:
            handle = scheduler.load_by_route(path)
        except ModFlowError as e:
            logger.error("Lazy load for %s failed: %s", path, e)
            return JSONResponse(status_code=503, content=e.to_json_error())
        if handle is not None:
            request.state.modflow_module = handle.name
            if scheduler.metrics is not None:
                scheduler.metrics.observe(
                    "route_lazy_load_ms",
                    (time.time() - start) * 1000.0,
                    {"module": handle.name},
                )
        return await call_next(request)


def create_status_router(manager: ModuleManager) -> APIRouter:
    router = APIRouter()

    @router.get("/modules")
    def modules():  # noqa: D401
        return {
            "modules": manager.modules(),
            "boot_order": manager.statistics()["boot_order"],
        }

    @router.get("/modules/{name}")
    def module(name: str):  # noqa: D401
        try:
            handle = manager.handle(name)
        except ModuleNotFoundError as e:
            raise HTTPException(status_code=404, detail=e.to_json_error()) from e
        info = handle.info()
        info["history"] = [
            {
                "state": h.state.value,
                "previous": h.previous.value if h.previous else None,
                "reason": h.reason,
                "ts": h.timestamp,
                "forced": h.forced,
            }
            for h in handle.lifecycle.history
        ]
        return info

    @router.get("/conflicts")
    def conflicts():  # noqa: D401
        outcome = manager.outcome
        if outcome is not None:
            return outcome.to_dict()
        return {"records": [c.to_dict() for c in manager.conflicts()], "by_policy": {}}

    @router.get("/lazy-load/stats")
    def lazy_load_stats():  # noqa: D401
        return manager.scheduler.statistics()

    return router


def create_app(manager: ModuleManager, status_prefix: str = "/_modflow") -> FastAPI:
    """Small host app wiring both pieces (handy for tests and demos)."""
    app = FastAPI(title="modflow", docs_url=None, redoc_url=None)
    install_lazy_loading(app, manager.scheduler)
    app.include_router(create_status_router(manager), prefix=status_prefix)

    @app.get("/health")
    def health():  # noqa: D401
        return {"status": "ok", "modules": len(manager.registry)}

    return app


__all__ = ["install_lazy_loading", "create_status_router", "create_app"]
