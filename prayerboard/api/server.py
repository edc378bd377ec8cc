"""
FastAPI server for the prayer board. Run with run_api_server(app).
Central endpoints: GET /api/health, GET /api/tasks. Per-plugin routes are mounted
from prayerboard.plugins.<package>.api (get_router(board_app)) under
/api/components/<package>/, or under the module's ROUTE_PREFIX when it sets one.
Docs when enabled: http://<host>:<port>/docs
"""
import importlib
import logging
import pkgutil
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI

logger = logging.getLogger(__name__)


def _serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Serialize datetime to ISO string (UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def create_app(board_app: Any) -> FastAPI:
    """Create FastAPI app with routes that use the given PrayerBoardApp instance."""
    app = FastAPI(title="Prayer Board API", description="Prayer times, push subscriptions and the minute dispatcher")

    @app.get("/api/health")
    def health() -> Dict[str, Any]:
        return {"ok": True, "timezone": str(board_app.tz)}

    @app.get("/api/tasks")
    def list_tasks() -> Dict[str, Any]:
        """List active in-memory timers."""
        active_timers = board_app.task_manager.get_active_timers()
        active_list = [
            {"name": t["name"], "next_run_at": _serialize_datetime(t["next_run_at"])}
            for t in active_timers
        ]
        return {"active_timers": active_list}

    # Mount per-plugin API routers from prayerboard.plugins.<name>.api (get_router(board_app))
    try:
        plugins_pkg = importlib.import_module("prayerboard.plugins")
        for _mod, name, is_pkg in pkgutil.iter_modules(plugins_pkg.__path__):
            if not is_pkg:
                continue
            try:
                api_module = importlib.import_module(f"prayerboard.plugins.{name}.api")
            except ImportError:
                continue
            if not hasattr(api_module, "get_router") or not callable(api_module.get_router):
                continue
            try:
                router = api_module.get_router(board_app)
                if router is not None:
                    prefix = getattr(api_module, "ROUTE_PREFIX", f"/api/components/{name}")
                    app.include_router(router, prefix=prefix)
                    logger.debug(f"Mounted API router for plugin {name} at {prefix}")
            except Exception as e:
                logger.warning(f"Failed to mount API router for plugin {name}: {e}", exc_info=True)
    except Exception as e:
        logger.warning(f"Plugin API discovery failed: {e}", exc_info=True)

    return app


def run_api_server(board_app: Any, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """
    Serve the API in the foreground until interrupted.
    Reads api.host (default 127.0.0.1) and api.port (default 8765) from config.
    """
    import uvicorn

    host = host or board_app.config.get("api.host", "127.0.0.1")
    port = int(port or board_app.config.get("api.port", 8765))
    fastapi_app = create_app(board_app)
    board_app.start_scheduler()
    logger.info(f"API server listening at http://{host}:{port} (docs at /docs)")
    try:
        uvicorn.run(fastapi_app, host=host, port=port)
    finally:
        board_app.shutdown()
