"""
FastAPI application - command surface for the host UI layer.
Exposes discovery, watch-list reconciliation and the application log.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from companion.context import AppContext, build_context
from companion.shared.app_log import install_log_sink
from companion.shared.config import AppConfig, load_config
from companion.shared.errors import (
    CompanionError,
    DiscoveryError,
    LogStorageError,
    UnsupportedPlatformError,
    WatchRegistrationError,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(message)s"


def configure_logging(config: AppConfig) -> None:
    """Root logger level, a console handler and one formatter for all handlers."""
    log_level = getattr(logging, config.log_level, logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    if not root_logger.handlers:
        console = logging.StreamHandler()
        console.setLevel(log_level)
        root_logger.addHandler(console)
    for handler in root_logger.handlers:
        handler.setFormatter(formatter)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover
    """Build the context unless one was injected, and tear it down on exit."""
    ctx: Optional[AppContext] = getattr(app.state, "context", None)
    owns_context = ctx is None
    if owns_context:
        config = load_config()
        configure_logging(config)
        ctx = build_context(config)
        install_log_sink(ctx.file_logger, getattr(logging, config.log_level, logging.INFO))
        app.state.context = ctx
        await asyncio.to_thread(ctx.apply_initial_watch_dirs)

    logger.info(
        f"Companion services started (platform={ctx.config.platform.value}, "
        f"discovery={ctx.discovery.strategy_name}, log={ctx.file_logger.path})"
    )
    yield
    if owns_context:
        ctx.close()
    logger.info("Companion services shutdown")


# --- Pydantic models for request validation ---

class DiscoverRequest(BaseModel):
    timeout_ms: Optional[int] = None


class BrowseRequest(BaseModel):
    service_type: str
    timeout_ms: Optional[int] = None


class WatchDirsRequest(BaseModel):
    dirs: list[str]


class WebLogRequest(BaseModel):
    level: str = "INFO"
    message: str


def _context(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        raise HTTPException(503, "Not ready")
    return ctx


def _to_http_error(error: Exception) -> HTTPException:
    if isinstance(error, UnsupportedPlatformError):
        return HTTPException(501, str(error))
    if isinstance(error, WatchRegistrationError):
        return HTTPException(400, str(error))
    if isinstance(error, DiscoveryError):
        return HTTPException(503, str(error))
    if isinstance(error, LogStorageError):
        return HTTPException(500, str(error))
    if isinstance(error, ValueError):
        return HTTPException(422, str(error))
    return HTTPException(500, str(error))


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Build the API. Pass a context to bypass environment-driven startup."""
    app = FastAPI(
        title="Nascraft Companion",
        description="Background services for the Nascraft companion app",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "tauri://localhost"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health(request: Request):
        ctx = _context(request)
        return {
            "status": "ok",
            "platform": ctx.config.platform.value,
            "discovery_strategy": ctx.discovery.strategy_name,
            "environment": ctx.config.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/api/discover")
    async def discover_services(req: DiscoverRequest, request: Request):
        ctx = _context(request)
        try:
            servers = await asyncio.to_thread(ctx.discovery.discover, req.timeout_ms)
        except (CompanionError, ValueError) as e:
            raise _to_http_error(e)
        return [s.to_dict() for s in servers]

    @app.post("/api/discover/browse")
    async def browse_services(req: BrowseRequest, request: Request):
        ctx = _context(request)
        try:
            servers = await asyncio.to_thread(
                ctx.discovery.browse, req.service_type, req.timeout_ms
            )
        except (CompanionError, ValueError) as e:
            raise _to_http_error(e)
        return [s.to_dict() for s in servers]

    @app.put("/api/watch-dirs")
    async def update_watch_dirs(req: WatchDirsRequest, request: Request):
        ctx = _context(request)
        try:
            await asyncio.to_thread(ctx.reconciler.update_watch_dirs, req.dirs)
        except CompanionError as e:
            logger.warning(f"Watch list update failed: {e}")
            raise _to_http_error(e)
        return {"status": "ok", "watched": sorted(ctx.reconciler.watched_dirs)}

    @app.get("/api/events")
    async def drain_events(request: Request, max_items: Optional[int] = Query(None, ge=1)):
        ctx = _context(request)
        return {"events": [n.to_dict() for n in ctx.notifier.drain(max_items)]}

    @app.get("/api/log/info")
    async def get_log_info(request: Request):
        ctx = _context(request)
        return {"log_file_path": ctx.file_logger.path}

    @app.post("/api/log/web")
    async def append_web_log(req: WebLogRequest, request: Request):
        ctx = _context(request)
        try:
            await asyncio.to_thread(ctx.file_logger.append_web, req.level, req.message)
        except LogStorageError as e:
            raise _to_http_error(e)
        return {"status": "ok"}

    @app.get("/api/log", response_class=PlainTextResponse)
    async def read_log(request: Request, max_bytes: Optional[int] = Query(None, ge=0)):
        ctx = _context(request)
        if max_bytes is None:
            max_bytes = ctx.config.log.default_tail_bytes
        try:
            text = await asyncio.to_thread(ctx.file_logger.read_tail, max_bytes)
        except (LogStorageError, ValueError) as e:
            raise _to_http_error(e)
        return PlainTextResponse(text)

    @app.get("/api/diagnostics")
    async def get_diagnostics(request: Request):
        ctx = _context(request)
        return {"counters": ctx.diagnostics.snapshot()}

    return app


app = create_app()
