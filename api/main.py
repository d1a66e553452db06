from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import urlparse

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text

from api.auth import require_api_key
from api.config import get_settings
from api.db import get_engine, init_db
from api.decisions import router as decisions_router
from api.evaluate import router as evaluate_router
from api.logging_config import configure_logging
from safety_engine import ENGINE_VERSION


def _sanitize_db_url(db_url: str) -> str:
    try:
        u = urlparse(db_url)
        scheme = (u.scheme or "db").split("+", 1)[0]
        host = u.hostname or ""
        port = f":{u.port}" if u.port else ""
        dbname = (u.path or "").lstrip("/")
        if host or dbname:
            return f"{scheme}://{host}{port}/{dbname}"
        return f"{scheme}://(unresolved)"
    except ValueError:
        return "db_url:unparseable"


def build_app(auth_enabled: Optional[bool] = None) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    # Resolve ONCE. Never re-resolve later. Never mutate per-request.
    resolved_auth_enabled = settings.resolved_auth_enabled if auth_enabled is None else bool(auth_enabled)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            init_db()
            app.state.db_init_ok = True
            app.state.db_init_error = None
        except Exception as e:
            app.state.db_init_ok = False
            app.state.db_init_error = f"{type(e).__name__}: {e}"
            logger.exception("DB init failed")
        yield

    app = FastAPI(title="outagegate-core", version=ENGINE_VERSION, lifespan=lifespan)

    # Freeze state at build time
    app.state.auth_enabled = bool(resolved_auth_enabled)
    app.state.api_key = settings.api_key
    app.state.service = settings.service
    app.state.env = settings.env
    app.state.app_instance_id = str(uuid.uuid4())
    app.state.db_init_ok = False
    app.state.db_init_error = None

    app.include_router(evaluate_router)
    app.include_router(evaluate_router, prefix="/v1")
    app.include_router(decisions_router)

    @app.get("/health")
    async def health(request: Request) -> dict:
        return {
            "status": "ok",
            "service": request.app.state.service,
            "env": request.app.state.env,
            "engine_version": ENGINE_VERSION,
            "auth_enabled": bool(request.app.state.auth_enabled),
            "app_instance_id": request.app.state.app_instance_id,
        }

    @app.get("/health/live")
    async def health_live() -> dict:
        return {"status": "live"}

    @app.get("/health/ready")
    def health_ready() -> dict:
        if not bool(app.state.db_init_ok):
            raise HTTPException(status_code=503, detail=f"db_init_failed: {app.state.db_init_error or 'unknown'}")
        try:
            with get_engine().connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            raise HTTPException(status_code=503, detail=f"db_unreachable: {type(e).__name__}") from e
        return {"status": "ready", "db": _sanitize_db_url(str(get_engine().url))}

    @app.get("/metrics", dependencies=[Depends(require_api_key)])
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = build_app()
