"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import allocations, complaints, health, sla
from .config import settings
from .db.session import build_engine, init_db, make_session_factory
from .services.engine import AllocationEngine
from .services.sla.monitor import SlaScheduler

logger = logging.getLogger(__name__)


def create_app(engine: AllocationEngine | None = None, *, start_scheduler: bool | None = None) -> FastAPI:
    if start_scheduler is None:
        start_scheduler = settings.sla_scheduler_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.engine is None:
            db_engine = build_engine()
            init_db(db_engine)
            app.state.engine = AllocationEngine(make_session_factory(db_engine))
        scheduler: SlaScheduler | None = None
        if start_scheduler:
            scheduler = SlaScheduler(app.state.engine.sla_monitor)
            scheduler.start()
        app.state.sla_scheduler = scheduler
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.stop()
                logger.info("[SLA] Scheduler stopped")

    app = FastAPI(title=settings.app_name, root_path="", lifespan=lifespan)
    app.state.engine = engine
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(allocations.router, prefix=settings.api_prefix)
    app.include_router(complaints.router, prefix=settings.api_prefix)
    app.include_router(sla.router, prefix=settings.api_prefix)
    return app


app = create_app()

__all__ = ["app", "create_app"]
