"""FastAPI application factory."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from lifesprint.api.routes import progress, sync as sync_routes
from lifesprint.sync.engine import SyncEngine, build_sync_engine


def create_app(sync_engine: Optional[SyncEngine] = None) -> FastAPI:
    """Build and return the FastAPI app.

    Without a sync_engine one is wired from settings on startup and its
    remote client is closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.sync_engine is None
        if owned:
            app.state.sync_engine = build_sync_engine()
        yield
        await app.state.sync_engine.wait_for_background()
        if owned:
            await app.state.sync_engine.remote.aclose()

    app = FastAPI(
        title="LifeSprint Sync API",
        description="Offline-first sync for LifeSprint progress",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.sync_engine = sync_engine

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])
    app.include_router(progress.router, prefix="/progress", tags=["progress"])

    return app


# Module-level app instance for uvicorn
app = create_app()
