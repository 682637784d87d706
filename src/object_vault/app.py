"""FastAPI application for ObjectVault.

A thin HTTP surface over the storage engine, plus the periodic task that
runs retention sweeps while the app is up.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from object_vault import __version__
from object_vault.config import Settings, settings
from object_vault.models.enums import DeleteStatus, StoreStatus
from object_vault.services.retention import RetentionSweeper
from object_vault.storage.engine import StorageEngine

logger = logging.getLogger(__name__)


async def run_periodic_sweeps(sweeper: RetentionSweeper, interval_seconds: float) -> None:
    """Run a sweep every `interval_seconds` until cancelled.

    A failing sweep is logged and the loop carries on with the next cycle.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(sweeper.sweep)
        except Exception:
            logger.exception("Scheduled cleanup failed")


def create_app(config: Settings | None = None, *, engine: StorageEngine | None = None) -> FastAPI:
    """Build the application.

    Args:
        config: Settings to use (defaults to the environment-loaded settings).
        engine: Pre-built engine. When omitted, one is built from `config`
            at startup and closed at shutdown.
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = not hasattr(app.state, "engine")
        if owned:
            _attach(app, StorageEngine.from_settings(config), config)
        task = asyncio.create_task(
            run_periodic_sweeps(app.state.sweeper, config.sweep_interval_seconds)
        )
        try:
            yield
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            if owned:
                app.state.engine.close()

    app = FastAPI(
        title="ObjectVault",
        description="Content-addressed object storage with deduplication and retention",
        version=__version__,
        lifespan=lifespan,
    )
    if engine is not None:
        _attach(app, engine, config)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    @app.post("/api/upload")
    async def upload(request: Request, file: Annotated[UploadFile, File()]) -> JSONResponse:
        """Store one uploaded file."""
        data = await file.read()
        result = await run_in_threadpool(
            _engine(request).store, data, file.filename, file.content_type
        )

        if result.success:
            message = (
                "File uploaded successfully (duplicate detected - storage reused)"
                if result.is_duplicate
                else "File uploaded successfully"
            )
            return JSONResponse(
                {
                    "success": True,
                    "file_id": result.logical_id,
                    "digest": result.digest,
                    "is_duplicate": result.is_duplicate,
                    "message": message,
                }
            )

        status_code = 400 if result.status is StoreStatus.REJECTED else 500
        return JSONResponse({"success": False, "error": result.error}, status_code=status_code)

    @app.get("/api/stats")
    async def stats(request: Request) -> dict[str, Any]:
        """Aggregate storage statistics."""
        result = await run_in_threadpool(_engine(request).stats)
        return result.to_dict()

    @app.post("/api/cleanup")
    async def cleanup(request: Request) -> dict[str, Any]:
        """Run a retention sweep now."""
        report = await run_in_threadpool(request.app.state.sweeper.sweep)
        return {"success": True, "message": "Cleanup completed", **report.to_dict()}

    @app.get("/api/objects/{digest}")
    async def get_object(request: Request, digest: str) -> dict[str, Any]:
        """Metadata for one stored object."""
        record = await run_in_threadpool(_engine(request).get, digest)
        if record is None:
            raise HTTPException(status_code=404, detail="Object not found")
        return record.to_dict()

    @app.delete("/api/objects/{digest}")
    async def delete_object(request: Request, digest: str) -> dict[str, Any]:
        """Delete one stored object."""
        result = await run_in_threadpool(_engine(request).delete, digest)
        if result.status is DeleteStatus.FAILED:
            raise HTTPException(status_code=500, detail=result.error)
        return {"deleted": result.deleted}

    return app


def _attach(app: FastAPI, engine: StorageEngine, config: Settings) -> None:
    app.state.engine = engine
    app.state.sweeper = RetentionSweeper(engine, config.retention_window)


def _engine(request: Request) -> StorageEngine:
    return request.app.state.engine


app = create_app()
