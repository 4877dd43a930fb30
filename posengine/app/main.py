from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from posengine.app.api.v1.api import api_router
from posengine.app.core.config import settings
from posengine.app.services.runtime import PosServices


def create_app(services: PosServices | None = None) -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.services = services or PosServices.build()
        await app.state.services.startup()
        try:
            yield
        finally:
            await app.state.services.shutdown()

    app = FastAPI(title="POS Cart Promotion & Settlement Engine", lifespan=lifespan)

    # ─── CORS: the till UI runs on a separate origin ────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
    )

    app.include_router(api_router)
    return app


app = create_app()


def run() -> None:
    """Serve the API for this terminal."""
    uvicorn.run(
        "posengine.app.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
