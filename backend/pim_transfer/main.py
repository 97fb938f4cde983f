"""FastAPI application bootstrap."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pim_transfer.api.routers import exports, health, imports, mappings, templates
from pim_transfer.core.config import get_settings
from pim_transfer.core.logging import configure_logging
from pim_transfer.db.session import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if get_settings().create_tables_on_startup:
        init_db()
    yield


def create_app() -> FastAPI:
    """Instantiate the FastAPI app and include top-level routers."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

    cors_origins = settings.cors_origins
    logger.info(f"[CORS] Allowed origins: {cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    app.include_router(health.router)
    app.include_router(imports.router, prefix="/api/imports", tags=["imports"])
    app.include_router(exports.router, prefix="/api/exports", tags=["exports"])
    app.include_router(mappings.router, prefix="/api/mappings", tags=["mappings"])
    app.include_router(templates.router, prefix="/api/templates", tags=["templates"])

    return app


app = create_app()
