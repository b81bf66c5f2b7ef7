from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from alldownloads.api.routes.health import router as health_router
from alldownloads.api.routes.jobs import router as jobs_router
from alldownloads.api.routes.metrics import router as metrics_router
from alldownloads.api.routes.products import router as products_router
from alldownloads.catalog.service import CatalogService
from alldownloads.core.config import get_settings
from alldownloads.core.logging import configure_logging
from alldownloads.db.init_db import initialize_database
from alldownloads.db.session import get_session_factory
from alldownloads.sources.registry import PRODUCT_DEFINITIONS


@asynccontextmanager
async def lifespan(_app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    initialize_database()
    CatalogService(get_session_factory()).sync_products(PRODUCT_DEFINITIONS)
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(products_router, prefix="/api/v1")
    app.include_router(jobs_router, prefix="/api/v1")
    app.include_router(metrics_router, prefix="/api/v1")
    return app
