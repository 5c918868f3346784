# backend/practice_space/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute

from .core.config import settings
from .events import get_event_publisher, register_default_handlers
from .init_db import create_tables
from .routes import prometheus
from .routes.v1 import (
    availability as availability_v1,
    closures as closures_v1,
    reservations as reservations_v1,
    series as series_v1,
)

logger = logging.getLogger(__name__)

API_TITLE = "Practice Space Scheduling API"
API_VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info(f"{API_TITLE} starting up (environment: {settings.environment})")
    logger.info(f"Scheduling rules: {settings.scheduling_summary()}")
    if settings.create_tables_on_startup:
        create_tables()
    register_default_handlers(get_event_publisher())
    yield
    logger.info(f"{API_TITLE} shutting down")


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").strip("_")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


app = FastAPI(
    title=API_TITLE,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
    generate_unique_id_function=_unique_operation_id,
)

api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(availability_v1.router, prefix="/availability")
api_v1.include_router(reservations_v1.router, prefix="/reservations")
api_v1.include_router(series_v1.router, prefix="/series")
api_v1.include_router(closures_v1.router)
app.include_router(api_v1)

# Prometheus metrics - Standard /metrics/prometheus path for Prometheus scraping
app.include_router(prometheus.router, prefix="/metrics")
