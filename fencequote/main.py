# fencequote/main.py
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from fencequote import __version__
from fencequote.api import pricing, quotes
from fencequote.api.deps import Services, build_sql_services
from fencequote.api.errors import register_error_handlers
from fencequote.core.logging_config import logger, setup_logging
from fencequote.core.settings import settings


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the API. Without ``services`` the SQL-backed stack from settings
    is used and tables are created on startup.
    """
    setup_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is None:
            from fencequote.db import init_db

            await init_db()
        logger.info("startup", service="fencequote-api", env=settings.app_env)
        yield

    app = FastAPI(title="FenceQuote", version=__version__, lifespan=lifespan)
    app.state.services = services or build_sql_services(settings)

    # ----------------------------------------------------
    # Health
    # ----------------------------------------------------
    @app.get("/health", include_in_schema=True)
    def health() -> dict:
        return {"status": "ok"}

    # ----------------------------------------------------
    # Logging middleware
    # ----------------------------------------------------
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        start = time.time()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        client_ip = request.client.host if request.client else "unknown"

        bound_logger = logger.bind(
            request_id=request_id,
            ip=client_ip,
            endpoint=str(request.url.path),
            method=request.method,
        )
        bound_logger.info("request_started")

        response = await call_next(request)

        latency_ms = round((time.time() - start) * 1000, 2)
        bound_logger.bind(status_code=response.status_code, latency_ms=latency_ms).info("request_finished")
        response.headers["X-Request-ID"] = request_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    # ----------------------------------------------------
    # Routers
    # ----------------------------------------------------
    app.include_router(pricing.router)
    app.include_router(quotes.router)
    return app


app = create_app()
