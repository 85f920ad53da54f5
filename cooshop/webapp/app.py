"""FastAPI application factory for the JSON backend."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, UTC

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__, config
from ..coupang import CoupangClient
from ..db import PriceDatabase
from ..init_data import initialize_data
from ..price import PriceService
from ..scheduler import PriceUpdateScheduler
from . import admin, routes
from .security import RateLimiter, add_security_headers, check_referer

logger = logging.getLogger(__name__)

API_RATE_LIMIT = (100, 15 * 60)
ADMIN_RATE_LIMIT = (10, 10 * 60)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as {"error": message}."""
    return JSONResponse(
        {"error": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Bad query parameters are client errors, reported as 400."""
    fields = ", ".join(str(err["loc"][-1]) for err in exc.errors() if err.get("loc"))
    return JSONResponse({"error": f"Invalid request parameters: {fields}"}, status_code=400)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def create_app(
    db: PriceDatabase | None = None,
    client: CoupangClient | None = None,
    admin_password: str | None = config.ADMIN_PASSWORD,
    is_production: bool = config.IS_PRODUCTION,
    allowed_origins: list[str] | None = None,
    auto_start_scheduler: bool = True,
    seed_data: bool = True,
    scheduler_delay: float | None = None,
    trust_proxy: bool = config.TRUST_PROXY,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    # Initialize database early so lifespan can use it
    database = db or PriceDatabase()
    service = PriceService(database, client or CoupangClient())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Seed data and run the price updater for the app's lifetime."""
        scheduler = PriceUpdateScheduler(service, delay=scheduler_delay)
        app.state.scheduler = scheduler

        seed_task = asyncio.create_task(initialize_data(service)) if seed_data else None
        if auto_start_scheduler:
            scheduler.start()

        yield

        if scheduler.is_running:
            scheduler.stop()
        if seed_task and not seed_task.done():
            seed_task.cancel()

    app = FastAPI(
        title="Cooshop",
        description="Affiliate product price tracker",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.db = database
    app.state.service = service
    app.state.admin_password = admin_password
    app.state.is_production = is_production
    app.state.allowed_origins = allowed_origins or config.ALLOWED_ORIGINS
    app.state.trust_proxy = trust_proxy
    app.state.api_limiter = RateLimiter(*API_RATE_LIMIT)
    app.state.admin_limiter = RateLimiter(
        *ADMIN_RATE_LIMIT,
        message="Too many login attempts, please try again after 10 minutes.",
    )

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.middleware("http")(add_security_headers)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app.state.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api_guards = [Depends(app.state.api_limiter), Depends(check_referer)]

    @app.get("/api/health", dependencies=api_guards)
    async def health():
        return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}

    app.include_router(routes.router, dependencies=api_guards)
    app.include_router(admin.router, dependencies=[*api_guards, Depends(app.state.admin_limiter)])

    return app
