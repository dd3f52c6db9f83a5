"""
Prompt Rater

FastAPI application for LLM generation runs and pairwise rating tournaments.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.router import api_router
from .config import get_settings
from .errors import DomainError
from .infra.db.session import close_db, init_db
from .middleware.auth import GatewayKeyMiddleware
from .utils.logging_utils import configure_logging

logger = logging.getLogger(__name__)

# Worker routes carry their own secret; health is checked without credentials
GATEWAY_EXEMPT_PREFIXES = ("/api/v1/worker", "/api/v1/health")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Prompt Rater API server...")
    await init_db()

    # Startup complete
    yield

    # Shutdown
    await close_db()
    logger.info("Shutting down Prompt Rater API server...")


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"Using database {settings.database_url.split('://', 1)[0]}")

    app = FastAPI(
        title=settings.app_name,
        description="Generation runs and rating tournaments for prompt configurations",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS middleware for the admin console
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(
        GatewayKeyMiddleware,
        api_key=settings.gateway_api_key,
        exempt_prefixes=GATEWAY_EXEMPT_PREFIXES,
    )

    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Include API routes
    app.include_router(api_router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "api": "/api/v1",
        }

    return app
