"""
True Crime Search Cache
FastAPI Application Entry Point
"""

import logging
import logging.handlers
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.v1.search import (
    AccessPolicy,
    ApiKeyAccessPolicy,
    get_access_policy_dep,
    get_search_coordinator_dep,
)
from .api.v1.search import router as search_router
from .database.database import close_redis, get_redis_client, init_redis, redis_manager
from .errors import SearchError, UpstreamUnavailable
from .middleware import LoggingMiddleware
from .services.config.configuration_service import SearchSettings, get_search_settings
from .services.search.coordinator import SearchCacheCoordinator, build_search_coordinator

# Load environment variables
load_dotenv()

RETRY_AFTER_SECONDS = 5


def configure_logging():
    """
    Configure structured logging using structlog.

    - Production (ENV=production): JSON output for log aggregation
    - Development (ENV=development): Human-readable console output
    - Optional rotating file output when LOG_FILE_PATH is set
    """
    env = os.getenv("ENV", "development").lower()
    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    timestamper = structlog.processors.TimeStamper(fmt="iso")

    # Shared processors for all environments
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.contextvars.merge_contextvars,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        timestamper,
    ]

    if env == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback
        )

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # Standard library logging renders through structlog
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_searchcache_handler", False):
            root_logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    stdout_handler._searchcache_handler = True
    root_logger.addHandler(stdout_handler)

    log_file_path = os.getenv("LOG_FILE_PATH")
    if log_file_path:
        log_file_path = str(Path(log_file_path).resolve())
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file_path,
            maxBytes=10 * 1024 * 1024,  # 10MB per file
            backupCount=5,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        file_handler._searchcache_handler = True
        root_logger.addHandler(file_handler)

    root_logger.setLevel(log_level)

    # Reduce noise from verbose libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return structlog.get_logger(__name__)


logger = configure_logging()


async def _connect_redis(settings: SearchSettings):
    """Redis client for the cache store, or None to use the in-memory store."""
    if settings.cache_backend != "redis":
        return None

    if not redis_manager.enable_caching:
        logger.info("Redis disabled via ENABLE_REDIS_CACHING=false")
        return None

    try:
        await init_redis()
        logger.info("✓ Redis initialized")
        return await get_redis_client()
    except Exception as e:
        logger.warning(f"Redis initialization failed: {e}. Continuing with in-memory cache.")
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - startup and shutdown"""
    logger.info("Starting search cache application...")

    owns_coordinator = getattr(app.state, "search_coordinator", None) is None
    if owns_coordinator:
        settings = app.state.search_settings
        redis_client = await _connect_redis(settings)
        app.state.search_coordinator = build_search_coordinator(settings, redis_client)

    await app.state.search_coordinator.init()
    logger.info("✓ Search coordinator initialized")

    yield

    logger.info("Shutting down search cache application...")
    try:
        await app.state.search_coordinator.shutdown()
        logger.info("✓ Search coordinator shut down")
    except Exception as e:
        logger.error(f"Error shutting down search coordinator: {e}")

    if owns_coordinator:
        app.state.search_coordinator = None
        try:
            await close_redis()
        except Exception as e:
            logger.error(f"Error closing Redis: {e}")

    logger.info("Shutdown complete")


def get_search_coordinator(request: Request) -> SearchCacheCoordinator:
    """Get the app-owned search coordinator for dependency injection"""
    coordinator = request.app.state.search_coordinator
    if coordinator is None:
        raise UpstreamUnavailable("Search service is starting up")
    return coordinator


def get_access_policy(request: Request) -> AccessPolicy:
    """Get the admin access policy for dependency injection"""
    return request.app.state.access_policy


async def search_error_handler(request: Request, exc: SearchError) -> JSONResponse:
    """Translate search errors into JSON error bodies"""
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict()},
        headers=headers,
    )


def _jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies use the same error shape as ValidationError"""
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "code": "validation_error",
                "message": "Invalid search request",
                "retryable": False,
                "details": {"errors": _jsonable_errors(exc)},
            }
        },
    )


def create_app(
    coordinator: Optional[SearchCacheCoordinator] = None,
    settings: Optional[SearchSettings] = None,
    access_policy: Optional[AccessPolicy] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        coordinator: Pre-built coordinator (tests); built from settings on startup otherwise
        settings: Search settings (defaults to search_config.json + environment)
        access_policy: Policy for admin cache endpoints (defaults to X-API-Key check)
    """
    settings = settings or get_search_settings()

    app = FastAPI(
        title="True Crime Search Cache",
        description="Cached, paginated content search with single-flight index access",
        version=__version__,
        lifespan=lifespan
    )
    app.state.search_settings = settings
    app.state.search_coordinator = coordinator
    app.state.access_policy = access_policy or ApiKeyAccessPolicy(settings.admin_api_keys)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(SearchError, search_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(search_router)

    # Override dependencies in app (not router)
    app.dependency_overrides[get_search_coordinator_dep] = get_search_coordinator
    app.dependency_overrides[get_access_policy_dep] = get_access_policy

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": "truecrime-search-cache",
            "version": __version__,
            "endpoints": {
                "search": "/api/v1/search",
                "stats": "/api/v1/search/stats",
                "docs": "/docs"
            }
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        coordinator = request.app.state.search_coordinator
        settings = request.app.state.search_settings

        health_status = {
            "status": "healthy" if coordinator is not None else "starting",
            "services": {
                "search_coordinator": coordinator is not None,
                "redis": await redis_manager.is_healthy(),
            },
            "cache": {
                "type": coordinator.cache.backend_name if coordinator else settings.cache_backend,
                "ttl_seconds": settings.cache_ttl_seconds,
                "shared": bool(coordinator and coordinator.cache.backend_name == "redis"),
            },
        }
        if coordinator is not None:
            health_status["search"] = coordinator.stats()
        return health_status

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # Run on port 8000
    uvicorn.run(
        "searchcache.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
