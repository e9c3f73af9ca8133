"""Main application module.

This module initializes the FastAPI application, includes routes,
and configures middleware, exception handlers and the startup sequence.
"""

import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import api_router
from app.core.config import settings
from app.core.logging import setup_logging
from app.core.redis import redis_manager
from app.db import initialize_database_connection
from app.middleware.logging import add_logging_middleware
from app.scheduler.scheduler import scheduler_service
from app.services.shortener import drain_pending_clicks

# Setup logging
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run startup and shutdown tasks."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT.value}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    # The store is the source of truth: no store, no service
    if not await initialize_database_connection():
        logger.critical("Failed to connect to database after multiple attempts")
        sys.exit(1)

    # An unreachable cache only degrades performance
    await redis_manager.connect()

    if settings.SCHEDULER_ENABLED:
        try:
            scheduler_service.initialize()
            scheduler_service.start()
        except Exception as e:
            logger.opt(exception=True).error(f"Scheduler could not be started: {e}")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")
    await drain_pending_clicks()

    if scheduler_service.is_running:
        scheduler_service.shutdown()

    await redis_manager.close()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.REQUEST_LOGGING_ENABLED:
    add_logging_middleware(app)

# Include API router
app.include_router(api_router)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "detail": exc.detail},
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with detailed information."""
    logger.warning(f"Request validation error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=422,
        content={"success": False, "detail": "Validation error", "errors": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to catch and log all unhandled exceptions."""
    error_id = f"error-{time.time()}"
    logger.opt(exception=exc).error(
        f"Unhandled exception in {request.method} {request.url.path} [{error_id}]"
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "detail": "Internal server error occurred",
            "error_id": error_id,
            "message": str(exc) if settings.DEBUG else "Internal server error"
        }
    )
