# src/common_stage/main.py
"""Main entry point for the Common Stage application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from common_stage.api.v1 import (
    geocode_router,
    moderation_router,
    posts_router,
    profiles_router,
    reports_router,
    threads_router,
)
from common_stage.core.errors import CommonError
from common_stage.core.settings import settings
from common_stage.services.geocoding import get_geocoding_client
from common_stage.services.notifications import get_email_notifier
from common_stage.services.realtime import get_change_feed
from common_stage.services.storage import get_avatar_storage

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Common API",
    description="Location-based activity posts and one-to-one conversations",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(posts_router, prefix="/api/v1")
app.include_router(threads_router, prefix="/api/v1")
app.include_router(reports_router, prefix="/api/v1")
app.include_router(moderation_router, prefix="/api/v1")
app.include_router(profiles_router, prefix="/api/v1")
app.include_router(geocode_router, prefix="/api/v1")


@app.exception_handler(CommonError)
async def handle_common_error(request: Request, exc: CommonError) -> JSONResponse:
    """Map domain errors onto their HTTP status with a user-facing detail."""
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.on_event("shutdown")
async def on_shutdown() -> None:
    get_change_feed().close()
    await get_email_notifier().close()
    await get_avatar_storage().close()
    await get_geocoding_client().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("common_stage.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
