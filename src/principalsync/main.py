"""PrincipalSync main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from principalsync import __version__
from principalsync.api import info_router, router
from principalsync.api.deps import validate_auth_config
from principalsync.api.schemas import ErrorResponse
from principalsync.config import settings
from principalsync.db.base import close_db, init_db
from principalsync.engine.errors import PrincipalSyncError, StoreError
from principalsync.utils.text import sanitize_message

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("principalsync")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting PrincipalSync server...")
    logger.info(f"Environment: {settings.env.value}")

    # Validate authentication configuration (fail fast if insecure)
    validate_auth_config()

    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down PrincipalSync server...")
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="PrincipalSync",
    description="Reconciles external principal names between local groups and an IdP",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)


@app.exception_handler(PrincipalSyncError)
async def principalsync_error_handler(request: Request, exc: PrincipalSyncError):
    """Render engine errors as ``{"success": false, "error": ...}``."""
    if isinstance(exc, StoreError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=sanitize_message(exc.message)).model_dump(
            by_alias=True, exclude_none=True
        ),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    """Unexpected failures still answer with the JSON error envelope."""
    logger.error(f"{request.method} {request.url.path} failed unexpectedly: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error=sanitize_message(f"Internal error: {exc}")).model_dump(
            by_alias=True, exclude_none=True
        ),
    )


# Ungated GET descriptions share paths with gated POSTs
app.include_router(info_router)
app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "principalsync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
