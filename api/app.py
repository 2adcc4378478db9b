"""
FastAPI Application Entry Point

This module creates and configures the FastAPI application for the
face verification matching engine.

The application provides:
- REST endpoints for verification and identification
- REST endpoints for enrollment and identity management
- REST endpoint for the FAR / FRR calibration report
- Health check endpoint

Usage:
    # From project root:
    uvicorn api.app:app --host 0.0.0.0 --port 8000 --reload

    # Or run directly:
    python -m api.app
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import evaluation_router, management_router, verification_router
from api.schemas import HealthResponse
from core.config import get_config, get_logging_config, get_storage_config, resolve_db_path
from core.enrollment_store import SQLiteEnrollmentStore
from core.exceptions import (
    CorruptEnrollmentError,
    DimensionMismatchError,
    DuplicateFaceError,
    EnrollmentRejectedError,
    InsufficientDataError,
    InvalidEmbeddingError,
    StorageUnavailableError,
)
from core.verification_service import FaceVerificationService

logger = logging.getLogger(__name__)

API_VERSION = "0.2.0"


def configure_logging() -> None:
    """Configure root logging from the `logging` config section."""
    log_config = get_logging_config()
    logging.basicConfig(
        level=log_config.get("level", "INFO"),
        format=log_config.get(
            "format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ),
    )


def build_service() -> FaceVerificationService:
    """Create the verification service from config.yaml."""
    config = get_config()
    store = SQLiteEnrollmentStore(resolve_db_path(get_storage_config()))
    return FaceVerificationService.from_config(store, config)


def _error(status_code: int, code: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})


def register_exception_handlers(app: FastAPI) -> None:
    """Map engine errors onto HTTP status codes."""

    @app.exception_handler(InvalidEmbeddingError)
    async def invalid_embedding_handler(request: Request, exc: InvalidEmbeddingError):
        logger.warning(f"Rejected malformed embedding: {exc}")
        return _error(400, "INVALID_EMBEDDING", exc)

    @app.exception_handler(DimensionMismatchError)
    async def dimension_mismatch_handler(request: Request, exc: DimensionMismatchError):
        return _error(400, "DIMENSION_MISMATCH", exc)

    @app.exception_handler(EnrollmentRejectedError)
    async def enrollment_rejected_handler(request: Request, exc: EnrollmentRejectedError):
        return _error(400, "ENROLLMENT_REJECTED", exc)

    @app.exception_handler(DuplicateFaceError)
    async def duplicate_face_handler(request: Request, exc: DuplicateFaceError):
        return JSONResponse(
            status_code=409,
            content={
                "detail": "This face is already registered to another account.",
                "code": "DUPLICATE_FACE",
            },
        )

    @app.exception_handler(InsufficientDataError)
    async def insufficient_data_handler(request: Request, exc: InsufficientDataError):
        return _error(422, "INSUFFICIENT_DATA", exc)

    @app.exception_handler(CorruptEnrollmentError)
    async def corrupt_enrollment_handler(request: Request, exc: CorruptEnrollmentError):
        logger.error(f"Corrupt enrollment data: {exc}")
        return _error(500, "CORRUPT_ENROLLMENT", exc)

    @app.exception_handler(StorageUnavailableError)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailableError):
        logger.error(f"Storage unavailable: {exc}")
        return _error(503, "STORAGE_UNAVAILABLE", exc)


def create_app(service: Optional[FaceVerificationService] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: Verification service to serve. If omitted, one is built from
                 config.yaml when the application starts.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.

        Runs on startup:
        - Build the verification service (unless one was injected)
        - Open the enrollment store

        Runs on shutdown:
        - Close the enrollment store
        """
        build_from_config = getattr(app.state, "service", None) is None
        if build_from_config:
            configure_logging()

        logger.info("=" * 60)
        logger.info("Starting Face Verification API")
        logger.info("=" * 60)

        if build_from_config:
            app.state.service = build_service()

        app.state.service.ensure_ready()
        stats = app.state.service.store.get_stats()
        logger.info(f"Enrollment store ready: {stats['total_identities']} identities enrolled")
        logger.info(f"Decision threshold: {app.state.service.threshold}")

        yield

        logger.info("Shutting down API...")
        app.state.service.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Face Verification API",
        description="""
Face embedding verification and threshold calibration.

## Features
- **Verify**: 1:1 match of a face embedding against an enrolled identity
- **Identify**: 1:N search across all enrolled identities
- **Enrollment**: Register or replace an identity's embeddings
- **Evaluate**: FAR / FRR at a threshold and an EER estimate
        """,
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.service = service

    # Configure CORS for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(verification_router)
    app.include_router(management_router)
    app.include_router(evaluation_router)

    @app.get("/health", response_model=HealthResponse, tags=["system"])
    def health_check(request: Request):
        """
        Check the health of the API and the enrollment store.

        Reports "unhealthy" instead of failing when the store cannot be read.
        """
        svc: FaceVerificationService = request.app.state.service
        try:
            svc.ensure_ready()
            enrolled = svc.store.get_stats()["total_identities"]
            status = "healthy"
        except StorageUnavailableError as e:
            logger.error(f"Health check failed: {e}")
            enrolled = 0
            status = "unhealthy"

        return HealthResponse(
            status=status,
            store_ready=svc.is_ready,
            enrolled_identities=enrolled,
            threshold=svc.threshold,
        )

    @app.get("/", tags=["system"])
    def root():
        """Root endpoint with API information."""
        return {
            "name": "Face Verification API",
            "version": API_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from core.config import get_server_config

    configure_logging()
    server = get_server_config()

    logger.info(f"Starting server on {server['host']}:{server['port']}")
    uvicorn.run(
        "api.app:app",
        host=server["host"],
        port=server["port"],
        reload=False,
    )
