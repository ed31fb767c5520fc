"""
FastAPI Application — Entry Point

URL ingestion pipeline API

Architecture:
  - REST routes are versioned under /api/v1/
  - Job progress is pushed to subscribers over WS /ws
  - Jobs are processed by in-process queue workers, never inside a request
  - Structured JSON error responses on all 4xx/5xx

Middleware stack (innermost → outermost):
  1. CORS — restrict to configured origins
  2. Request ID + request logging — X-Request-ID header on every response

Error mapping:
  ValidationError → 400 VALIDATION_ERROR
  NotFound        → 404 NOT_FOUND
  InvalidState    → 409 INVALID_STATE
  request schema  → 422 VALIDATION_ERROR
  anything else   → 500 INTERNAL_ERROR (no stack traces)
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docpipe.api.v1.documents import router as documents_router
from docpipe.api.v1.jobs import router as jobs_router
from docpipe.api.v1.realtime import router as realtime_router
from docpipe.core.config import settings
from docpipe.core.errors import InvalidState, NotFound, PipelineError, ValidationError
from docpipe.db.session import check_db_health
from docpipe.schemas.jobs import ErrorDetail, ErrorResponse
from docpipe.services.container import AppServices, build_services

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

ServicesFactory = Callable[[], Awaitable[AppServices]]


def _error_body(request: Request, code: str, message: str, details=None) -> dict:
    body = ErrorResponse(
        error_code=code,
        message=message,
        details=details or [],
        request_id=request.headers.get("X-Request-ID"),
    )
    return body.model_dump(mode="json")


def create_app(services_factory: Optional[ServicesFactory] = None) -> FastAPI:
    factory = services_factory or build_services

    # ---------------------------------------------------------------------------
    # Application lifespan: startup / shutdown hooks
    # ---------------------------------------------------------------------------

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting docpipe | env=%s workers=%d",
            settings.app_env, settings.worker_concurrency,
        )
        services = await factory()
        app.state.services = services

        db_health = await check_db_health(services.engine)
        if db_health["status"] != "ok":
            logger.critical("Database health check failed at startup: %s", db_health)
            await services.aclose()
            raise RuntimeError(f"DB unavailable: {db_health}")

        await services.start()
        logger.info("Embedding service: %s", settings.embedding_service_url)
        logger.info("OCR service: %s", settings.ocr_service_url)

        yield

        logger.info("Shutting down docpipe")
        await services.aclose()

    app = FastAPI(
        title="docpipe",
        description=(
            "Asynchronous URL ingestion: fetch HTML or PDF documents, extract and "
            "OCR their text, embed chunks, and stream job progress in real time."
        ),
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order, last added = outermost)
    # ----------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.app_env == "development" else settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "HTTP %s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response

    # ----------------------------------------------------------------
    # Exception handlers: uniform structured error responses
    # ----------------------------------------------------------------

    @app.exception_handler(ValidationError)
    async def pipeline_validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(request, "VALIDATION_ERROR", exc.message),
        )

    @app.exception_handler(NotFound)
    async def not_found_handler(request: Request, exc: NotFound):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=_error_body(request, "NOT_FOUND", exc.message),
        )

    @app.exception_handler(InvalidState)
    async def invalid_state_handler(request: Request, exc: InvalidState):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=_error_body(request, "INVALID_STATE", exc.message),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Request body or query failed schema validation; one ErrorDetail per problem."""
        details = [
            ErrorDetail(
                field=" → ".join(str(loc) for loc in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_body(request, "VALIDATION_ERROR", "Request validation failed.", details),
        )

    @app.exception_handler(PipelineError)
    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Anything not mapped above becomes INTERNAL_ERROR; details go to the log only."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        logger.exception(
            "Unhandled exception | path=%s request_id=%s",
            request.url.path, request_id,
        )
        body = ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            request_id=request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    app.include_router(jobs_router,      prefix="/api/v1")
    app.include_router(documents_router, prefix="/api/v1")
    app.include_router(realtime_router)

    # ----------------------------------------------------------------
    # Health & readiness endpoints
    # ----------------------------------------------------------------

    @app.get(
        "/health",
        tags=["Operations"],
        summary="Liveness probe",
        description="Returns 200 if the process is alive. No external checks.",
    )
    async def health() -> dict:
        return {"status": "ok", "service": "docpipe"}

    @app.get(
        "/ready",
        tags=["Operations"],
        summary="Readiness probe",
        description="Returns 200 only if the database is reachable and workers are running.",
    )
    async def readiness(request: Request) -> JSONResponse:
        services: AppServices = request.app.state.services
        db_status = await check_db_health(services.engine)
        if db_status["status"] != "ok" or not services.queue.running:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "status": "not_ready",
                    "database": db_status,
                    "workers": services.queue.running,
                },
            )
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "database": db_status, "workers": True},
        )

    return app


# ---------------------------------------------------------------------------
# Application instance (imported by uvicorn)
# ---------------------------------------------------------------------------

app = create_app()


# ---------------------------------------------------------------------------
# Local development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docpipe.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
        access_log=True,
    )
