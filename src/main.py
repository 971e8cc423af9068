"""
Compliance Authorization Kernel

FastAPI application entry point. The HTTP surface is a thin adapter; every
decision is made by the kernel and every kernel error maps to one JSON body
shape: ``{"detail", "code", "request_id", ...}``.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.api.deps import DbSession
from src.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from src.api.v1 import router as api_v1_router
from src.config import Settings, get_settings
from src.database import close_db, init_db
from src.kernel.errors import AppError, ErrorCode
from src.kernel.permissions.capabilities import CAPABILITY_TABLE_VERSION
from src.logging_config import configure_logging, get_logger
from src.schemas.common import HealthResponse

logger = get_logger(__name__)

_DESCRIPTION = """
Authorization & Audited-Mutation Kernel for a multi-tenant compliance platform.

- **Access checks**: deny-by-default verdicts with reason codes
- **Audit log**: append-only field-level records, scoped by role
- **Impersonation**: bounded "view as" sessions with absolute and inactivity timeouts
"""


def error_response(
    request: Request,
    status_code: int,
    detail: Any,
    code: Optional[ErrorCode] = None,
    headers: Optional[Dict[str, str]] = None,
    **fields: Any,
) -> JSONResponse:
    """Build the shared error body, stamped with the request's correlation id."""
    body: Dict[str, Any] = {"detail": detail}
    if code is not None:
        body["code"] = code.value
    body.update({k: v for k, v in fields.items() if v is not None})

    out_headers = dict(headers or {})
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        body["request_id"] = request_id
        out_headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(status_code=status_code, content=body, headers=out_headers)


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        # Internal failures are reported generically; their cause stays in the logs
        if exc.code == ErrorCode.INTERNAL:
            logger.error("Kernel internal error: %s", exc.message, extra={"alert": True})
            return error_response(request, exc.status_code, "Internal server error", exc.code)
        return error_response(
            request, exc.status_code, exc.message, exc.code, details=exc.details or None
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return error_response(request, exc.status_code, exc.detail, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        return error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            ErrorCode.VALIDATION_ERROR,
            errors=errors,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc, extra={"alert": True})
        if settings.debug:
            return error_response(
                request,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                str(exc),
                ErrorCode.INTERNAL,
                type=type(exc).__name__,
            )
        return error_response(
            request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", ErrorCode.INTERNAL
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Assemble the HTTP application.

    Args:
        settings: Overrides the process settings (tests)

    Returns:
        FastAPI app with middleware, error handlers and the v1 router mounted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        configure_logging(
            log_level=settings.log_level,
            environment=settings.environment,
            debug=settings.debug,
        )
        logger.info(
            "Starting %s v%s (capability table %s)",
            settings.project_name,
            settings.version,
            CAPABILITY_TABLE_VERSION,
        )
        await init_db()
        yield
        logger.info("Shutting down")
        await close_db()

    app = FastAPI(
        title=settings.project_name,
        description=_DESCRIPTION,
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app, settings)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(db: DbSession):
        """Liveness plus a round trip to the database."""
        try:
            await db.execute(text("SELECT 1"))
            database = "connected"
        except SQLAlchemyError:
            logger.error("Health check could not reach the database", exc_info=True, extra={"alert": True})
            database = "unavailable"
        return HealthResponse(
            status="ok" if database == "connected" else "degraded",
            version=settings.version,
            database=database,
            capability_table_version=CAPABILITY_TABLE_VERSION,
        )

    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run("src.main:app", host="0.0.0.0", port=8000, reload=_settings.debug)
