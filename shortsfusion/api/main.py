"""
FastAPI Main Application
"""

from fastapi import FastAPI, Request, status
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from pathlib import Path

from shortsfusion.config.settings import settings
from shortsfusion.core.providers import ProviderError
from shortsfusion.services.admission import InvalidParameters
from shortsfusion.services.identity import Unauthenticated
from shortsfusion.services.ledger import InsufficientBalance, LedgerConflict, UserNotFound
from shortsfusion.services.observability import logger
from shortsfusion.services.rate_limiter import RateLimitError
from shortsfusion.services.video_state import VideoNotFound, VideoStateError


# Create FastAPI app
app = FastAPI(
    title="ShortsFusion - Short Video Generation API",
    description="Token-metered AI short video generation with queued multi-stage rendering",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Static files (generated images and audio)
static_root = Path(settings.static_root)
static_root.mkdir(parents=True, exist_ok=True)
app.mount(settings.static_url_prefix, StaticFiles(directory=str(static_root)), name="static")


# Health check endpoint
@app.get("/health")
async def health_check():
    """
    Health check endpoint

    Returns:
        JSON response with service health status
    """
    return {
        "status": "healthy",
        "version": "1.0.0",
        "service": "shortsfusion-backend",
    }


# Exception handlers
def _error_response(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    body = {"code": code, "message": message}
    body.update(extra)
    return JSONResponse(status_code=status_code, content={"error": body})


def _serialize_validation_errors(errors):
    cleaned = []
    for err in errors:
        err_copy = err.copy()
        ctx = err_copy.get("ctx")
        if ctx:
            err_copy["ctx"] = {
                key: (str(value) if isinstance(value, Exception) else value)
                for key, value in ctx.items()
            }
        cleaned.append(err_copy)
    return cleaned


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle request validation errors (400)
    """
    logger.warning(
        "validation_error",
        path=request.url.path,
        errors=_serialize_validation_errors(exc.errors()),
    )
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        "Request validation failed",
        details=_serialize_validation_errors(exc.errors()),
    )


@app.exception_handler(InvalidParameters)
async def invalid_parameters_handler(request: Request, exc: InvalidParameters):
    logger.warning("invalid_parameters", path=request.url.path, error=str(exc))
    return _error_response(status.HTTP_400_BAD_REQUEST, "INVALID_PARAMETERS", str(exc))


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """
    Handle value errors (400)
    """
    logger.warning(
        "value_error",
        path=request.url.path,
        error=str(exc),
    )
    return _error_response(status.HTTP_400_BAD_REQUEST, "INVALID_VALUE", str(exc))


@app.exception_handler(InsufficientBalance)
async def insufficient_balance_handler(request: Request, exc: InsufficientBalance):
    logger.info(
        "insufficient_balance",
        path=request.url.path,
        required=exc.required,
        available=exc.available,
    )
    return _error_response(
        status.HTTP_402_PAYMENT_REQUIRED,
        "INSUFFICIENT_BALANCE",
        str(exc),
        required=exc.required,
        available=exc.available,
    )


@app.exception_handler(UserNotFound)
async def user_not_found_handler(request: Request, exc: UserNotFound):
    return _error_response(status.HTTP_404_NOT_FOUND, "USER_NOT_FOUND", str(exc))


@app.exception_handler(VideoNotFound)
async def video_not_found_handler(request: Request, exc: VideoNotFound):
    return _error_response(status.HTTP_404_NOT_FOUND, "VIDEO_NOT_FOUND", str(exc))


@app.exception_handler(VideoStateError)
async def video_state_handler(request: Request, exc: VideoStateError):
    logger.warning("invalid_video_state", path=request.url.path, error=str(exc))
    return _error_response(status.HTTP_409_CONFLICT, "INVALID_VIDEO_STATE", str(exc))


@app.exception_handler(RateLimitError)
async def rate_limit_handler(request: Request, exc: RateLimitError):
    logger.warning("rate_limited", path=request.url.path, reset_at=exc.reset_at)
    return _error_response(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "RATE_LIMIT_EXCEEDED",
        str(exc),
        reset_at=exc.reset_at,
    )


@app.exception_handler(Unauthenticated)
async def unauthenticated_handler(request: Request, exc: Unauthenticated):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": {"code": "UNAUTHENTICATED", "message": str(exc)}},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    logger.error(
        "provider_error",
        path=request.url.path,
        provider=exc.provider,
        error=exc.message,
    )
    return _error_response(
        status.HTTP_502_BAD_GATEWAY,
        "PROVIDER_ERROR",
        f"{exc.provider} provider failed",
        retryable=exc.retryable,
    )


@app.exception_handler(LedgerConflict)
async def ledger_conflict_handler(request: Request, exc: LedgerConflict):
    logger.error(
        "ledger_conflict_unhandled",
        path=request.url.path,
        idempotency_key=exc.idempotency_key,
        error=str(exc),
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "LEDGER_CONFLICT",
        "Token ledger conflict",
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Handle generic exceptions (500)
    """
    logger.error(
        "unexpected_error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred",
    )


# Startup event
@app.on_event("startup")
async def startup_event():
    """
    Initialize application on startup
    """
    logger.info("application_starting", log_level=settings.log_level)

    from shortsfusion.models import init_db

    init_db()

    logger.info("application_started")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup on shutdown
    """
    logger.info("application_shutting_down")


# Import routers
from shortsfusion.api.routes import account, generation, videos, webhooks  # noqa: E402

# Register routers
app.include_router(generation.router, prefix="/api", tags=["generation"])
app.include_router(videos.router, prefix="/api", tags=["videos"])
app.include_router(account.router, prefix="/api", tags=["account"])
app.include_router(webhooks.router, prefix="/api", tags=["webhooks"])


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint

    Returns:
        JSON response with API information
    """
    return {
        "name": "ShortsFusion Video Generation API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }
