"""PhysioFit Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from physiofit.protocols import (
    GenerationUnavailableError,
    InvalidInputError,
    PhysioFitError,
    UnauthenticatedError,
)

from .config import get_settings
from .database import get_db
from .logging_config import get_logger, setup_logging
from .rate_limit import limiter
from .routes import chat_router

VERSION = "0.1.0"

logger = get_logger("physiofit.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info(
        f"Starting PhysioFit Backend API (debug={settings.debug}, model={settings.ollama_model})"
    )
    yield
    # Shutdown
    generator = getattr(app.state, "generator", None)
    if generator is not None:
        generator.close()
    logger.info("Shutting down PhysioFit Backend API")


app = FastAPI(
    title="PhysioFit Backend API",
    description="AI physiotherapy coach chat relay",
    version=VERSION,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(chat_router)


# =============================================================================
# Error envelope: every failure is {"error": "<text>"}
# =============================================================================


def _error(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


@app.exception_handler(UnauthenticatedError)
async def unauthenticated_handler(request: Request, exc: UnauthenticatedError):
    return _error(
        status.HTTP_401_UNAUTHORIZED,
        str(exc) or "Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(GenerationUnavailableError)
async def generation_unavailable_handler(request: Request, exc: GenerationUnavailableError):
    logger.error(f"Generation failed ({exc.error_class}): {exc}")
    if exc.error_class == "timeout":
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "The coach took too long to answer")
    return _error(status.HTTP_502_BAD_GATEWAY, "The coach is not available right now")


@app.exception_handler(PhysioFitError)
async def physiofit_error_handler(request: Request, exc: PhysioFitError):
    logger.exception(f"Unhandled relay error: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, _flatten_validation_errors(exc.errors()))


def _flatten_validation_errors(errors) -> str:
    """Render pydantic errors as one line, e.g. "messages.0.role: Input should be ..."."""
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query"))
        msg = err.get("msg", "Invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid request"


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return _error(status.HTTP_429_TOO_MANY_REQUESTS, f"Rate limit exceeded: {exc.detail}")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# =============================================================================
# Health
# =============================================================================


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "physiofit-backend",
        "version": VERSION,
        "status": "ok",
    }


@app.get("/health")
def health(request: Request):
    """Detailed health check with actual database verification."""
    db_status = "disconnected"
    try:
        db = get_db(request, get_settings())
        db.table(get_settings().chat_turns_table).select("id").limit(1).execute()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "database": db_status,
    }
