import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from blog_analytics.api import analytics, health, views
from blog_analytics.api.schemas import ErrorResponse
from blog_analytics.core.config import settings
from blog_analytics.core.exceptions import NotFoundError, StoreError, ValidationError
from blog_analytics.core.logging_config import setup_logging
from blog_analytics.core.middleware import RequestLoggingMiddleware
from blog_analytics.core.rate_limit import limiter
from blog_analytics.db.session import engine

# Configure structured JSON logging before anything else
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: check the database on startup, dispose the pool on shutdown."""
    try:
        async with engine.begin():
            pass  # connection pool is initialised
        logger.info("Database connection established")
    except Exception as exc:
        logger.warning("Database connection not available at startup: %s", exc)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Admin analytics for the blog: KPIs, charts, rankings, CSV export and view tracking.",
    version="1.0.0",
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url=None,
    debug=settings.debug,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# CORS middleware, using configured origins
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------
app.add_middleware(RequestLoggingMiddleware)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------
def error_response(
    status_code: int,
    message: str,
    errors: list[str] | None = None,
    headers: dict | None = None,
) -> JSONResponse:
    body = ErrorResponse(message=message, errors=errors if errors and len(errors) > 1 else None)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return error_response(400, exc.message, exc.errors)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())[1:])
        errors.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return error_response(400, "; ".join(errors) or "Invalid request", errors)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return error_response(404, exc.message)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store error on %s %s: %s", request.method, request.url.path, exc.message)
    return error_response(503, exc.message)


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return error_response(503, StoreError().message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return error_response(429, f"Rate limit exceeded: {exc.detail}")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error")


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(health.router, prefix="/api")
app.include_router(analytics.router, prefix="/api")
app.include_router(views.router, prefix="/api")
