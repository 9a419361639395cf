"""FastAPI application entrypoint for the DomaVault analytics API.

Run with: uvicorn main:app --host 0.0.0.0 --port 3000
"""
import sys

# Ensure UTF-8 encoding
if sys.stdout and hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding='utf-8')

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import time
import uuid

from app.api.routes import router
from app.core.logging import get_logger, setup_logging
from app.core.config import settings
from app.infrastructure.redis import get_rate_limiter

# Initialize structured logging
log_format = settings.environment == "production"
setup_logging(level=settings.log_level, json_format=log_format)
logger = get_logger(__name__)

# Application metadata
APP_VERSION = "1.0.0"
APP_NAME = "DomaVault Domain Collateral Analytics API"

ENDPOINTS = [
    "POST   /api/analyze              - Analyze single domain",
    "POST   /api/analyze-batch        - Analyze multiple domains",
    "GET    /api/activities/{domain}  - Get domain activities",
    "GET    /api/quick-score/{domain} - Get quick score",
    "POST   /api/compare              - Compare domains",
    "GET    /api/events               - Poll Doma registry events",
    "POST   /api/events/ack/{id}      - Acknowledge polled events",
    "POST   /api/events/reset/{id}    - Rewind the event cursor",
    "GET    /api/health               - Health check",
    "GET    /api/supported-tlds       - List supported TLDs",
]

app = FastAPI(
    title=APP_NAME,
    description="Creditworthiness scoring for tokenized domains used as loan collateral",
    version=APP_VERSION,
    docs_url="/docs" if settings.environment != "production" else None,  # Disable in prod
    redoc_url="/redoc" if settings.environment != "production" else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def rate_limit(request: Request, call_next):
    """Fixed-window rate limit on /api/ routes, per client address."""
    if not settings.rate_limit_enabled or not request.url.path.startswith("/api/"):
        return await call_next(request)

    client_id = request.client.host if request.client else "unknown"
    result = get_rate_limiter().hit(client_id)
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
    }

    if not result.allowed:
        logger.warning(f"Rate limit exceeded for {client_id}", extra={"client": client_id, "path": request.url.path})
        headers["Retry-After"] = str(result.retry_after)
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": "Too many requests, please try again later."},
            headers=headers,
        )

    response = await call_next(request)
    response.headers.update(headers)
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log one line per request with its id, outcome and timing.

    An incoming ``X-Request-ID`` is reused so calls can be traced through the
    dashboard; otherwise a fresh id is issued.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    context = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client": request.client.host if request.client else None,
    }
    started = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception as e:
        context["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
        context["error_type"] = type(e).__name__
        logger.error(f"{request.method} {request.url.path} raised {type(e).__name__}",
                     extra=context, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "request_id": request_id},
            headers={"X-Request-ID": request_id},
        )

    context["status_code"] = response.status_code
    context["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
    level = logging.WARNING if response.status_code >= 400 else logging.INFO
    logger.log(level, f"{request.method} {request.url.path} -> {response.status_code}", extra=context)

    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as ``{success: false, error}``."""
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = "Endpoint not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and parameters are client errors (400)."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": f"{location}: {message}" if location else message},
    )


@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    limiter = get_rate_limiter()
    logger.info("Application starting up", extra={"operation": "startup"})
    logger.info(
        f"Doma endpoint: {settings.doma_api_endpoint} | "
        f"mode: {'live' if settings.doma_api_key else 'demo (no DOMA_API_KEY)'} | "
        f"rate limit: {limiter.max_requests}/{limiter.window_ms}ms via {limiter.backend}"
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("Application shutting down")


app.include_router(router)


@app.get("/")
def root():
    """Root endpoint with basic service info."""
    return {
        "service": APP_NAME,
        "version": APP_VERSION,
        "status": "running",
        "environment": settings.environment,
        "endpoints": ENDPOINTS,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.port, reload=settings.debug)
