import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cropscan.api.v1.analysis import router as analysis_router
from cropscan.core.config import get_settings
from cropscan.errors import CropScanError, RateLimitError, UpstreamError
from cropscan.utils.rate_limit import analyze_rate_limiter, get_client_ip

settings = get_settings()

logger = logging.getLogger(__name__)

ANALYSIS_PATHS = ("/api/v1/analyze", "/api/v1/detect-crop-defects")

app = FastAPI(
    title="CropScan API",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)


@app.on_event("startup")
async def _startup_checks():
    problems = get_settings().validate_required_config()
    if not problems:
        return
    if get_settings().is_production:
        raise RuntimeError(
            "Configuration validation failed in production environment: " + "; ".join(problems)
        )
    for problem in problems:
        logger.warning("Configuration problem: %s", problem)


if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials="*" not in settings.cors_allow_origins,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(analysis_router, prefix="/api/v1", tags=["analysis"])


@app.exception_handler(CropScanError)
async def _cropscan_error_handler(request: Request, exc: CropScanError):
    if isinstance(exc, UpstreamError):
        # Full detail was logged by the gateway; keep provider payloads out of the response.
        logger.info("%s on %s: %s (status=%s)", exc.kind, request.url.path, exc.message, exc.status)
    else:
        logger.info("%s on %s: %s", exc.kind, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Hide internal details for 5xx in production unless explicitly enabled.
    if exc.status_code >= 500 and not settings.expose_error_details:
        return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception")
    if settings.expose_error_details:
        return JSONResponse(status_code=500, content={"detail": str(exc)})
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.middleware("http")
async def analyze_rate_limit_middleware(request: Request, call_next):
    if request.method != "POST" or not request.url.path.startswith(ANALYSIS_PATHS):
        return await call_next(request)

    settings = get_settings()
    if not settings.rate_limit_analyze_enabled:
        return await call_next(request)

    ip = get_client_ip(request, settings.trusted_proxy_cidrs) or "unknown"
    if not analyze_rate_limiter.allow(f"analyze:ip:{ip}", settings.rate_limit_analyze_per_min, 60):
        logger.warning("Analyze rate limit hit for %s", ip)
        return JSONResponse(status_code=429, content=RateLimitError().to_dict())

    return await call_next(request)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not settings.security_headers_enabled:
        return response

    headers = response.headers
    if "X-Content-Type-Options" not in headers:
        headers["X-Content-Type-Options"] = "nosniff"
    if "X-Frame-Options" not in headers:
        headers["X-Frame-Options"] = "DENY"
    if "Referrer-Policy" not in headers:
        headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if "Cache-Control" not in headers and request.url.path.startswith("/api/"):
        headers["Cache-Control"] = "no-store"

    return response


@app.get("/health")
async def health_check():
    return {"status": "ok"}
