"""FastAPI entry point."""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.models.errors import ErrorCodes, error_detail
from app.api.services.audit_runner import audit_runner
from app.api.v1.router import router as api_router
from site_audit.config.settings import VERSION, settings
from site_audit.logger import configure_logging
from site_audit.pipeline.errors import AuditError

configure_logging()
logger = logging.getLogger(__name__)

DOCS_PATHS = ("/api/docs", "/api/redoc", "/api/openapi.json")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    # Swagger UI and ReDoc load their assets from a CDN
    DOCS_CSP = (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://fastapi.tiangolo.com; "
        "frame-ancestors 'none'"
    )
    JSON_CSP = "default-src 'none'; frame-ancestors 'none'"

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        docs = request.url.path in DOCS_PATHS
        response.headers["Content-Security-Policy"] = self.DOCS_CSP if docs else self.JSON_CSP
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        return response


class RateLimitHeadersMiddleware(BaseHTTPMiddleware):
    """Expose the audit creation rate limit recorded by the dependency."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        limit = getattr(request.state, "rate_limit_limit", None)
        if limit is None:
            return response
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(request.state.rate_limit_remaining)
        response.headers["X-RateLimit-Reset"] = str(
            int(time.time()) + request.state.rate_limit_reset
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Site Audit API %s starting", VERSION)
    yield
    # running batches persist their state before exit
    audit_runner.shutdown(wait=True)
    logger.info("Site Audit API stopped")


app = FastAPI(
    title="Site Audit API",
    description="""
API for auditing whole websites for SEO, technical health and AI readiness.

## Features

- **Crawler**: Breadth-first discovery of same-site pages within a page budget
- **Checks**: 26 checks across SEO, technical and AI-readiness categories
- **Scores**: Weighted 0-100 score per category plus an overall score

## Batches and continuation

Audits run in time-boxed batches:
1. `POST /api/v1/audits` - Submit URL, get `audit_id`
2. `GET /api/v1/audits/{audit_id}` - Poll for progress
3. `POST /api/v1/audits/{audit_id}/continue` - When status is `batch_complete`
4. `POST /api/v1/audits/{audit_id}/stop` - Cancel a running audit
""",
    version=VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)


@app.exception_handler(AuditError)
async def audit_error_handler(request: Request, exc: AuditError) -> JSONResponse:
    """Pipeline errors the endpoints did not map themselves."""
    logger.exception("Unhandled audit error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": error_detail(ErrorCodes.INTERNAL_ERROR, "Internal server error")},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# outermost last
app.add_middleware(RateLimitHeadersMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

app.include_router(api_router, prefix="/api/v1")
