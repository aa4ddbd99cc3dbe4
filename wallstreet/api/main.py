import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

from wallstreet.api.rate_limit import increment_rate_limit_exceeded, limiter
from wallstreet.api.routes_health import router as health_router
from wallstreet.api.routes_referral import router as referral_router
from wallstreet.api.routes_subscription import router as subscription_router
from wallstreet.api.routes_webhooks import router as webhook_router
from wallstreet.core.config import settings
from wallstreet.core.errors import register_error_handlers
from wallstreet.core.logger import init_logging
from wallstreet.core.monitoring import init_monitoring


async def _rate_limit_handler(request, exc: RateLimitExceeded):
    increment_rate_limit_exceeded()
    return JSONResponse(status_code=429, content={"error": "Too many requests"})


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):  # type: ignore[override]
        response = await call_next(request)
        response.headers.setdefault(
            "Strict-Transport-Security",
            f"max-age={settings.HSTS_SECONDS}; includeSubDomains",
        )
        response.headers.setdefault("Referrer-Policy", "same-origin")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Content-Security-Policy", settings.CONTENT_SECURITY_POLICY)
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject bodies whose declared length exceeds ``max_body``; payloads here are small JSON."""

    def __init__(self, app: ASGIApp, max_body: int = 1024 * 1024) -> None:
        super().__init__(app)
        self.max_body = max_body
        self.logger = logging.getLogger("wallstreet.request_size")

    async def dispatch(self, request, call_next):  # type: ignore[override]
        length_header = request.headers.get("content-length")
        if length_header and length_header.isdigit() and int(length_header) > self.max_body:
            self.logger.warning("Rejected %s body of %s bytes", request.url.path, length_header)
            return JSONResponse(status_code=413, content={"error": "Request body too large"})
        return await call_next(request)


def create_app() -> FastAPI:
    init_logging()
    init_monitoring()

    # No interactive docs in production
    is_production = settings.ENV.lower() == "prod"
    app = FastAPI(
        title=settings.APP_NAME,
        debug=False,
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
    )
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)
    register_error_handlers(app)
    app.include_router(referral_router)
    app.include_router(subscription_router)
    app.include_router(webhook_router, prefix="/webhooks", tags=["webhooks"])
    app.include_router(health_router)

    return app


app = create_app()
