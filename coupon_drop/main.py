import logging

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from coupon_drop.config import settings
from coupon_drop.domain.clock import isoformat, utcnow
from coupon_drop.domain.errors import CouponError, StorageUnavailable
from coupon_drop.domain.models import HealthOut
from coupon_drop.logging_setup import setup_logging
from coupon_drop.middleware.cors import add_cors
from coupon_drop.middleware.security_headers import SecurityHeadersMiddleware
from coupon_drop.middleware.rate_limit import init_rate_limiter, add_rate_limit_exception_handler
from coupon_drop.repos.coupon_store import CouponStore, get_store

from coupon_drop.api.public import router as public_router
from coupon_drop.api.admin import router as admin_router

logger = logging.getLogger(__name__)

GENERIC_ERROR = {"message": "Internal server error. Please try again later."}


def add_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StorageUnavailable)
    async def storage_unavailable(request: Request, exc: StorageUnavailable):
        logger.error("storage unavailable on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content=GENERIC_ERROR)

    @app.exception_handler(CouponError)
    async def coupon_error(request: Request, exc: CouponError):
        logger.error("unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(status_code=500, content=GENERIC_ERROR)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("unexpected error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=GENERIC_ERROR)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title="Coupon Drop")

    # CORS (restrict to your domain in production)
    add_cors(app)

    # Security headers
    app.add_middleware(SecurityHeadersMiddleware, app_env=settings.APP_ENV)

    # Rate limiter (slowapi)
    init_rate_limiter(app)
    add_rate_limit_exception_handler(app)

    add_error_handlers(app)

    # Routes
    app.include_router(public_router)
    app.include_router(admin_router)

    @app.get("/api/health", tags=["health"], response_model=HealthOut)
    def health(store: CouponStore = Depends(get_store)):
        connected = store.ping()
        return HealthOut(
            status="ok" if connected else "degraded",
            storage_connected=connected,
            timestamp=isoformat(utcnow()),
        )

    return app
