# main.py

import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.sessions import SessionMiddleware

from storefront.logging import logger
from storefront.core.config import settings
from storefront.core.error_handlers import setup_error_handlers, add_request_id_middleware
from storefront.core.rate_limiter import limiter, rate_limit_exceeded_handler
from storefront.core.security import InputSanitizationMiddleware, SecurityHeadersMiddleware
from storefront.database.core import init_db
from storefront.services.cleanup import cleanup_scheduler

from storefront.auth.controller import router as auth_router
from storefront.users.controller import router as users_router
from storefront.products.controller import router as products_router
from storefront.orders.controller import router as orders_router
from storefront.site_settings.controller import router as settings_router
from storefront.payments.controller import router as payments_router
from storefront.uploads.controller import router as upload_router, profile_router

STARTED_AT = time.monotonic()
PAYSTACK_WEBHOOK_PATH = "/api/payments/paystack-webhook"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    init_db()
    logger.info("Database tables ready")

    if settings.CLEANUP_ENABLED:
        await cleanup_scheduler.start()

    logger.info(f"Storefront API started ({settings.ENVIRONMENT})")
    yield

    if cleanup_scheduler.running:
        await cleanup_scheduler.stop()
    logger.info("Storefront API stopped")


app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    lifespan=lifespan
)

# Set up error handlers
setup_error_handlers(app)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Middleware runs outermost-last-added; input sanitation sits directly around the routes
app.add_middleware(
    InputSanitizationMiddleware,
    prefix="/api",
    exempt_paths=(PAYSTACK_WEBHOOK_PATH,),
)
app.add_middleware(SlowAPIMiddleware)

# Session middleware carries the OAuth state across the provider redirect
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET_KEY,
    same_site="lax",
    https_only=settings.IS_PRODUCTION,
    max_age=60 * 60 * 2,
    session_cookie="storefront_session"
)

# Add request ID middleware for better error tracking
app.middleware("http")(add_request_id_middleware)

app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_origin_regex=r"^https://([a-z0-9-]+\.)?vercel\.app$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(products_router)
app.include_router(orders_router)
app.include_router(settings_router)
app.include_router(payments_router)
app.include_router(upload_router)
app.include_router(profile_router)

os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.get("/health")
@limiter.exempt
async def health_check(request: Request):
    """Liveness check; not rate limited."""
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "environment": settings.ENVIRONMENT,
    }


@app.get("/", tags=["Root"])
async def read_root():
    return {"status": "ok", "message": "Storefront API is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT)
