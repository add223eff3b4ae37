"""
Camp Registration API - Main Application Entry Point
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request, status, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from app.api import (
    authentication, users, core_config, camping_options, jobs, shifts,
    registrations, admin_registrations, admin_audit, payments, notifications,
)
from app.config import settings
from app.db import init_db, close_db
from app.db.connection import get_db_session, check_db_connection
from app.domain.errors import DomainError
from app.services.core_config_service import CoreConfigService
from app.version import __version__
import logging
import re


# Custom logging filter to redact sensitive data
class SensitiveDataFilter(logging.Filter):
    """Filter to redact sensitive data from logs"""

    def filter(self, record):
        if hasattr(record, 'msg'):
            msg = str(record.msg)

            # Redact JWT tokens
            if 'eyJ' in msg:
                msg = re.sub(r'eyJ[A-Za-z0-9_-]*\.eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*', '[JWT_REDACTED]', msg)

            # Redact Bearer credentials
            msg = re.sub(r'(Bearer\s+)[A-Za-z0-9._-]+', r'\1[REDACTED]', msg)

            # Redact Stripe secret and webhook keys
            msg = re.sub(r'\b(sk|rk)_(live|test)_[A-Za-z0-9]+', '[STRIPE_KEY_REDACTED]', msg)
            msg = re.sub(r'\bwhsec_[A-Za-z0-9]+', '[WEBHOOK_SECRET_REDACTED]', msg)

            # Redact one-time login codes
            msg = re.sub(r"(['\"]?(?:login_)?code['\"]?\s*[:=]\s*['\"]?)(\d{6})", r"\1[REDACTED]", msg)

            record.msg = msg
        return True


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Add filter to all loggers
for handler in logging.root.handlers:
    handler.addFilter(SensitiveDataFilter())

# Add filter to httpx logger (logs PayPal API requests)
httpx_logger = logging.getLogger('httpx')
httpx_logger.addFilter(SensitiveDataFilter())

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown"""
    logger.info("🚀 Starting Camp Registration API")
    logger.info(f"📦 Version: {__version__}")
    logger.info(f"📝 Environment: {settings.environment}")

    await init_db()
    logger.info("✅ Configuration loaded successfully")

    yield

    logger.info("Shutting down...")
    await close_db()


app = FastAPI(
    title="Camp Registration API",
    description="Registration, work shifts, camping options and payments for an annual camp",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)


# ============================================
# CORS Middleware Configuration
# ============================================

allowed_origins = [settings.frontend_url]
if settings.cors_origins:
    allowed_origins += [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
if settings.is_development:
    allowed_origins += ["http://localhost:5173", "http://127.0.0.1:5173"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger.info(f"✅ CORS configured for origins: {allowed_origins}")


# ============================================
# Security Headers
# ============================================

# Swagger UI and ReDoc load their assets from a CDN
DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")
NO_STORE_PREFIXES = ("/auth", "/users", "/payments", "/admin", "/config")


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    path = request.url.path

    if not path.startswith(DOCS_PATHS):
        if settings.is_development:
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; script-src 'self' 'unsafe-inline' 'unsafe-eval'; "
                "style-src 'self' 'unsafe-inline'; img-src 'self' data:; font-src 'self' data:;"
            )
        else:
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; script-src 'self'; style-src 'self'; img-src 'self'; font-src 'self';"
            )
        response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
        response.headers["Cross-Origin-Resource-Policy"] = "same-origin"

    if not settings.is_development:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"

    response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=(), interest-cohort=()"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["X-Content-Type-Options"] = "nosniff"

    # Responses carrying tokens or personal data must not be cached
    if path.startswith(NO_STORE_PREFIXES):
        response.headers["Cache-Control"] = "no-store, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"

    return response


# ============================================
# Exception Handlers
# ============================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors for debugging"""
    logger.warning(f"Validation error for {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_errors(exc)}
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raw exception raised by a validator
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# ============================================
# Routes
# ============================================

app.include_router(authentication.router, tags=["auth"])
app.include_router(users.router, tags=["users"])
app.include_router(core_config.router, tags=["config"])
app.include_router(camping_options.router, tags=["camping-options"])
app.include_router(jobs.router, tags=["jobs"])
app.include_router(shifts.router, tags=["shifts"])
app.include_router(registrations.router, tags=["registrations"])
app.include_router(admin_registrations.router, tags=["admin-registrations"])
app.include_router(admin_audit.router, tags=["admin-audit"])
app.include_router(payments.router, tags=["payments"])
app.include_router(notifications.router, tags=["notifications"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "app": "Camp Registration API",
        "version": __version__,
        "status": "running",
        "environment": settings.environment,
    }


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db_session)):
    """
    Health check with dependency status.

    Payment and email providers are reported as configured or not; they
    are never called from here.
    """
    database_ok = await check_db_connection()
    stripe = await CoreConfigService.get_stripe_credentials(db)
    paypal = await CoreConfigService.get_paypal_credentials(db)
    email = await CoreConfigService.get_email_configuration(db)

    return {
        "status": "healthy" if database_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "database": "ok" if database_ok else "unavailable",
        "stripe_configured": bool(stripe["api_key"]),
        "paypal_configured": bool(paypal["client_id"] and paypal["client_secret"]),
        "email_enabled": email["email_enabled"],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port, reload=settings.is_development)
