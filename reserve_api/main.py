"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from reserve_api.core.config import settings
from reserve_api.core.middleware import setup_middleware
from reserve_api.core.rate_limiter import limiter, rate_limit_exceeded_handler
from reserve_api.core.exceptions import PersonnelPlatformError, error_body

from reserve_api.api.auth import router as auth_router
from reserve_api.api.accounts import router as accounts_router
from reserve_api.api.audit import router as audit_router
from reserve_api.api.personnel import router as personnel_router
from reserve_api.api.admin import router as admin_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("reserve_api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s", settings.APP_NAME)

    from reserve_api.services.cache_service import cache_service
    if cache_service.health_check():
        logger.info("Redis connected")
    else:
        logger.warning("Redis not available; statistics will not be cached")

    yield

    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title="Reserve Personnel API",
    description="Personnel records, account approval and audit trail for reserve units",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(PersonnelPlatformError)
async def platform_exception_handler(request: Request, exc: PersonnelPlatformError):
    logger.debug("%s on %s: %s", exc.kind, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.kind, exc.message))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=422, content=error_body("ValidationError", problems))


# Register routers
app.include_router(auth_router, prefix="/api")
app.include_router(accounts_router, prefix="/api")
app.include_router(audit_router, prefix="/api")
app.include_router(personnel_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/api/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}
