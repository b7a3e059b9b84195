"""
TaxHub Auth - Main Application Entry Point
Multi-tenant company, plan and access management
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from taxhub.core.config import get_settings
from taxhub.core.errors import DomainError
from taxhub.api import customers, invitations, permissions, tenants

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger(__name__)
settings = get_settings()

ERROR_STATUS_CODES = {
    "not_found": 404,
    "conflict": 409,
    "invalid_state": 409,
    "validation_failure": 422,
    "transient": 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Initializing TaxHub Auth backend", environment=settings.ENVIRONMENT)
    # Tables are created by Alembic migrations, not auto-generated
    logger.info("Database managed by Alembic migrations")

    yield

    logger.info("Shutting down TaxHub Auth backend")


app = FastAPI(
    title="TaxHub Auth API",
    description="Multi-tenant company onboarding, plans, permissions and invitations",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render typed domain errors with their structured details"""
    status_code = ERROR_STATUS_CODES.get(exc.kind, 400)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "Domain error",
        method=request.method,
        path=request.url.path,
        error=exc.code,
        kind=exc.kind,
    )
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


prefix = settings.API_V1_PREFIX
app.include_router(tenants.router, prefix=f"{prefix}/tenants", tags=["tenants"])
app.include_router(permissions.router, prefix=f"{prefix}/permissions", tags=["permissions"])
app.include_router(invitations.router, prefix=f"{prefix}/invitations", tags=["invitations"])
app.include_router(customers.router, prefix=f"{prefix}/customers", tags=["customers"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "taxhub-auth-api"}


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "TaxHub Auth API",
        "version": "1.0.0",
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "taxhub.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
