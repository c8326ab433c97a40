import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from athletes_profile.core.config import settings
from athletes_profile.core.context import registry
from athletes_profile.core.deps import CLIENT_ID_HEADER
from athletes_profile.core.logging_config import setup_logging
from athletes_profile.api.endpoints import athletes, auth, health, password_reset, registration, reports

setup_logging(settings.LOG_LEVEL, settings.JSON_LOGS)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting up {settings.PROJECT_NAME}...")
    if not settings.SUPABASE_URL or not settings.SUPABASE_ANON_KEY:
        logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set; platform calls will fail")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.PROJECT_NAME}...")
    registry.close_all()


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Registration, password reset and session policy for athlete profiles",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[CLIENT_ID_HEADER],
)

# Include routers
app.include_router(auth.router, prefix=settings.API_V1_STR)
app.include_router(registration.router, prefix=settings.API_V1_STR)
app.include_router(password_reset.router, prefix=settings.API_V1_STR)
app.include_router(athletes.router, prefix=settings.API_V1_STR)
app.include_router(reports.router, prefix=settings.API_V1_STR)
app.include_router(health.router)


@app.get("/")
async def root():
    """Root endpoint - API health check"""
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "status": "healthy"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,  # Enable auto-reload during development
        log_level="info"
    )
