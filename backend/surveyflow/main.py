"""
Survey Flow Engine API - Main Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from surveyflow.config import settings
from surveyflow.api.v1.router import api_router
from surveyflow.db.session import engine, get_db

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    # Schema is managed by Alembic migrations
    logger.info(f"{settings.app_name} starting ({settings.app_env})")
    if settings.quota_alerts_enabled:
        logger.info(f"Quota alerts at {settings.quota_alert_threshold_list}% (SMTP enabled: {settings.smtp_enabled})")
    else:
        logger.info("Quota alerts disabled")

    yield

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Survey response flow: skip logic, branching, display logic and quotas",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.get("/api/v1/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Health check endpoint. Reports degraded when the database is unreachable."""
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check database ping failed: {str(e)}")
        database = "unavailable"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "app": settings.app_name,
        "environment": settings.app_env,
        "database": database,
    }


@app.get("/")
async def root():
    """Root endpoint redirect to API docs."""
    return {
        "message": settings.app_name,
        "docs": "/api/docs",
        "health": "/api/v1/health",
    }
