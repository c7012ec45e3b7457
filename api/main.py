"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health, status
from core.config import settings
from core.database import async_session_maker
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from worker.blob_store import create_blob_store
from worker.scheduler import JobScheduler

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Drawing Set Render Worker",
    description="Status API for the PDF drawing-set render worker",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(status.router)

# Worker scheduler, only when running the worker inside the API process
scheduler = None


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    global scheduler
    logger.info("Starting render worker status API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    if settings.RUN_WORKER_IN_API:
        scheduler = JobScheduler(async_session_maker, create_blob_store(settings))
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down render worker status API")
    if scheduler is not None:
        await scheduler.shutdown()
        await scheduler.blob_store.aclose()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Drawing Set Render Worker",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "jobs": "/jobs/{job_id}",
            "packages": "/packages/{package_id}"
        }
    }
