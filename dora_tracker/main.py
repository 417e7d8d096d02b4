"""
FastAPI application entry point.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dora_tracker.config import settings
from dora_tracker.middleware.logging import RequestLoggingMiddleware
from dora_tracker.api import webhooks, jobs, repositories
from dora_tracker.services.redis_client import get_redis_client
from dora_tracker.services.store import get_store
from dora_tracker.utils.logging import setup_logging, get_logger

# Configure structured logging
setup_logging(settings.log_level)

logger = get_logger(__name__)

VERSION = "0.1.0"

app = FastAPI(
    title="DORA Deployment Tracker",
    description="Reconstructs per-environment deployment timelines from GitHub and release logs",
    version=VERSION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "healthy", "version": VERSION}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "DORA Deployment Tracker API",
        "version": VERSION,
        "docs": "/docs"
    }


# Include API routers
app.include_router(webhooks.router)
app.include_router(jobs.router)
app.include_router(repositories.router)


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("Starting DORA Deployment Tracker API")

    store = get_store()
    await store.initialize()
    await store.initialize_schema()
    app.state.store = store
    logger.info("Reconciliation store initialized")

    redis_client = get_redis_client()
    await redis_client.initialize()
    app.state.redis_client = redis_client
    logger.info("Redis client initialized")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup services on application shutdown."""
    logger.info("Shutting down DORA Deployment Tracker API")

    store = getattr(app.state, "store", None)
    if store is not None:
        await store.close()
        logger.info("Reconciliation store closed")

    redis_client = getattr(app.state, "redis_client", None)
    if redis_client is not None:
        await redis_client.close()
        logger.info("Redis client closed")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
