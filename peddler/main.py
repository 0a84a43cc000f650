"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from peddler import __version__
from peddler.api.routes import watchers
from peddler.config import settings
from peddler.worker.scheduler import setup_scheduler
from peddler.worker.tasks import task_runner

# Configure structured logging
from peddler.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

# Global scheduler
scheduler = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global scheduler

    # Startup
    logger.info("Starting Peddler...")

    # Creates the item tables on first use
    await task_runner.initialize()

    # Start scheduler
    scheduler = setup_scheduler()
    scheduler.start()
    logger.info("Scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down...")

    if scheduler:
        scheduler.shutdown()

    await task_runner.close()

    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Peddler",
    description="Watch marketplace searches and alert on new listings and price drops",
    version=__version__,
    lifespan=lifespan,
)

# Prometheus metrics
app.mount("/metrics", make_asgi_app())

# Include API routes
app.include_router(watchers.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def run():
    """Run the API and scheduler with uvicorn."""
    uvicorn.run(
        "peddler.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
