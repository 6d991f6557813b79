"""FastAPI application for the emerging trends pipeline."""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    logger.info("Starting Emerging Trends API...")

    scheduler = None
    try:
        from scheduler.scheduler import get_scheduler

        scheduler = get_scheduler()
        if scheduler.start():
            logger.info("Scheduler started successfully")
    except Exception as e:
        logger.warning(f"Could not start scheduler: {e}")

    yield

    logger.info("Shutting down Emerging Trends API...")
    if scheduler is not None and scheduler.is_running:
        scheduler.shutdown(wait=False)


# Create FastAPI app
app = FastAPI(
    title="Emerging Trends API",
    description="Discovers fast-rising niche community topics and judges their merch viability",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Emerging Trends API",
        "version": VERSION,
        "endpoints": {
            "health": "/health",
            "docs": "/docs",
            "discover": "/api/emerging-trends/discover",
            "signals": "/api/emerging-trends/signals",
        },
    }


from api.routes.emerging_trends import router as emerging_trends_router

app.include_router(emerging_trends_router, prefix="/api", tags=["Emerging Trends"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
