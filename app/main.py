"""
Storefront Order Manager - Main Application
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from .config import settings
from .dependencies import init_dependencies, close_dependencies
from .routes import auth_router, orders_router, logs_router, sync_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting Storefront Order Manager...")
    await init_dependencies()
    if not settings.ginee_live_sync_enabled:
        logger.info("Live Ginee sync is disabled; only dry runs will be accepted")
    logger.info("Application ready")
    yield
    logger.info("Shutting down...")
    await close_dependencies()


# Create app
app = FastAPI(
    title="Storefront Order Manager",
    description="Order fulfillment and Ginee marketplace sync for the storefront admin",
    version="1.0.0",
    lifespan=lifespan
)

# Include routers
app.include_router(auth_router)
app.include_router(orders_router)
app.include_router(logs_router)
app.include_router(sync_router)


@app.get("/")
async def root():
    """Redirect root to the API docs."""
    return RedirectResponse(url="/docs", status_code=303)


@app.get("/health")
async def health():
    """Health check endpoint (no auth required)."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
