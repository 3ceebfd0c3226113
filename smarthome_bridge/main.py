"""
Smart Home Bridge - assistant fulfillment server

The main FastAPI application entry point.
"""

# Load .env file FIRST, before any other imports
# .env.local overrides .env for machine-specific settings
from pathlib import Path
from dotenv import load_dotenv
_env_root = Path(__file__).parent.parent
load_dotenv(_env_root / ".env", override=True)
load_dotenv(_env_root / ".env.local", override=True)

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .api import router as api_router
from .capabilities.backends import close_gateway
from .config import settings
from .storage import db_settings
from .storage.database import close_database, init_database

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger("bridge.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Handles startup (database pool, migrations) and shutdown (cleanup).
    """
    # --- Startup ---
    logger.info("Smart Home Bridge starting up (%s)...", settings.environment)

    if db_settings.enabled:
        try:
            await init_database()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.error("Failed to initialize database: %s", e)

    logger.info("ThingsBoard gateway: %s", settings.thingsboard.url)

    yield

    # --- Shutdown ---
    logger.info("Smart Home Bridge shutting down...")

    try:
        await close_gateway()
    except Exception as e:
        logger.error("Error closing ThingsBoard gateway: %s", e)

    if db_settings.enabled:
        try:
            await close_database()
            logger.info("Database connection pool closed")
        except Exception as e:
            logger.error("Error closing database: %s", e)

    logger.info("Smart Home Bridge shutdown complete")


# Create the FastAPI application
app = FastAPI(
    title="Smart Home Bridge",
    description="Cloud-to-cloud bridge between a voice assistant and ThingsBoard devices.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(api_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s -> %d (%.1f ms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "An unexpected error occurred" if settings.is_production else str(exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "message": message},
    )


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "smarthome_bridge.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
