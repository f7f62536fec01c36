"""Scan Relay Backend Application.

This is the main entry point for the scan relay service. A phone camera
uploads captured pages into a short-lived room; the desktop browser polls the
room and pulls the images into the PDF it is building.

Modules:
    - scan: room registry and the /api/scan-pdf endpoints
    - config: YAML-backed settings
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_config
from app.scan.router import router as scan_router
from app.scan.store import RoomRegistry, get_registry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# multipart logs every parsed part at DEBUG
for _noisy in ("multipart", "python_multipart"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in scanrelay.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    # Build the registry eagerly so misconfiguration fails at startup.
    get_registry()

    yield  # Application runs here

    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Scan Relay API",
    description="Ephemeral phone-to-desktop image relay for PDF scanning",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(scan_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests get the same ``{error}`` body as handler rejections."""
    logger.debug("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse({"error": "Invalid request"}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Never leak internal state; log it instead."""
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.get("/health")
async def health(registry: RoomRegistry = Depends(get_registry)) -> dict:
    """Health check endpoint.

    Returns:
        dict: Status plus current room and image counts.
    """
    return {"status": "ok", **registry.stats()}


if __name__ == "__main__":
    server = get_config().server
    uvicorn.run("app.main:app", host=server.host, port=server.port)
