"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from transcoder.config import settings
from transcoder.database import init_db
from transcoder.services.conversion_service import ConversionService
from transcoder.services.job_queue import TranscodeQueue
from transcoder.services.status_sync import StatusSynchronizer
from transcoder.services.websocket_manager import WebSocketManager

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Ensure logging output if Uvicorn hijacked the root logger but didn't set level/handlers as expected
if not logging.getLogger().handlers:
    console = logging.StreamHandler()
    console.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logging.getLogger().addHandler(console)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("Starting transcoding service...")

    settings.ensure_directories()
    await init_db()
    logger.info("Database initialized")

    conversion_service = ConversionService(settings)
    if not settings.TRANSCODE_ENABLED:
        logger.warning("Transcoding is disabled, submitted jobs will fail")
    elif not await conversion_service.engine_available():
        logger.warning(f"FFmpeg not found at {settings.FFMPEG_PATH}, submitted jobs will fail")

    transcode_queue = TranscodeQueue(
        conversion_service,
        concurrency_limit=settings.MAX_CONCURRENT,
        history_limit=settings.HISTORY_LIMIT,
    )
    status_sync = StatusSynchronizer()
    status_sync.attach(transcode_queue)
    websocket_manager = WebSocketManager()
    websocket_manager.attach(transcode_queue)

    app.state.transcode_queue = transcode_queue
    app.state.status_sync = status_sync
    app.state.websocket_manager = websocket_manager

    # Start event delivery
    await transcode_queue.start_worker()

    yield

    # Shutdown
    logger.info("Shutting down transcoding service...")
    await transcode_queue.stop_worker()


# Create FastAPI app
app = FastAPI(
    title="Video Transcoding Service",
    description="Adaptive bitrate DASH transcoding with a bounded job queue",
    version="1.0.0",
    lifespan=lifespan,
)

# Add GZip Middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
from transcoder.routes import jobs, videos, websocket  # noqa: E402

app.include_router(jobs.router, prefix="/api/transcode", tags=["transcode"])
app.include_router(videos.router, prefix="/api/video", tags=["video"])
app.include_router(websocket.router, tags=["websocket"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    overview = app.state.transcode_queue.queue_overview()

    return {
        "status": "healthy",
        "transcode_enabled": settings.TRANSCODE_ENABLED,
        "pending": overview.pending,
        "active": overview.active,
        "concurrency_limit": overview.concurrency_limit,
    }
