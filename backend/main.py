"""
FastAPI Backend for the song resolver
"""

import logging
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from contextlib import asynccontextmanager
from pathlib import Path
import time

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=False,
)

logger = structlog.get_logger()

# Import settings
from config import settings
from schemas import HealthResponse
from services.cache_store import CacheStore
from services.conversion_client import ConversionClient
from services.errors import UnexpectedError
from services.play_service import PlayService
from services.search_resolver import SearchResolver, YtDlpSearchProvider


def build_play_service(cache_store):
    """Wire the play flow from settings."""
    resolver = SearchResolver(
        YtDlpSearchProvider(),
        query_suffix=settings.SEARCH_QUERY_SUFFIX,
        limit=settings.SEARCH_LIMIT,
        min_duration=settings.SEARCH_MIN_DURATION,
        timeout=settings.SEARCH_TIMEOUT,
    )
    converter = ConversionClient(
        settings.CONVERSION_API_URL,
        timeout=settings.CONVERSION_TIMEOUT,
    )
    return PlayService(
        resolver,
        converter,
        cache_store=cache_store,
        strategy=settings.DOWNLOAD_URL_STRATEGY,
        max_query_length=settings.QUERY_MAX_LENGTH,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("application_startup", message="Song resolver starting up")

    # Validate configuration
    try:
        settings.validate_cache_config()
        logger.info("config_validated", strategy=settings.DOWNLOAD_URL_STRATEGY, cache_enabled=settings.CACHE_ENABLED)
    except ValueError as e:
        logger.error("config_validation_failed", error=str(e))
        raise

    # Temp directory must exist before the first request
    cache_store = None
    if settings.CACHE_ENABLED:
        cache_store = CacheStore(
            settings.TEMP_DIR,
            ttl=settings.CACHE_TTL,
            fetch_timeout=settings.CACHE_FETCH_TIMEOUT,
            chunk_size=settings.CACHE_CHUNK_SIZE,
        )
        cache_store.prepare(purge_stale=settings.CACHE_PURGE_ON_STARTUP)
        await cache_store.start()

    play_service = build_play_service(cache_store)
    app.state.cache_store = cache_store
    app.state.play_service = play_service

    yield

    logger.info("application_shutdown", message="Song resolver shutting down")
    await play_service.converter.aclose()
    if cache_store is not None:
        await cache_store.close()


# Initialize FastAPI app
app = FastAPI(
    title="Song Resolver API",
    description="Resolve a song name to a downloadable MP3",
    version=settings.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests"""
    start_time = time.time()

    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None
    )

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=f"{process_time:.3f}s"
        )

        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            process_time=f"{process_time:.3f}s"
        )
        raise


# Global error handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions"""
    error = UnexpectedError(
        f"Unhandled exception on {request.url.path}: {exc}",
        {"path": request.url.path, "method": request.method, "exc_type": type(exc).__name__}
    )
    error.log_error()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint

    Returns:
        HealthResponse: Health status of the API
    """
    cache_store = getattr(request.app.state, "cache_store", None)
    return HealthResponse(
        status="healthy",
        service="song-resolver",
        version=settings.VERSION,
        download_url_strategy=settings.DOWNLOAD_URL_STRATEGY,
        cache_enabled=cache_store is not None,
        cache_entries=cache_store.entry_count if cache_store else 0,
    )


# Include routers
from routers import play

app.include_router(play.router)


# Front-end: static files from PUBLIC_DIR, index.html for anything else
@app.get("/{full_path:path}", include_in_schema=False)
async def serve_frontend(full_path: str):
    public_dir = Path(settings.PUBLIC_DIR).resolve()
    index = public_dir / "index.html"

    if full_path:
        candidate = (public_dir / full_path).resolve()
        if candidate.is_relative_to(public_dir) and candidate.is_file():
            return FileResponse(str(candidate))

    if index.is_file():
        return FileResponse(str(index))

    return JSONResponse(status_code=404, content={"error": "Not found"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
