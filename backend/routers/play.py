"""
Play endpoint router

Resolves a song name to a downloadable audio URL and serves locally
cached copies under /temp.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import FileResponse, JSONResponse

from config import settings
from schemas import ErrorResponse, PlayResponse
from services.cache_store import CacheStore
from services.errors import NotFoundError, PlayError
from services.play_service import PlayService

logger = structlog.get_logger()

router = APIRouter(tags=["Play"])


def get_play_service(request: Request) -> PlayService:
    return request.app.state.play_service


def get_cache_store(request: Request) -> Optional[CacheStore]:
    return getattr(request.app.state, "cache_store", None)


def error_response(error: PlayError) -> JSONResponse:
    error.log_error()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@router.get(
    "/play",
    response_model=PlayResponse,
    status_code=200,
    responses={
        200: {"description": "Song resolved"},
        400: {"model": ErrorResponse, "description": "Missing or oversized query"},
        404: {"model": ErrorResponse, "description": "No matching song"},
        429: {"model": ErrorResponse, "description": "Converter rate limited the request"},
        502: {"model": ErrorResponse, "description": "Search or converter failure"},
        504: {"model": ErrorResponse, "description": "Upstream deadline exceeded"},
        500: {"model": ErrorResponse, "description": "Unexpected error"}
    },
    summary="Resolve a song name to an MP3 URL",
    description="""
Search for a song and return a downloadable MP3 URL.

This endpoint:
1. Validates the query (1-100 characters)
2. Searches for the first video longer than 30 seconds
3. Converts it through the conversion API (15s deadline)
4. Responds immediately; a local copy is cached in the background for 10 minutes
"""
)
async def play(
    background_tasks: BackgroundTasks,
    query: Optional[str] = Query(None, description="Song name, e.g. 'Shape of You'"),
    service: PlayService = Depends(get_play_service)
):
    """
    **Example Response:**
    ```json
    {
        "title": "Shape of You",
        "downloadUrl": "https://cdn.example.com/shape-of-you.mp3"
    }
    ```
    """
    try:
        result = await service.play(query)
    except PlayError as e:
        return error_response(e)

    # Runs after the response is sent; only submits the transfer task
    background_tasks.add_task(service.materialize, result)

    return PlayResponse(title=result.title, downloadUrl=result.download_url)


@router.get(
    "/temp/{filename}",
    responses={
        200: {"description": "Cached audio file", "content": {"audio/mpeg": {}}},
        404: {"model": ErrorResponse, "description": "File not cached or already evicted"}
    },
    summary="Get Cached Audio File",
)
async def get_cached_audio(
    filename: str,
    cache_store: Optional[CacheStore] = Depends(get_cache_store)
):
    path = cache_store.resolve(filename) if cache_store else None
    if path is None:
        return error_response(NotFoundError("Cached file not available", {"filename": filename}))

    logger.info("cache_file_serving", filename=filename)
    return FileResponse(
        path=str(path),
        media_type="audio/mpeg",
        filename=filename,
        headers={"Cache-Control": f"public, max-age={settings.TEMP_CACHE_MAX_AGE}"}
    )
