"""
Play Service

Request orchestration for GET /play:
1. Validate the query (no upstream call on failure)
2. Resolve a search candidate
3. Convert it to an audio download URL
4. Build the response; cache materialization is started separately,
   after the response has been handed back
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from services.cache_store import CacheStore
from services.conversion_client import ConversionClient
from services.errors import (
    PlayError,
    QueryValidationError,
    classify_error,
    MISSING_QUERY_MESSAGE,
    QUERY_TOO_LONG_MESSAGE,
)
from services.search_resolver import SearchResolver

logger = structlog.get_logger()

TEMP_URL_PREFIX = "/temp"


def validate_query(query: Optional[str], max_length: int = 100) -> str:
    """
    Return the trimmed query or raise QueryValidationError.

    Example:
        >>> validate_query("  Shape of You ")
        'Shape of You'
    """
    # Length is bounded on the raw value, surrounding whitespace included
    if query is not None and len(query) > max_length:
        raise QueryValidationError(
            f"Query is {len(query)} chars, max {max_length}",
            user_message=QUERY_TOO_LONG_MESSAGE.format(max_length=max_length),
            details={"length": len(query)}
        )

    if query is None or not query.strip():
        raise QueryValidationError("Query is missing", user_message=MISSING_QUERY_MESSAGE)

    return query.strip()


@dataclass(frozen=True)
class PlayResult:
    """Outcome of a successful play request."""

    title: str
    download_url: str
    source_url: str
    cache_filename: Optional[str] = None


class PlayService:
    """
    Sequences search, conversion and cache hand-off.

    Example:
        >>> service = PlayService(resolver, converter, cache_store, strategy="direct")
        >>> result = await service.play("Shape of You")
        >>> await service.materialize(result)   # returns immediately
    """

    def __init__(
        self,
        resolver: SearchResolver,
        converter: ConversionClient,
        cache_store: Optional[CacheStore] = None,
        strategy: str = "direct",
        max_query_length: int = 100
    ):
        """
        Args:
            resolver: Search Resolver
            converter: Conversion Client
            cache_store: Cache Store, or None to skip local caching entirely
            strategy: "direct" returns the converter's URL, "local" returns /temp/<filename>
            max_query_length: Upper bound on query length
        """
        if strategy == "local" and cache_store is None:
            raise ValueError("strategy 'local' requires a cache store")
        self.resolver = resolver
        self.converter = converter
        self.cache_store = cache_store
        self.strategy = strategy
        self.max_query_length = max_query_length

    async def play(self, query: Optional[str]) -> PlayResult:
        """
        Raises:
            PlayError: Always classified; nothing else escapes
        """
        try:
            text = validate_query(query, self.max_query_length)
            logger.info("play_request_received", query=text[:100])

            candidate = await self.resolver.resolve(text)
            outcome = await self.converter.convert(candidate.url)
        except PlayError:
            raise
        except Exception as e:
            raise classify_error(e) from e

        cache_filename = self.cache_store.reserve_filename() if self.cache_store else None
        if self.strategy == "local":
            download_url = f"{TEMP_URL_PREFIX}/{cache_filename}"
        else:
            download_url = outcome.download_url

        result = PlayResult(
            title=outcome.title or candidate.title,
            download_url=download_url,
            source_url=outcome.download_url,
            cache_filename=cache_filename,
        )
        logger.info(
            "play_request_resolved",
            title=result.title,
            strategy=self.strategy,
            cache_filename=cache_filename
        )
        return result

    async def materialize(self, result: PlayResult) -> None:
        """Hand the converted file to the cache store. Does not wait for the transfer."""
        if self.cache_store is None or result.cache_filename is None:
            return
        await self.cache_store.submit(result.source_url, result.cache_filename)
