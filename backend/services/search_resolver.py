"""
Search Resolver

Turns a validated song query into a single playable video candidate.
Uses yt-dlp's flat search extractor as the search provider and keeps the
provider's ranking order; the first video longer than the minimum
duration wins.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Iterable, Union

import structlog
import yt_dlp

from services.errors import (
    NotFoundError,
    PlayError,
    UpstreamFailure,
    UpstreamTimeout,
    SEARCH_UNAVAILABLE_MESSAGE,
)

logger = structlog.get_logger()

VIDEO_TYPE = "video"


@dataclass(frozen=True)
class Candidate:
    """A single search result considered for conversion."""

    url: str
    title: str
    media_type: str
    duration: Optional[float]


def parse_duration(value: Union[int, float, str, None]) -> Optional[float]:
    """
    Normalize a provider duration to seconds.

    Accepts numeric seconds or "m:ss" / "h:mm:ss" strings.

    Example:
        >>> parse_duration("3:45")
        225.0
        >>> parse_duration(None) is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        parts = value.strip().split(":")
        try:
            seconds = 0.0
            for part in parts:
                seconds = seconds * 60 + float(part)
            return seconds
        except ValueError:
            return None
    return None


def select_candidate(
    results: Iterable[Dict[str, Any]],
    min_duration: float = 30
) -> Optional[Candidate]:
    """
    Pick the first video result whose duration exceeds min_duration.

    Results are visited in provider order; no other scoring is applied.
    Entries missing a URL are skipped.
    """
    for item in results:
        if not isinstance(item, dict):
            continue
        if item.get("type") != VIDEO_TYPE:
            continue
        duration = parse_duration(item.get("duration"))
        if duration is None or duration <= min_duration:
            continue
        url = item.get("url")
        if not url:
            continue
        return Candidate(
            url=str(url),
            title=str(item.get("title") or ""),
            media_type=VIDEO_TYPE,
            duration=duration,
        )
    return None


class YtDlpSearchProvider:
    """
    Search provider backed by yt-dlp's "ytsearchN:" extractor.

    Returns normalized dicts: {"url", "type", "duration", "title"}.
    Shorts, playlists and channels are reported with a non-video type.
    """

    def __init__(self):
        self.ydl_opts = {
            'quiet': True,
            'no_warnings': True,
            'extract_flat': 'in_playlist',
            'skip_download': True,
        }

    async def search(self, query: str, limit: int) -> List[Dict[str, Any]]:
        def extract_info():
            with yt_dlp.YoutubeDL(self.ydl_opts) as ydl:
                return ydl.extract_info(f"ytsearch{limit}:{query}", download=False)

        info = await asyncio.to_thread(extract_info)
        entries = (info or {}).get("entries") or []
        return [self._normalize_entry(entry) for entry in entries if entry]

    @staticmethod
    def _normalize_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
        url = entry.get("url") or entry.get("webpage_url") or ""
        ie_key = (entry.get("ie_key") or entry.get("extractor_key") or "").lower()

        if "/shorts/" in url:
            media_type = "short"
        elif ie_key == "youtube":
            media_type = VIDEO_TYPE
        elif ie_key:
            media_type = ie_key
        else:
            media_type = entry.get("_type") or "unknown"

        return {
            "url": url,
            "type": media_type,
            "duration": entry.get("duration"),
            "title": entry.get("title"),
        }


class SearchResolver:
    """
    Resolves a query to one Candidate.

    Example:
        >>> resolver = SearchResolver(YtDlpSearchProvider())
        >>> candidate = await resolver.resolve("Shape of You")
        >>> print(candidate.url)
    """

    def __init__(
        self,
        provider,
        query_suffix: str = "official audio",
        limit: int = 5,
        min_duration: float = 30,
        timeout: float = 10.0
    ):
        """
        Args:
            provider: Object with an async search(query, limit) -> list of dicts
            query_suffix: Appended to the query to favour official uploads
            limit: Number of results requested from the provider
            min_duration: Candidates must be strictly longer than this (seconds)
            timeout: Deadline for the provider call (seconds)
        """
        self.provider = provider
        self.query_suffix = query_suffix
        self.limit = limit
        self.min_duration = min_duration
        self.timeout = timeout

    def build_search_query(self, query: str) -> str:
        if not self.query_suffix:
            return query
        return f"{query} {self.query_suffix}"

    async def resolve(self, query: str) -> Candidate:
        """
        Raises:
            NotFoundError: No result passed the filter
            UpstreamTimeout: Provider exceeded its deadline
            UpstreamFailure: Provider raised
        """
        search_query = self.build_search_query(query)

        try:
            results = await asyncio.wait_for(
                self.provider.search(search_query, self.limit),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise UpstreamTimeout(
                f"Search provider exceeded {self.timeout}s",
                {"stage": "search"}
            ) from e
        except PlayError:
            raise
        except Exception as e:
            raise UpstreamFailure(
                f"Search provider failed: {e}",
                {"stage": "search", "exc_type": type(e).__name__},
                user_message=SEARCH_UNAVAILABLE_MESSAGE
            ) from e

        candidate = select_candidate(results or [], self.min_duration)
        if candidate is None:
            raise NotFoundError(
                "No video candidate matched the search filter",
                {"stage": "search", "result_count": len(results or [])}
            )

        logger.info(
            "search_candidate_selected",
            url=candidate.url,
            title=candidate.title,
            duration=candidate.duration
        )
        return candidate
