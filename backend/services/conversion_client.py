"""
Conversion Client

Submits a video URL to the external conversion API and returns the
resulting audio download URL. One attempt per request, bounded by a hard
deadline; the response body is treated as untrusted.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Any

import httpx
import structlog

from services.errors import UpstreamFailure, UpstreamRateLimited, UpstreamTimeout

logger = structlog.get_logger()


@dataclass(frozen=True)
class ConversionOutcome:
    """Successful conversion result."""

    download_url: str
    title: Optional[str]


class ConversionClient:
    """
    Client for the conversion API.

    The API is called as GET <api_url>?url=<source url> and is expected to
    answer {"status": true, "result": {"downloadUrl": ..., "title": ...}}.

    Example:
        >>> client = ConversionClient("https://api.example.com/ytmp3", timeout=15)
        >>> outcome = await client.convert("https://www.youtube.com/watch?v=...")
        >>> print(outcome.download_url)
    """

    def __init__(
        self,
        api_url: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Args:
            api_url: Conversion endpoint
            timeout: Hard deadline for the whole call (seconds)
            client: Optional preconfigured httpx client (tests inject a MockTransport)
        """
        self.api_url = api_url
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True)

    async def convert(self, source_url: str) -> ConversionOutcome:
        """
        Raises:
            UpstreamTimeout: Deadline exceeded
            UpstreamRateLimited: API answered 429
            UpstreamFailure: Any other error status, transport error or unusable payload
        """
        details = {"stage": "conversion"}

        try:
            response = await asyncio.wait_for(
                self._client.get(self.api_url, params={"url": source_url}, follow_redirects=True),
                timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTimeout(f"Conversion API exceeded {self.timeout}s", details) from e
        except httpx.HTTPError as e:
            raise UpstreamFailure(
                f"Conversion API request failed: {e}",
                {**details, "exc_type": type(e).__name__}
            ) from e

        if response.status_code == 429:
            raise UpstreamRateLimited("Conversion API rate limited the request", {**details, "status": 429})

        if response.status_code >= 400:
            raise UpstreamFailure(
                f"Conversion API returned HTTP {response.status_code}",
                {**details, "status": response.status_code}
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamFailure("Conversion API returned a non-JSON body", details) from e

        outcome = self._parse_payload(payload)
        logger.info("conversion_succeeded", source_url=source_url, title=outcome.title)
        return outcome

    @staticmethod
    def _parse_payload(payload: Any) -> ConversionOutcome:
        """Require an explicit success flag and a non-empty download URL."""
        if not isinstance(payload, dict) or payload.get("status") is not True:
            raise UpstreamFailure("Conversion API did not report success", {"stage": "conversion"})

        result = payload.get("result")
        if not isinstance(result, dict):
            raise UpstreamFailure("Conversion API payload has no result", {"stage": "conversion"})

        download_url = result.get("downloadUrl")
        if not isinstance(download_url, str) or not download_url.strip():
            raise UpstreamFailure("Conversion API payload has no download URL", {"stage": "conversion"})

        title = result.get("title")
        return ConversionOutcome(
            download_url=download_url.strip(),
            title=title if isinstance(title, str) and title.strip() else None,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
