"""
Ephemeral Cache Store

Keeps short-lived local copies of converted audio files:
- Background transfer from the converter's URL (streamed, own deadline)
- Atomic publish: bytes land in "<name>.part" and are renamed when complete
- Fixed-delay eviction per entry, idempotent
- Startup provisioning of the temp directory

Transfers run as detached asyncio tasks. Their failures are logged here and
never reach a caller.
"""

import asyncio
import contextlib
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Dict, Set, AsyncIterator

import aiofiles
import aiofiles.os
import aiohttp
import structlog

logger = structlog.get_logger()

FILENAME_PATTERN = re.compile(r"^audio_\d+\.mp3$")
PARTIAL_SUFFIX = ".part"


def is_cache_artifact(name: str) -> bool:
    """True for a cache filename or its in-progress .part file."""
    if name.endswith(PARTIAL_SUFFIX):
        name = name[:-len(PARTIAL_SUFFIX)]
    return FILENAME_PATTERN.match(name) is not None


class CacheDirectoryError(Exception):
    """Raised when the temp directory cannot be provisioned"""
    pass


class CacheWriteError(Exception):
    """Raised when a transfer produced no usable file"""
    pass


@dataclass(frozen=True)
class CacheEntry:
    """A completed, locally stored audio file."""

    filename: str
    path: Path
    size_bytes: int
    created_at: float
    expires_at: float


class CacheStore:
    """
    Owns the temp directory and every file in it.

    Example:
        >>> store = CacheStore("/tmp/song-cache", ttl=600)
        >>> store.prepare()
        >>> await store.start()
        >>> name = store.reserve_filename()
        >>> await store.submit("https://cdn.example.com/track.mp3", name)
        >>> await store.close()
    """

    def __init__(
        self,
        temp_dir: str,
        ttl: float = 600,
        fetch_timeout: float = 60,
        chunk_size: int = 65536
    ):
        """
        Args:
            temp_dir: Directory holding cached files
            ttl: Seconds between a file's creation and its eviction
            fetch_timeout: Deadline for one transfer (seconds)
            chunk_size: Read size when streaming the transfer
        """
        self.temp_dir = Path(temp_dir)
        self.ttl = ttl
        self.fetch_timeout = fetch_timeout
        self.chunk_size = chunk_size

        self._session: Optional[aiohttp.ClientSession] = None
        self._last_stamp = 0
        self._entries: Dict[str, CacheEntry] = {}
        self._evictions: Dict[str, asyncio.Task] = {}
        self._transfers: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def prepare(self, purge_stale: bool = True) -> None:
        """
        Create the temp directory and verify it is writable.

        Must run once before any request is served.

        Raises:
            CacheDirectoryError: Directory missing after creation or not writable
        """
        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheDirectoryError(f"Cannot create temp directory {self.temp_dir}: {e}") from e

        if not self.temp_dir.is_dir() or not os.access(self.temp_dir, os.W_OK):
            raise CacheDirectoryError(f"Temp directory {self.temp_dir} is not writable")

        if purge_stale:
            removed = 0
            for stale in self.temp_dir.glob("audio_*"):
                if stale.is_file() and is_cache_artifact(stale.name):
                    stale.unlink(missing_ok=True)
                    removed += 1
            if removed:
                logger.info("cache_stale_files_purged", count=removed, temp_dir=str(self.temp_dir))

        logger.info("cache_directory_ready", temp_dir=str(self.temp_dir))

    async def start(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()

    async def close(self) -> None:
        """Cancel transfers, evict every live entry, close the HTTP session."""
        for task in list(self._transfers):
            task.cancel()
        if self._transfers:
            await asyncio.gather(*self._transfers, return_exceptions=True)

        evictions = list(self._evictions.values())
        for task in evictions:
            task.cancel()
        if evictions:
            await asyncio.gather(*evictions, return_exceptions=True)
        for filename in list(self._entries):
            await self.evict(filename)

        if self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Naming and lookup
    # ------------------------------------------------------------------

    def reserve_filename(self) -> str:
        """
        Generate a unique, timestamp-derived filename.

        Stamps are milliseconds since the epoch, bumped by one when the clock
        has not advanced, so no two calls in this process collide.
        """
        stamp = int(time.time() * 1000)
        if stamp <= self._last_stamp:
            stamp = self._last_stamp + 1
        self._last_stamp = stamp
        return f"audio_{stamp}.mp3"

    def resolve(self, filename: str) -> Optional[Path]:
        """Path of a completed entry, or None for unknown, partial or expired names."""
        if not FILENAME_PATTERN.match(filename or ""):
            return None
        path = self.temp_dir / filename
        if not path.is_file():
            return None
        return path

    def get_entry(self, filename: str) -> Optional[CacheEntry]:
        return self._entries.get(filename)

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    async def submit(self, url: str, filename: str) -> asyncio.Task:
        """
        Start a detached transfer and return without waiting for it.

        The returned task only raises when cancelled; its result is the
        CacheEntry or None.
        """
        task = asyncio.create_task(self._guarded_materialize(url, filename))
        self._transfers.add(task)
        task.add_done_callback(self._transfers.discard)
        logger.info("cache_materialize_submitted", filename=filename)
        return task

    async def _guarded_materialize(self, url: str, filename: str) -> Optional[CacheEntry]:
        try:
            return await self.materialize(url, filename)
        except asyncio.CancelledError:
            logger.info("cache_materialize_cancelled", filename=filename)
            raise
        except Exception as e:
            logger.error(
                "cache_materialize_unexpected_error",
                filename=filename,
                error=str(e),
                exc_type=type(e).__name__
            )
            return None

    async def materialize(self, url: str, filename: str) -> Optional[CacheEntry]:
        """
        Fetch url into temp_dir/filename and schedule its eviction.

        Returns:
            The new CacheEntry, or None if the transfer or write failed.
            A failed transfer leaves nothing behind.
        """
        path = self.temp_dir / filename
        partial = path.with_name(path.name + PARTIAL_SUFFIX)
        started = time.monotonic()

        try:
            async with contextlib.aclosing(self._iter_remote_chunks(url)) as chunks, \
                    aiofiles.open(partial, 'wb') as f:
                async for chunk in chunks:
                    await f.write(chunk)

            size = (await aiofiles.os.stat(partial)).st_size
            if size == 0:
                raise CacheWriteError("Download failed or empty file")

            await aiofiles.os.replace(partial, path)

        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, CacheWriteError) as e:
            logger.error(
                "cache_materialize_failed",
                filename=filename,
                error=str(e),
                exc_type=type(e).__name__,
                elapsed=f"{time.monotonic() - started:.3f}s"
            )
            await self._discard(partial)
            return None
        except BaseException:
            await self._discard(partial)
            raise

        created_at = time.time()
        entry = CacheEntry(
            filename=filename,
            path=path,
            size_bytes=size,
            created_at=created_at,
            expires_at=created_at + self.ttl,
        )
        self._entries[filename] = entry
        self._schedule_eviction(entry)

        logger.info(
            "cache_entry_created",
            filename=filename,
            size_bytes=size,
            ttl=self.ttl,
            elapsed=f"{time.monotonic() - started:.3f}s"
        )
        return entry

    async def _iter_remote_chunks(self, url: str) -> AsyncIterator[bytes]:
        """Stream the body of url in chunks, bounded by fetch_timeout overall."""
        if self._session is None:
            await self.start()

        timeout = aiohttp.ClientTimeout(total=self.fetch_timeout)
        async with self._session.get(url, timeout=timeout) as response:
            response.raise_for_status()
            async for chunk in response.content.iter_chunked(self.chunk_size):
                yield chunk

    async def _discard(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("cache_partial_cleanup_failed", path=str(path), error=str(e))

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _schedule_eviction(self, entry: CacheEntry) -> None:
        task = asyncio.create_task(self._evict_after_ttl(entry.filename))
        self._evictions[entry.filename] = task
        task.add_done_callback(lambda _: self._evictions.pop(entry.filename, None))

    async def _evict_after_ttl(self, filename: str) -> None:
        try:
            await asyncio.sleep(self.ttl)
        finally:
            await self.evict(filename)

    async def evict(self, filename: str) -> bool:
        """
        Delete a cached file if it still exists.

        Returns:
            True if a file was removed, False if it was already gone.
        """
        self._entries.pop(filename, None)
        try:
            await aiofiles.os.remove(self.temp_dir / filename)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("cache_eviction_failed", filename=filename, error=str(e))
            return False

        logger.info("cache_entry_evicted", filename=filename)
        return True
