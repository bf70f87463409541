"""
Services module for the play flow
"""

from .cache_store import CacheStore
from .conversion_client import ConversionClient
from .play_service import PlayService
from .search_resolver import SearchResolver, YtDlpSearchProvider

__all__ = ["CacheStore", "ConversionClient", "PlayService", "SearchResolver", "YtDlpSearchProvider"]
