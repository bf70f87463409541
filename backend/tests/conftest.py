"""
Shared pytest fixtures for the song resolver tests.

No test touches the network: the search provider, the conversion API and
the audio transfer are all mocked at their boundaries.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from services.conversion_client import ConversionClient, ConversionOutcome
from services.search_resolver import Candidate, SearchResolver


@pytest.fixture
def candidate():
    return Candidate(
        url="https://www.youtube.com/watch?v=JGwWNGJdvx8",
        title="Ed Sheeran - Shape of You (Official Video)",
        media_type="video",
        duration=263.0,
    )


@pytest.fixture
def mock_resolver(candidate):
    """SearchResolver whose resolve() returns the candidate fixture."""
    resolver = MagicMock(spec=SearchResolver)
    resolver.resolve = AsyncMock(return_value=candidate)
    return resolver


@pytest.fixture
def mock_converter():
    """ConversionClient whose convert() succeeds with a fixed URL."""
    converter = MagicMock(spec=ConversionClient)
    converter.convert = AsyncMock(
        return_value=ConversionOutcome(download_url="https://x/y.mp3", title="Shape of You")
    )
    converter.aclose = AsyncMock()
    return converter
