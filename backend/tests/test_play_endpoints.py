"""
Integration tests for the HTTP surface.

Tests the following endpoints:
- GET /play
- GET /temp/{filename}
- GET /health
- SPA fallback

The app runs without its lifespan; services are injected through
dependency overrides.

Run with: pytest backend/tests/test_play_endpoints.py -v
"""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from config import settings
from main import app
from routers.play import get_cache_store, get_play_service
from services.cache_store import CacheStore
from services.conversion_client import ConversionClient
from services.errors import UpstreamRateLimited
from services.play_service import PlayResult, PlayService
from services.search_resolver import SearchResolver


@pytest.fixture
def client():
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def make_search_provider(results):
    provider = MagicMock()
    provider.search = AsyncMock(return_value=results)
    return provider


def make_converter(handler, timeout=1.0):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ConversionClient("https://converter.test/ytmp3", timeout=timeout, client=http_client)


def use_service(service):
    app.dependency_overrides[get_play_service] = lambda: service


FOUR_MINUTE_VIDEO = {
    "url": "https://www.youtube.com/watch?v=JGwWNGJdvx8",
    "type": "video",
    "duration": 240,
    "title": "Ed Sheeran - Shape of You",
}


class TestPlayScenarios:
    """End-to-end flows through real services with mocked upstreams"""

    def test_scenario_a_success(self, client):
        provider = make_search_provider([FOUR_MINUTE_VIDEO])
        converter = make_converter(lambda request: httpx.Response(200, json={
            "status": True,
            "result": {"downloadUrl": "https://x/y.mp3", "title": "Shape of You"}
        }))
        use_service(PlayService(SearchResolver(provider), converter))

        response = client.get("/play", params={"query": "Shape of You"})

        assert response.status_code == 200
        assert response.json() == {"title": "Shape of You", "downloadUrl": "https://x/y.mp3"}

    def test_scenario_b_empty_query(self, client):
        provider = make_search_provider([FOUR_MINUTE_VIDEO])
        use_service(PlayService(SearchResolver(provider), MagicMock(spec=ConversionClient)))

        response = client.get("/play", params={"query": ""})

        assert response.status_code == 400
        assert response.json() == {"error": "🎵 Provide a song name!"}
        provider.search.assert_not_called()

    def test_missing_query_param(self, client):
        provider = make_search_provider([FOUR_MINUTE_VIDEO])
        use_service(PlayService(SearchResolver(provider), MagicMock(spec=ConversionClient)))

        response = client.get("/play")

        assert response.status_code == 400
        assert "error" in response.json()
        provider.search.assert_not_called()

    def test_query_too_long(self, client):
        provider = make_search_provider([FOUR_MINUTE_VIDEO])
        use_service(PlayService(SearchResolver(provider), MagicMock(spec=ConversionClient)))

        response = client.get("/play", params={"query": "x" * 101})

        assert response.status_code == 400
        assert response.json() == {"error": "📝 Song name too long! Max 100 chars."}
        provider.search.assert_not_called()

    def test_padded_query_too_long(self, client):
        provider = make_search_provider([FOUR_MINUTE_VIDEO])
        use_service(PlayService(SearchResolver(provider), MagicMock(spec=ConversionClient)))

        response = client.get("/play", params={"query": "a" * 100 + " "})

        assert response.status_code == 400
        provider.search.assert_not_called()

    def test_scenario_c_conversion_timeout(self, client):
        async def slow(request):
            await asyncio.sleep(3)
            return httpx.Response(200, json={})

        provider = make_search_provider([FOUR_MINUTE_VIDEO])
        use_service(PlayService(SearchResolver(provider), make_converter(slow, timeout=0.2)))

        started = time.monotonic()
        response = client.get("/play", params={"query": "Shape of You"})
        elapsed = time.monotonic() - started

        assert response.status_code == 504
        assert response.json()["error"].startswith("⏳")
        assert elapsed < 2.0

    def test_not_found(self, client):
        provider = make_search_provider([{**FOUR_MINUTE_VIDEO, "duration": 25}])
        use_service(PlayService(SearchResolver(provider), MagicMock(spec=ConversionClient)))

        response = client.get("/play", params={"query": "Shape of You"})

        assert response.status_code == 404
        assert response.json() == {"error": "😕 Couldn't find that song. Try another one!"}

    def test_bad_conversion_payload(self, client):
        provider = make_search_provider([FOUR_MINUTE_VIDEO])
        converter = make_converter(lambda request: httpx.Response(200, json={"status": True, "result": {}}))
        use_service(PlayService(SearchResolver(provider), converter))

        response = client.get("/play", params={"query": "Shape of You"})

        assert response.status_code == 502
        assert list(response.json()) == ["error"]


class TestPlayBackgroundWork:
    """The response never waits on the cache"""

    def test_materialize_scheduled_after_success(self, client):
        result = PlayResult(title="Song", download_url="/temp/audio_1.mp3", source_url="https://x/y.mp3",
                            cache_filename="audio_1.mp3")
        service = MagicMock()
        service.play = AsyncMock(return_value=result)
        service.materialize = AsyncMock()
        use_service(service)

        response = client.get("/play", params={"query": "Song"})

        assert response.status_code == 200
        assert response.json() == {"title": "Song", "downloadUrl": "/temp/audio_1.mp3"}
        service.materialize.assert_awaited_once_with(result)

    def test_no_materialize_on_error(self, client):
        service = MagicMock()
        service.play = AsyncMock(side_effect=UpstreamRateLimited("429"))
        service.materialize = AsyncMock()
        use_service(service)

        response = client.get("/play", params={"query": "Song"})

        assert response.status_code == 429
        service.materialize.assert_not_called()

    def test_unhandled_exception_is_classified(self, client):
        service = MagicMock()
        service.play = AsyncMock(side_effect=RuntimeError("secret internal detail"))
        use_service(service)

        response = client.get("/play", params={"query": "Song"})

        assert response.status_code == 500
        assert "secret" not in response.text
        assert response.json()["error"].startswith("💥")


class TestTempFiles:
    """Test serving cached files"""

    def test_serves_cached_file_with_cache_header(self, client, tmp_path):
        store = CacheStore(str(tmp_path))
        (tmp_path / "audio_123.mp3").write_bytes(b"ID3data")
        app.dependency_overrides[get_cache_store] = lambda: store

        response = client.get("/temp/audio_123.mp3")

        assert response.status_code == 200
        assert response.content == b"ID3data"
        assert response.headers["cache-control"] == f"public, max-age={settings.TEMP_CACHE_MAX_AGE}"

    def test_partial_file_not_served(self, client, tmp_path):
        store = CacheStore(str(tmp_path))
        (tmp_path / "audio_123.mp3.part").write_bytes(b"half")
        app.dependency_overrides[get_cache_store] = lambda: store

        response = client.get("/temp/audio_123.mp3.part")

        assert response.status_code == 404
        assert "error" in response.json()

    def test_cache_disabled(self, client):
        app.dependency_overrides[get_cache_store] = lambda: None

        response = client.get("/temp/audio_123.mp3")

        assert response.status_code == 404


class TestHealthAndFrontend:
    """Test health check and SPA fallback"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "song-resolver"

    def test_spa_fallback(self, client, tmp_path, monkeypatch):
        (tmp_path / "index.html").write_text("<html>app</html>")
        (tmp_path / "app.js").write_text("console.log('hi')")
        monkeypatch.setattr(settings, "PUBLIC_DIR", str(tmp_path))

        assert client.get("/").text == "<html>app</html>"
        assert client.get("/some/client/route").text == "<html>app</html>"
        assert client.get("/app.js").text == "console.log('hi')"

    def test_missing_frontend(self, client, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "PUBLIC_DIR", str(tmp_path / "nowhere"))

        response = client.get("/anything")

        assert response.status_code == 404
