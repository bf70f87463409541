"""
Configuration management for the song resolver backend
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

BACKEND_DIR = Path(__file__).parent

DOWNLOAD_URL_STRATEGIES = ("direct", "local")


class Settings:
    """Application settings"""

    # Application
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", os.getenv("PORT", "3000")))
    VERSION: str = "1.0.0"

    # CORS
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3000")

    # Filesystem
    TEMP_DIR: str = os.getenv("TEMP_DIR", str(BACKEND_DIR / "temp"))
    PUBLIC_DIR: str = os.getenv("PUBLIC_DIR", str(BACKEND_DIR / "public"))

    # Query validation
    QUERY_MAX_LENGTH: int = int(os.getenv("QUERY_MAX_LENGTH", "100"))

    # Search provider (yt-dlp)
    SEARCH_QUERY_SUFFIX: str = os.getenv("SEARCH_QUERY_SUFFIX", "official audio")
    SEARCH_LIMIT: int = int(os.getenv("SEARCH_LIMIT", "5"))
    SEARCH_MIN_DURATION: int = int(os.getenv("SEARCH_MIN_DURATION", "30"))  # seconds, exclusive
    SEARCH_TIMEOUT: float = float(os.getenv("SEARCH_TIMEOUT", "10"))

    # Conversion API
    CONVERSION_API_URL: str = os.getenv(
        "CONVERSION_API_URL",
        "https://api.privatezia.biz.id/api/downloader/ytmp3"
    )
    CONVERSION_TIMEOUT: float = float(os.getenv("CONVERSION_TIMEOUT", "15"))

    # Ephemeral cache
    CACHE_ENABLED: bool = os.getenv("CACHE_ENABLED", "true").lower() == "true"
    CACHE_FETCH_TIMEOUT: float = float(os.getenv("CACHE_FETCH_TIMEOUT", "60"))
    CACHE_TTL: float = float(os.getenv("CACHE_TTL", "600"))  # 10 minutes
    CACHE_PURGE_ON_STARTUP: bool = os.getenv("CACHE_PURGE_ON_STARTUP", "true").lower() == "true"
    CACHE_CHUNK_SIZE: int = int(os.getenv("CACHE_CHUNK_SIZE", "65536"))

    # "direct" returns the converter's URL, "local" returns /temp/<filename>
    DOWNLOAD_URL_STRATEGY: str = os.getenv("DOWNLOAD_URL_STRATEGY", "direct").lower()

    # Client cache header for /temp/* responses (seconds)
    TEMP_CACHE_MAX_AGE: int = int(os.getenv("TEMP_CACHE_MAX_AGE", "60"))

    def validate_cache_config(self) -> None:
        """
        Validate cache configuration at startup.
        Raises ValueError if the download URL strategy cannot be honoured.
        """
        if self.DOWNLOAD_URL_STRATEGY not in DOWNLOAD_URL_STRATEGIES:
            raise ValueError(
                f"DOWNLOAD_URL_STRATEGY must be one of {', '.join(DOWNLOAD_URL_STRATEGIES)}, "
                f"got {self.DOWNLOAD_URL_STRATEGY!r}"
            )
        if self.DOWNLOAD_URL_STRATEGY == "local" and not self.CACHE_ENABLED:
            raise ValueError("DOWNLOAD_URL_STRATEGY=local requires CACHE_ENABLED=true")

    @property
    def cors_origins_list(self) -> list:
        """Parse CORS origins into a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
