"""
Pydantic schemas for request/response validation
"""

from pydantic import BaseModel, Field


class PlayResponse(BaseModel):
    """Response model for a resolved song"""
    title: str = Field(..., description="Track title")
    downloadUrl: str = Field(..., description="Upstream audio URL or /temp/<filename>, depending on strategy")

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Shape of You",
                "downloadUrl": "https://cdn.example.com/shape-of-you.mp3"
            }
        }


class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str = Field(..., description="Human-readable error message")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "😕 Couldn't find that song. Try another one!"
            }
        }


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    version: str
    download_url_strategy: str
    cache_enabled: bool
    cache_entries: int = Field(0, ge=0, description="Number of live cache entries")
