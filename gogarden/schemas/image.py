from typing import Optional

from pydantic import BaseModel, Field

from gogarden.services.image_fallback import FallbackState


class ImageUriRead(BaseModel):
    uri: Optional[str] = None
    cached: bool = False


class PreloadRequest(BaseModel):
    # Items that are not usable URLs are skipped, not rejected
    urls: list[Optional[str]] = Field(default_factory=list)


class PreloadResponse(BaseModel):
    queued: int
    queue_length: int


class InvalidateRequest(BaseModel):
    url: str


class InvalidateResponse(BaseModel):
    removed: bool


class CacheStatsRead(BaseModel):
    file_count: int
    total_size_bytes: int
    total_size_mb: float
    memory_cache_count: int
    queue_length: int

    model_config = {"from_attributes": True}


class CacheMaintenanceResponse(BaseModel):
    deleted: int


class ImageSourceRequest(BaseModel):
    """A plant or article and its candidate images, best first."""
    name: str
    season: Optional[str] = None
    images: list[Optional[str]] = Field(default_factory=list)


class PlaceholderRead(BaseModel):
    text: str
    glyph: str


class ImageSourceRead(BaseModel):
    state: FallbackState
    uri: Optional[str] = None
    index: Optional[int] = None
    attempted: list[int] = Field(default_factory=list)
    placeholder: Optional[PlaceholderRead] = None
