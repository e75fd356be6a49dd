from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response

from gogarden.core.deps import ImageCache
from gogarden.schemas.image import (
    CacheMaintenanceResponse,
    CacheStatsRead,
    ImageSourceRead,
    ImageSourceRequest,
    ImageUriRead,
    InvalidateRequest,
    InvalidateResponse,
    PlaceholderRead,
    PreloadRequest,
    PreloadResponse,
)
from gogarden.services.image_fallback import FallbackState, ImageFallbackController

router = APIRouter(prefix="/images", tags=["images"])


@router.get("/resolve", response_model=ImageUriRead)
async def resolve_image(cache: ImageCache, url: str = Query(..., min_length=1)):
    """Local URI if the image is cached, else the original URL (queued for background caching)."""
    uri = await cache.get_image_uri(url)
    return ImageUriRead(uri=uri, cached=uri is not None and uri != url)


@router.get("/proxy")
async def proxy_image(cache: ImageCache, url: str = Query(..., min_length=1)):
    """Serve image bytes through the cache, fetching on a miss. Failures are never cached."""
    if not cache.is_fetchable(url):
        raise HTTPException(status_code=403, detail="Image host not allowed")
    cached = await cache.read_cached(url)
    if cached is None:
        raise HTTPException(status_code=404, detail="Image unavailable")
    content, content_type = cached
    return Response(content=content, media_type=content_type)


@router.post("/preload", response_model=PreloadResponse, status_code=202)
async def preload_images(body: PreloadRequest, cache: ImageCache):
    queued = cache.preload_images(body.urls)
    return PreloadResponse(queued=queued, queue_length=len(cache.preload_queue))


@router.post("/best-source", response_model=ImageSourceRead)
async def best_image_source(body: ImageSourceRequest, cache: ImageCache):
    """Try each candidate image in order; placeholder only once all of them fail."""
    controller = ImageFallbackController(body.name, body.images, body.season)
    state = await controller.resolve(cache.attempt_load)

    if state is FallbackState.LOADED:
        return ImageSourceRead(
            state=state,
            uri=controller.loaded_uri,
            index=controller.current_index,
            attempted=controller.attempted,
        )

    placeholder = controller.placeholder
    return ImageSourceRead(
        state=state,
        attempted=controller.attempted,
        placeholder=PlaceholderRead(text=placeholder.text, glyph=placeholder.glyph),
    )


@router.post("/invalidate", response_model=InvalidateResponse)
async def invalidate_image(body: InvalidateRequest, cache: ImageCache):
    """Client-reported decode failure: drop the cached copy so it is refetched."""
    return InvalidateResponse(removed=await cache.invalidate(body.url))


@router.get("/stats", response_model=CacheStatsRead)
async def cache_stats(cache: ImageCache):
    stats = await cache.get_cache_stats()
    return CacheStatsRead.model_validate(stats)


@router.post("/cleanup", response_model=CacheMaintenanceResponse)
async def cleanup_cache(cache: ImageCache):
    return CacheMaintenanceResponse(deleted=await cache.cleanup_old_files())


@router.delete("/cache", response_model=CacheMaintenanceResponse)
async def clear_cache(cache: ImageCache):
    return CacheMaintenanceResponse(deleted=await cache.clear_cache())
