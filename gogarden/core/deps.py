from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from gogarden.services.identification_history import IdentificationHistoryStore
from gogarden.services.image_cache import ImageCacheManager


def get_image_cache(request: Request) -> ImageCacheManager:
    """The process-wide cache manager, built in the app lifespan."""
    cache = getattr(request.app.state, "image_cache", None)
    if cache is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Image cache not ready")
    return cache


def get_history_store(request: Request) -> IdentificationHistoryStore:
    store = getattr(request.app.state, "history_store", None)
    if store is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="History store not ready")
    return store


ImageCache = Annotated[ImageCacheManager, Depends(get_image_cache)]
HistoryStore = Annotated[IdentificationHistoryStore, Depends(get_history_store)]
