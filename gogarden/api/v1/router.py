from fastapi import APIRouter

from gogarden.api.v1.endpoints import identifications, images

api_router = APIRouter()

api_router.include_router(images.router)
api_router.include_router(identifications.router)
