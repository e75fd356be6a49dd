import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from gogarden.api.v1.router import api_router
from gogarden.core.config import settings
from gogarden.core.logging import setup_logging
from gogarden.services.identification_history import IdentificationHistoryStore
from gogarden.services.image_cache import ImageCacheManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging(settings.LOG_LEVEL)
    image_cache = ImageCacheManager.from_settings(settings)
    await image_cache.initialize()
    app.state.image_cache = image_cache
    app.state.history_store = IdentificationHistoryStore(
        settings.IDENTIFICATION_HISTORY_PATH,
        limit=settings.IDENTIFICATION_HISTORY_LIMIT,
    )
    yield
    # Shutdown
    await image_cache.aclose()


app = FastAPI(
    title="GoGarden API",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next) -> Response:
    start = time.monotonic()
    response = await call_next(request)
    latency_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "%s %s → %d (%d ms)",
        request.method, request.url.path, response.status_code, latency_ms,
    )
    return response


@app.get("/api/health", tags=["health"])
async def health():
    return {"status": "ok"}


app.include_router(api_router, prefix="/api/v1")
