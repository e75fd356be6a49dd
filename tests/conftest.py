import asyncio
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from gogarden.core.deps import get_history_store, get_image_cache
from gogarden.main import app
from gogarden.services.downloader import DownloadResult
from gogarden.services.identification_history import IdentificationHistoryStore
from gogarden.services.image_cache import ImageCacheManager

JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64


class FakeDownloader:
    """
    Stands in for the HTTP transfer: writes canned bytes to the destination
    and records every URL it was asked for.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.responses: dict[str, tuple[int, bytes]] = {}
        self.errors: dict[str, Exception] = {}
        self.default_body = JPEG_BYTES
        self.delay = 0.0
        self.closed = False

    def respond(self, url: str, status: int = 200, body: bytes | None = None) -> None:
        self.responses[url] = (status, self.default_body if body is None else body)

    def fail_with(self, url: str, exc: Exception) -> None:
        self.errors[url] = exc

    async def download(self, url: str, destination: Path) -> DownloadResult:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if url in self.errors:
            raise self.errors[url]
        status, body = self.responses.get(url, (200, self.default_body))
        if 200 <= status < 300:
            Path(destination).write_bytes(body)
        return DownloadResult(status_code=status)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "plant-images"


@pytest_asyncio.fixture
async def cache(cache_dir: Path, downloader: FakeDownloader):
    manager = ImageCacheManager(cache_dir, downloader, preload_throttle=0)
    yield manager
    await manager.aclose()


@pytest.fixture
def history_store(tmp_path: Path) -> IdentificationHistoryStore:
    return IdentificationHistoryStore(tmp_path / "history.json", limit=50)


@pytest_asyncio.fixture
async def client(cache: ImageCacheManager, history_store: IdentificationHistoryStore):
    app.dependency_overrides[get_image_cache] = lambda: cache
    app.dependency_overrides[get_history_store] = lambda: history_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
