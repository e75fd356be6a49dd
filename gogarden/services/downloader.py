"""
Byte-transfer provider for the image cache.

download(url, destination) streams a remote resource to a local file and
reports the HTTP status. A transfer that fails part way leaves no file
behind at destination. Transport errors are reported, not raised: the cache
only distinguishes 2xx ("success") from everything else.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def _discard_partial(destination: Path) -> None:
    try:
        Path(destination).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("could not remove partial download %s: %s", destination, exc)


@dataclass(frozen=True)
class DownloadResult:
    status_code: Optional[int]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


class Downloader(Protocol):
    async def download(self, url: str, destination: Path) -> DownloadResult: ...


class HttpxDownloader:
    """
    Downloader backed by a shared httpx.AsyncClient.

    The client is created lazily and reused across downloads; call aclose()
    on shutdown. Pass a preconfigured client (e.g. with a MockTransport) to
    control the transport.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent} if user_agent else {}
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._headers,
                follow_redirects=True,
            )
        return self._client

    async def download(self, url: str, destination: Path) -> DownloadResult:
        client = self._get_client()
        logger.debug("GET %s → %s", url, destination)
        try:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    return DownloadResult(status_code=response.status_code)
                with Path(destination).open("wb") as fh:
                    async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                        fh.write(chunk)
                return DownloadResult(status_code=response.status_code)
        except (httpx.TimeoutException, httpx.RequestError) as exc:
            _discard_partial(destination)
            return DownloadResult(status_code=None, error=f"{type(exc).__name__}: {exc}")
        except OSError as exc:
            # Local write failed (disk full, permissions)
            _discard_partial(destination)
            return DownloadResult(status_code=None, error=f"write failed: {exc}")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
