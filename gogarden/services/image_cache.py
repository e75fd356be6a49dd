"""
Disk-backed image cache for plant and article photos.

Sits in front of remote images (CDN / object storage / stock photo hosts):

  get_image_uri(url)   local path if cached and fresh, else the original URL
                       plus a background preload so the next request is a hit.
  cache_image(url)     fetch-and-store; one transfer per URL at a time.
  preload_images(urls) fire-and-forget warm-up through a single sequential,
                       throttled worker.
  cleanup_old_files()  age + size bounded eviction (runs at initialize()).

Expiry is lazy: a stale file is only removed when it is requested again or
when cleanup_old_files() runs. There is no sweep timer, so disk usage can sit
above policy between those points.

Downloads land in a hidden staging file (".<stem>.tmp.<hex>") next to the
target and are moved into place only after a complete 2xx transfer, so a
cache path on disk always holds a whole body. Staging files are invisible to
lookups, stats and eviction; leftovers from a crash are removed at
initialize().

Nothing here raises to the caller. Network and filesystem failures are
logged and come back as None / False / the original URL.
"""
import asyncio
import logging
import mimetypes
import time
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import urlsplit
from uuid import uuid4

from gogarden.services.cache_keys import derive_file_path
from gogarden.services.downloader import Downloader, HttpxDownloader
from gogarden.services.file_store import FileInfo, FileStore, LocalFileStore
from gogarden.services.image_fallback import LoadErr, LoadFailure, LoadOk, LoadResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(days=7)
DEFAULT_MAX_SIZE_BYTES = 50 * 1024 * 1024  # 50 MB
DEFAULT_PRELOAD_THROTTLE = 0.1  # seconds between preload downloads

_IMAGE_SIGNATURES = (
    b"\xff\xd8\xff",       # JPEG
    b"\x89PNG\r\n\x1a\n",  # PNG
    b"GIF87a",
    b"GIF89a",
    b"BM",                 # BMP
)
SNIFF_BYTES = 512

_STAGING_MARKER = ".tmp."


def looks_like_image(head: bytes) -> bool:
    """
    True if the leading bytes match a known image format.

    Text bodies only count as SVG: either an <svg root, or an XML prolog /
    SVG doctype followed by an <svg element within the sniffed bytes. Other
    XML (S3 error documents, RSS) is rejected.
    """
    if head.startswith(_IMAGE_SIGNATURES):
        return True
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return True
    if head[4:8] == b"ftyp":  # HEIC / AVIF
        return True
    text = head.lstrip()
    if text.startswith(b"<svg"):
        return True
    return text.startswith((b"<?xml", b"<!DOCTYPE svg")) and b"<svg" in text


def _is_url(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _staging_path(path: Path) -> Path:
    return path.with_name(f".{path.stem}{_STAGING_MARKER}{uuid4().hex}")


def _is_staging_name(name: str) -> bool:
    return name.startswith(".") and _STAGING_MARKER in name


def _host_allowed(url: str, allowed_hosts: frozenset[str]) -> bool:
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return False
    return bool(host) and any(host == h or host.endswith("." + h) for h in allowed_hosts)


@dataclass
class CacheStats:
    file_count: int
    total_size_bytes: int
    memory_cache_count: int
    queue_length: int

    @property
    def total_size_mb(self) -> float:
        return round(self.total_size_bytes / (1024 * 1024), 2)


class ImageCacheManager:
    """
    One instance per process, built at startup and handed to consumers.

    State: the in-memory index (url → local path), the preload queue and its
    worker, and the per-URL map of in-flight downloads. The cache directory
    listing is the source of truth; the index only saves a lookup.
    """

    def __init__(
        self,
        cache_dir: Path,
        downloader: Downloader,
        files: Optional[FileStore] = None,
        max_age: timedelta = DEFAULT_MAX_AGE,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        preload_throttle: float = DEFAULT_PRELOAD_THROTTLE,
        allowed_hosts: Optional[Iterable[str]] = None,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.max_age = max_age
        self.max_size_bytes = max_size_bytes
        self.preload_throttle = preload_throttle
        # None fetches from any host; otherwise exact hosts and their subdomains
        self.allowed_hosts: Optional[frozenset[str]] = (
            None if allowed_hosts is None else frozenset(h.lower() for h in allowed_hosts)
        )
        self._downloader = downloader
        self._files: FileStore = files if files is not None else LocalFileStore()

        self._memory: dict[str, str] = {}
        self._preload_queue: deque[str] = deque()
        self._is_preloading = False
        self._preload_task: Optional[asyncio.Task] = None
        self._in_flight: dict[str, asyncio.Task] = {}

    @classmethod
    def from_settings(cls, settings, downloader: Optional[Downloader] = None) -> "ImageCacheManager":
        if downloader is None:
            downloader = HttpxDownloader(
                timeout=settings.IMAGE_FETCH_TIMEOUT_SECONDS,
                user_agent=settings.IMAGE_FETCH_USER_AGENT,
            )
        return cls(
            cache_dir=settings.IMAGE_CACHE_DIR,
            downloader=downloader,
            max_age=timedelta(days=settings.IMAGE_CACHE_MAX_AGE_DAYS),
            max_size_bytes=settings.image_cache_max_size_bytes,
            preload_throttle=settings.IMAGE_PRELOAD_THROTTLE_MS / 1000,
            allowed_hosts=settings.image_allowed_hosts,
        )

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def memory_index(self) -> dict[str, str]:
        return dict(self._memory)

    @property
    def preload_queue(self) -> list[str]:
        return list(self._preload_queue)

    @property
    def is_preloading(self) -> bool:
        return self._is_preloading

    def file_path_for(self, url: str) -> Path:
        return derive_file_path(self.cache_dir, url)

    def is_fetchable(self, url: str) -> bool:
        """True if url may be downloaded under the allowed-hosts policy."""
        if not _is_url(url):
            return False
        return self.allowed_hosts is None or _host_allowed(url, self.allowed_hosts)

    async def _cache_file_names(self) -> list[str]:
        names = await self._files.list_directory(self.cache_dir)
        return [n for n in names if not _is_staging_name(n)]

    def _is_expired(self, info: FileInfo, now: float) -> bool:
        return now - info.modified_at >= self.max_age.total_seconds()

    async def _delete_quietly(self, path: Path) -> bool:
        try:
            await self._files.delete(path)
        except OSError as exc:
            logger.warning("image cache: could not delete %s: %s", path, exc)
            return False
        return True

    def _forget_paths(self, paths: Iterable[Path]) -> None:
        gone = {str(p) for p in paths}
        for url in [u for u, p in self._memory.items() if p in gone]:
            del self._memory[url]

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Create the cache directory and run one eviction pass."""
        try:
            await self._files.make_directory(self.cache_dir)
        except OSError as exc:
            logger.warning("image cache: cannot create %s: %s", self.cache_dir, exc)
            return
        await self._remove_staging_files()
        await self.cleanup_old_files()
        logger.info("image cache initialized at %s", self.cache_dir)

    async def _remove_staging_files(self) -> int:
        """Delete staging files left by transfers that never finished."""
        try:
            names = await self._files.list_directory(self.cache_dir)
        except OSError as exc:
            logger.warning("image cache: cannot list %s: %s", self.cache_dir, exc)
            return 0

        removed = 0
        for name in names:
            if _is_staging_name(name) and await self._delete_quietly(self.cache_dir / name):
                removed += 1
        if removed:
            logger.info("removed %d unfinished image downloads", removed)
        return removed

    async def aclose(self) -> None:
        """Stop the preload worker, cancel in-flight downloads, close the downloader."""
        tasks = [
            t for t in (self._preload_task, *self._in_flight.values())
            if t is not None and not t.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._preload_queue.clear()
        self._preload_task = None
        self._is_preloading = False

        close = getattr(self._downloader, "aclose", None)
        if close is not None:
            await close()

    # ── Freshness ─────────────────────────────────────────────────────────────

    async def is_cached(self, url: str) -> Optional[str]:
        """
        Local path if url has a fresh file on disk, else None.

        A file older than max_age is deleted here (best effort) and reported
        as not cached.
        """
        if not _is_url(url):
            return None

        path = self.file_path_for(url)
        try:
            info = await self._files.stat(path)
        except OSError as exc:
            logger.warning("image cache: stat failed for %s: %s", path, exc)
            return None

        if not info.exists:
            return None
        if not self._is_expired(info, time.time()):
            return str(path)

        logger.debug("image cache: expired %s", path)
        await self._delete_quietly(path)
        self._forget_paths([path])
        return None

    # ── Fetch-and-store ───────────────────────────────────────────────────────

    async def cache_image(self, url: str) -> Optional[str]:
        """
        Make sure url is on disk and return its local path, or None on failure.

        Concurrent calls for the same url share one download. The download is
        shielded: a caller that is cancelled does not cancel the transfer.
        """
        if not _is_url(url):
            return None
        if not self.is_fetchable(url):
            logger.warning("image cache: host not allowed for %s", url)
            return None

        task = self._in_flight.get(url)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(url))
            self._in_flight[url] = task
            task.add_done_callback(lambda t, u=url: self._forget_in_flight(u, t))
        else:
            logger.debug("image cache: joining in-flight download for %s", url)
        return await asyncio.shield(task)

    def _forget_in_flight(self, url: str, task: asyncio.Task) -> None:
        if self._in_flight.get(url) is task:
            del self._in_flight[url]

    async def _fetch_and_store(self, url: str) -> Optional[str]:
        cached = await self.is_cached(url)
        if cached:
            logger.debug("image cache hit: %s", url)
            return cached

        path = self.file_path_for(url)
        try:
            await self._files.make_directory(self.cache_dir)
        except OSError as exc:
            logger.warning("image cache: cannot create %s: %s", self.cache_dir, exc)
            return None

        logger.info("caching image %s", url)
        staging = _staging_path(path)
        try:
            try:
                result = await self._downloader.download(url, staging)
            except Exception as exc:
                logger.warning("image download raised for %s: %s", url, exc)
                return None

            if not result.ok:
                logger.warning(
                    "image download failed for %s (status=%s, error=%s)",
                    url, result.status_code, result.error,
                )
                return None

            try:
                await self._files.replace(staging, path)
            except OSError as exc:
                logger.warning("image cache: could not store %s: %s", path, exc)
                return None
        finally:
            await self._delete_quietly(staging)

        self._memory[url] = str(path)
        logger.debug("cached image %s → %s", url, path)
        return str(path)

    # ── Resolve for display ───────────────────────────────────────────────────

    async def get_image_uri(self, url: str) -> Optional[str]:
        """
        URI to display for url: the local file when cached, else url itself.

        A miss queues url for background preload and returns immediately;
        this never waits on a download.
        """
        if not _is_url(url):
            return None

        try:
            cached_path = self._memory.get(url)
            if cached_path is not None:
                info = await self._files.stat(Path(cached_path))
                if info.exists:
                    return cached_path
                # File was deleted underneath us
                self._memory.pop(url, None)

            cached = await self.is_cached(url)
            if cached:
                self._memory[url] = cached
                return cached
        except OSError as exc:
            logger.warning("image cache: lookup failed for %s: %s", url, exc)
            return url

        self.queue_for_preload(url)
        return url

    # ── Preload queue ─────────────────────────────────────────────────────────

    def queue_for_preload(self, url: str) -> bool:
        """Append url to the preload queue unless already queued or cached. Returns True if appended."""
        if not self.is_fetchable(url) or url in self._memory or url in self._preload_queue:
            return False
        self._preload_queue.append(url)
        self._start_preloading()
        return True

    def preload_images(self, urls: Optional[Iterable[object]]) -> int:
        """Queue every usable URL for background caching. Returns the number newly queued."""
        valid = [u for u in (urls or ()) if _is_url(u)]
        logger.info("queuing %d images for preload", len(valid))
        queued = 0
        for url in valid:
            if self.queue_for_preload(url):
                queued += 1
        return queued

    def _start_preloading(self) -> None:
        if self._is_preloading or not self._preload_queue:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop yet; the next enqueue from inside the loop starts the worker
            return
        self._is_preloading = True
        self._preload_task = loop.create_task(self._drain_preload_queue())

    async def _drain_preload_queue(self) -> None:
        logger.info("starting image preload queue (%d images)", len(self._preload_queue))
        processed = 0
        try:
            while self._preload_queue:
                url = self._preload_queue.popleft()
                try:
                    await self.cache_image(url)
                except Exception:
                    logger.exception("image preload failed for %s", url)
                processed += 1
                await asyncio.sleep(self.preload_throttle)
        finally:
            self._is_preloading = False
        logger.info("image preload queue completed (%d images)", processed)

    async def wait_until_idle(self) -> None:
        """Wait for the preload worker to drain the queue."""
        while True:
            task = self._preload_task
            if task is None or task.done():
                return
            await asyncio.shield(task)

    # ── Load attempts (fallback support) ──────────────────────────────────────

    async def attempt_load(self, url: str) -> LoadResult:
        """
        Fetch url through the cache and check that the stored bytes are an image.

        Bytes that are not an image (an HTML error page served with 200, a
        truncated body) are evicted right away rather than served until expiry.
        """
        path = await self.cache_image(url)
        if path is None:
            return LoadErr(LoadFailure.FETCH_FAILED, f"could not fetch {url}")

        try:
            data = await self._files.read_bytes(Path(path))
        except OSError as exc:
            logger.warning("image cache: cannot read %s: %s", path, exc)
            return LoadErr(LoadFailure.FETCH_FAILED, str(exc))

        if not looks_like_image(data[:SNIFF_BYTES]):
            logger.warning("image cache: %s is not a decodable image, evicting", url)
            await self.invalidate(url)
            return LoadErr(LoadFailure.DECODE_FAILED, f"not an image: {url}")

        return LoadOk(path)

    async def invalidate(self, url: str) -> bool:
        """Drop url from the cache (file + index). Returns True if a file was removed."""
        if not _is_url(url):
            return False

        self._memory.pop(url, None)
        path = self.file_path_for(url)
        try:
            info = await self._files.stat(path)
        except OSError as exc:
            logger.warning("image cache: stat failed for %s: %s", path, exc)
            return False
        if not info.exists:
            return False

        removed = await self._delete_quietly(path)
        if removed:
            logger.info("invalidated cached image %s", url)
        return removed

    async def read_cached(self, url: str) -> Optional[tuple[bytes, str]]:
        """(image_bytes, content_type) for url, fetching it if needed. None when unavailable."""
        path = await self.cache_image(url)
        if path is None:
            return None
        try:
            content = await self._files.read_bytes(Path(path))
        except OSError as exc:
            logger.warning("image cache: cannot read %s: %s", path, exc)
            return None
        content_type = mimetypes.guess_type(path)[0] or "image/jpeg"
        return content, content_type

    # ── Eviction / maintenance ────────────────────────────────────────────────

    async def _list_entries(self) -> list[tuple[Path, FileInfo]]:
        try:
            names = await self._cache_file_names()
        except OSError as exc:
            logger.warning("image cache: cannot list %s: %s", self.cache_dir, exc)
            return []

        entries = []
        for name in names:
            path = self.cache_dir / name
            try:
                info = await self._files.stat(path)
            except OSError as exc:
                logger.warning("image cache: stat failed for %s: %s", path, exc)
                continue
            if info.exists:
                entries.append((path, info))
        return entries

    async def cleanup_old_files(self) -> int:
        """
        Single best-effort eviction pass. Returns the number of files deleted.

        Files are visited oldest first. Expired files are always deleted; the
        rest are deleted while the retained total (bytes of non-expired files
        still on disk) exceeds max_size_bytes. The newest files that fit under
        the budget survive.
        """
        entries = await self._list_entries()
        entries.sort(key=lambda e: e[1].modified_at)

        now = time.time()
        expired = {path for path, info in entries if self._is_expired(info, now)}
        retained_total = sum(info.size_bytes for path, info in entries if path not in expired)

        deleted: list[Path] = []
        for path, info in entries:
            if path in expired:
                reason = "expired"
            elif retained_total > self.max_size_bytes:
                reason = "over size budget"
                retained_total -= info.size_bytes
            else:
                continue

            if await self._delete_quietly(path):
                deleted.append(path)
                logger.debug("deleted cached image %s (%s)", path.name, reason)

        self._forget_paths(deleted)
        if deleted:
            logger.info("cleaned up %d cached images", len(deleted))
        return len(deleted)

    async def clear_cache(self) -> int:
        """Delete every cached file and reset the in-memory index. Returns files removed."""
        try:
            names = await self._cache_file_names()
        except OSError as exc:
            logger.warning("image cache: cannot list %s: %s", self.cache_dir, exc)
            names = []

        removed = 0
        for name in names:
            if await self._delete_quietly(self.cache_dir / name):
                removed += 1

        try:
            await self._files.make_directory(self.cache_dir)
        except OSError as exc:
            logger.warning("image cache: cannot create %s: %s", self.cache_dir, exc)

        self._memory.clear()
        logger.info("image cache cleared (%d files)", removed)
        return removed

    async def get_cache_stats(self) -> CacheStats:
        try:
            names = await self._cache_file_names()
        except OSError as exc:
            logger.warning("image cache: cannot list %s: %s", self.cache_dir, exc)
            names = []

        total = 0
        for name in names:
            try:
                info = await self._files.stat(self.cache_dir / name)
            except OSError as exc:
                logger.warning("image cache: stat failed for %s: %s", name, exc)
                continue
            total += info.size_bytes

        return CacheStats(
            file_count=len(names),
            total_size_bytes=total,
            memory_cache_count=len(self._memory),
            queue_length=len(self._preload_queue),
        )
