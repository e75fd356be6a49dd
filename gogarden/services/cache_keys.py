"""
Cache key derivation for remote images.

Maps a source URL to a stable, filesystem-safe filename inside the flat cache
directory. Pure functions with no I/O and no salt: the same URL always yields
the same name.

    https://cdn.example.com/plants/Tomato-1.JPG
      → key  "cdn_example_com__plants_Tomato_1_JPG"
      → file "<cache_dir>/cdn_example_com__plants_Tomato_1_JPG.jpg"
"""
import re
from pathlib import Path
from urllib.parse import urlsplit

MAX_KEY_LENGTH = 100
MAX_FALLBACK_KEY_LENGTH = 50
DEFAULT_EXTENSION = "jpg"

IMAGE_EXTENSIONS = frozenset(
    {"jpg", "jpeg", "png", "gif", "webp", "bmp", "heic", "heif", "avif", "svg"}
)

_UNSAFE = re.compile(r"[^a-zA-Z0-9]")
_TRAILING_EXT = re.compile(r"\.([a-zA-Z0-9]+)$")


def _sanitize(value: str) -> str:
    return _UNSAFE.sub("_", value)


def _split_absolute(url: str):
    """Return urlsplit() parts for an absolute URL, or raise ValueError."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"not an absolute URL: {url!r}")
    return parts


def derive_cache_key(url: str) -> str:
    """
    Return the cache key for a URL: sanitized host + "_" + sanitized path.

    Malformed URLs fall back to the whole string sanitized and cut to
    MAX_FALLBACK_KEY_LENGTH. Never raises.
    """
    try:
        parts = _split_absolute(url)
    except ValueError:
        return _sanitize(url)[:MAX_FALLBACK_KEY_LENGTH]

    host_key = _sanitize(parts.hostname)
    path_key = _sanitize(parts.path)
    return f"{host_key}_{path_key}"[:MAX_KEY_LENGTH]


def derive_file_extension(url: str) -> str:
    """Trailing image extension of the URL path (lower-cased), or DEFAULT_EXTENSION."""
    try:
        path = _split_absolute(url).path
    except ValueError:
        return DEFAULT_EXTENSION

    match = _TRAILING_EXT.search(path)
    if match:
        ext = match.group(1).lower()
        if ext in IMAGE_EXTENSIONS:
            return ext
    return DEFAULT_EXTENSION


def derive_file_path(cache_dir: Path, url: str) -> Path:
    """On-disk location for a URL: <cache_dir>/<key>.<ext>."""
    return Path(cache_dir) / f"{derive_cache_key(url)}.{derive_file_extension(url)}"
