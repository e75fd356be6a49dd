#!/usr/bin/env python3
"""
One-off script to wipe the image cache directory.

Usage:
    python scripts/clear_image_cache.py
"""
import asyncio

from gogarden.core.config import settings
from gogarden.core.logging import setup_logging
from gogarden.services.image_cache import ImageCacheManager


async def main() -> None:
    setup_logging(settings.LOG_LEVEL)
    cache = ImageCacheManager.from_settings(settings)
    try:
        removed = await cache.clear_cache()
    finally:
        await cache.aclose()
    print(f"Image cache cleared ({removed} files removed from {cache.cache_dir}).")


if __name__ == "__main__":
    asyncio.run(main())
