#!/usr/bin/env python3
"""
One-off script to run the image cache eviction pass and print cache stats.

Usage:
    python scripts/run_cache_cleanup.py
"""
import asyncio

from gogarden.core.config import settings
from gogarden.core.logging import setup_logging
from gogarden.services.image_cache import ImageCacheManager


async def main() -> None:
    setup_logging(settings.LOG_LEVEL)
    cache = ImageCacheManager.from_settings(settings)
    print(f"Cleaning image cache at {cache.cache_dir}...\n")
    try:
        await cache.initialize()
        stats = await cache.get_cache_stats()
    finally:
        await cache.aclose()
    print(f"\n{stats.file_count} files, {stats.total_size_mb} MB retained.")


if __name__ == "__main__":
    asyncio.run(main())
