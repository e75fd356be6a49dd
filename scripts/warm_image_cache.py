#!/usr/bin/env python3
"""
Warm the image cache for a list of URLs through the preload queue.

Usage:
    python scripts/warm_image_cache.py https://cdn.example.com/plants/tomato.jpg ...
    python scripts/warm_image_cache.py --file image-urls.txt
"""
import argparse
import asyncio
from pathlib import Path

from gogarden.core.config import settings
from gogarden.core.logging import setup_logging
from gogarden.services.image_cache import ImageCacheManager


def _read_urls(args: argparse.Namespace) -> list[str]:
    urls = list(args.urls)
    if args.file:
        for line in Path(args.file).read_text().splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                urls.append(line)
    return urls


async def main(urls: list[str]) -> None:
    setup_logging(settings.LOG_LEVEL)
    cache = ImageCacheManager.from_settings(settings)
    try:
        await cache.initialize()
        queued = cache.preload_images(urls)
        print(f"Queued {queued} of {len(urls)} images...\n")
        await cache.wait_until_idle()
        stats = await cache.get_cache_stats()
    finally:
        await cache.aclose()
    print(f"\nDone: {stats.file_count} files, {stats.total_size_mb} MB in {cache.cache_dir}.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Preload images into the GoGarden image cache.")
    parser.add_argument("urls", nargs="*", help="Image URLs to cache")
    parser.add_argument("--file", help="Text file with one URL per line")
    asyncio.run(main(_read_urls(parser.parse_args())))
