"""
Cover art for the now-playing feed.

Artwork is downloaded with aiohttp, re-encoded to a bounded JPEG with Pillow
in a small thread pool (CPU-bound), and kept in an LRU cache keyed by URL.
The result is the ``{'base64': str, 'size': (w, h)}`` dict pushed to UI
clients.
"""

import asyncio
import base64
import logging
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO

import aiohttp
from PIL import Image

log = logging.getLogger(__name__)

MAX_ARTWORK_SIZE = 500 * 1024  # 500 KB limit for JPEG output
MAX_ARTWORK_EDGE = 1200        # px, longest side
ARTWORK_CACHE_SIZE = 100

_artwork_executor = ThreadPoolExecutor(max_workers=2)


class ArtworkCache:
    """Processed artwork keyed by URL; the least recently used entry goes first.

    Also tracks downloads in flight, so a track change that re-announces the
    same cover while it is still downloading waits for that download instead
    of starting a second one.
    """

    def __init__(self, max_size=ARTWORK_CACHE_SIZE):
        self.max_size = max_size
        self._entries: OrderedDict[str, dict] = OrderedDict()
        self._inflight: dict[str, asyncio.Task] = {}

    def get(self, url: str) -> dict | None:
        data = self._entries.get(url)
        if data is not None:
            self._entries.move_to_end(url)
        return data

    def put(self, url: str, data: dict):
        self._entries[url] = data
        self._entries.move_to_end(url)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("Evicted artwork %s", evicted)

    def __contains__(self, url: str):
        return url in self._entries

    def __len__(self):
        return len(self._entries)


def process_image(image_bytes: bytes) -> dict | None:
    """Convert raw image bytes to a compressed JPEG base64 dict, or None."""
    try:
        image = Image.open(BytesIO(image_bytes))
        if image.mode in ("RGBA", "LA", "P"):
            image = image.convert("RGB")
        image.thumbnail((MAX_ARTWORK_EDGE, MAX_ARTWORK_EDGE))

        buf = BytesIO()
        image.save(buf, "JPEG", quality=85)
        if buf.tell() > MAX_ARTWORK_SIZE:
            buf = BytesIO()
            image.save(buf, "JPEG", quality=60)

        return {
            "base64": base64.b64encode(buf.getvalue()).decode("utf-8"),
            "size": image.size,
        }
    except Exception as e:
        log.warning("Error processing image: %s", e)
        return None


async def fetch_artwork(session: aiohttp.ClientSession, url: str,
                        cache: ArtworkCache) -> dict | None:
    """Fetch artwork from *url*.

    Cached results are returned without I/O; concurrent calls for one URL
    share a single download.
    """
    if not url:
        return None
    cached = cache.get(url)
    if cached is not None:
        log.debug("Artwork cache hit for %s", url)
        return cached

    task = cache._inflight.get(url)
    if task is None:
        task = asyncio.create_task(_download(session, url, cache))
        cache._inflight[url] = task
        task.add_done_callback(lambda _: cache._inflight.pop(url, None))
    return await asyncio.shield(task)


async def _download(session, url, cache) -> dict | None:
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=10)) as resp:
            resp.raise_for_status()
            image_bytes = await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        log.warning("Error fetching artwork %s: %s", url, e)
        return None

    if not image_bytes:
        log.warning("Artwork URL returned 0 bytes: %s", url)
        return None

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(_artwork_executor, process_image, image_bytes)
    if result:
        cache.put(url, result)
        log.info("Cached artwork for %s (%d items in cache)", url, len(cache))
    return result
