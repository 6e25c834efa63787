"""
songdeck — catalog fetcher.

The catalog API returns every track in one response:

  {
    "data": [
      { "id": 1, "name": "Title", "artist": "Artist", "url": "https://...mp3",
        "cover": "<asset-id>", "accent": "#331E00", "top_track": true },
      ...
    ]
  }

The tab shown in the UI does not change the request; the full list is always
fetched and the tab is applied by the filtered view.
"""

import asyncio
import logging

import aiohttp

from ..errors import CatalogFetchError
from .models import Track, parse_catalog

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15


async def fetch_catalog(session: aiohttp.ClientSession, url: str,
                        timeout: float = DEFAULT_TIMEOUT) -> list[Track]:
    """GET the catalog and return the full track list.

    Raises CatalogFetchError on network, HTTP or payload errors.
    """
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
            resp.raise_for_status()
            payload = await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise CatalogFetchError(f"catalog request failed: {e}") from e
    except ValueError as e:
        raise CatalogFetchError(f"catalog response is not JSON: {e}") from e

    try:
        tracks = parse_catalog(payload)
    except ValueError as e:
        raise CatalogFetchError(str(e)) from e
    log.info("Fetched %d tracks from %s", len(tracks), url)
    return tracks
