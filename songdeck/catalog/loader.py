"""
CatalogLoader — fetch → store → concurrent duration probes.

A refresh publishes the new track list as soon as it arrives (durations
unknown), then starts one probe task per track.  Starting another refresh
cancels the probes of the previous one; a probe that still completes is
dropped by the store's generation check.
"""

import asyncio
import logging
from typing import Awaitable, Callable

import aiohttp

from ..errors import CatalogFetchError, MediaUnreadable
from .fetch import DEFAULT_TIMEOUT, fetch_catalog
from .models import Track
from .prober import DurationProber
from .store import CatalogStore

log = logging.getLogger(__name__)


class CatalogLoader:

    def __init__(self, store: CatalogStore, prober: DurationProber,
                 session: aiohttp.ClientSession, url: str,
                 timeout: float = DEFAULT_TIMEOUT,
                 on_update: Callable[[], Awaitable[None]] | None = None):
        self.store = store
        self.prober = prober
        self.session = session
        self.url = url
        self.timeout = timeout
        self.on_update = on_update
        self._probe_tasks: set[asyncio.Task] = set()

    async def refresh(self, tab: str | None = None) -> bool:
        """Fetch the catalog and replace the store.

        Returns False if the fetch failed (previous catalog kept) or a newer
        refresh superseded this one while it was in flight.
        """
        generation = self.store.begin_refresh(tab)
        self._cancel_probes()
        log.info("Catalog refresh #%d (tab=%s)", generation, self.store.tab)

        try:
            tracks = await fetch_catalog(self.session, self.url, self.timeout)
        except CatalogFetchError as e:
            log.error("Catalog refresh #%d failed: %s", generation, e)
            return False

        if not self.store.replace(tracks, generation):
            log.info("Catalog refresh #%d superseded — discarding", generation)
            return False
        await self._notify()

        for track in tracks:
            if track.duration is None:
                task = asyncio.create_task(self._probe(track, generation))
                self._probe_tasks.add(task)
                task.add_done_callback(self._probe_tasks.discard)
        return True

    async def _probe(self, track: Track, generation: int):
        try:
            seconds = await self.prober.probe(track.media_url)
        except MediaUnreadable as e:
            log.warning("Duration unknown for %s: %s", track.id, e)
            return
        if self.store.apply_duration(track.id, seconds, generation):
            await self._notify()

    def _cancel_probes(self):
        if self._probe_tasks:
            log.debug("Cancelling %d in-flight probes", len(self._probe_tasks))
        for task in list(self._probe_tasks):
            task.cancel()

    async def wait_for_probes(self):
        """Wait until every probe of the current refresh has finished."""
        while self._probe_tasks:
            await asyncio.gather(*list(self._probe_tasks), return_exceptions=True)

    async def close(self):
        self._cancel_probes()
        await self.wait_for_probes()

    async def _notify(self):
        if self.on_update is None:
            return
        try:
            await self.on_update()
        except Exception:
            log.exception("Catalog update callback failed")
