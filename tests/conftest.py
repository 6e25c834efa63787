"""
Pytest configuration and shared fixtures for songdeck tests.

Async code is driven with asyncio.run() inside plain test functions.
"""
import asyncio

import pytest

from songdeck.catalog.models import Track
from songdeck.catalog.store import CatalogStore
from songdeck.errors import MediaUnreadable, PlaybackRejected
from songdeck.player.device import (AudioOutputDevice, DeviceFailed, Ended,
                                    PlaybackStarted, Progress)


class FakeDevice(AudioOutputDevice):
    """In-memory audio output that records every command.

    Events in ``during_load`` are emitted from inside ``load_and_play``, the way
    a real output reports the end of the source it is replacing.
    """

    def __init__(self):
        super().__init__()
        self.calls = []
        self.listeners = []
        self.volume = None
        self.reject_load = False
        self.reject_resume = False
        self.during_load = []
        self.started = False
        self.released = False

    def subscribe(self, listener):
        sub = super().subscribe(listener)
        self.listeners.append(listener)
        return sub

    async def start(self):
        self.started = True

    async def load_and_play(self, media_url, start_position=0.0):
        self.calls.append(("load_and_play", media_url, start_position))
        if self.reject_load:
            raise PlaybackRejected("autoplay blocked")
        for event in self.during_load:
            await self._emit(event)

    async def pause(self):
        self.calls.append(("pause",))

    async def resume(self):
        self.calls.append(("resume",))
        if self.reject_resume:
            raise PlaybackRejected("resume blocked")

    async def seek(self, seconds):
        self.calls.append(("seek", seconds))

    async def set_volume(self, volume):
        self.calls.append(("set_volume", volume))
        self.volume = volume

    async def release(self):
        self.released = True
        if self._subscription is not None:
            self.unsubscribe(self._subscription)

    # ── Event helpers ──

    async def confirm_started(self):
        await self._emit(PlaybackStarted())

    async def progress(self, position, duration=None):
        await self._emit(Progress(position, duration))

    async def end(self):
        await self._emit(Ended())

    async def fail(self, kind="media_unreadable", message="decode error"):
        await self._emit(DeviceFailed(kind, message))

    def loads(self):
        return [c for c in self.calls if c[0] == "load_and_play"]


class FakeProber:
    """Duration prober backed by a dict; values may be exceptions.

    Probes for URLs listed in ``gates`` wait on that asyncio.Event first.
    """

    def __init__(self, durations=None):
        self.durations = durations or {}
        self.gates = {}
        self.probed = []
        self.cancelled = []

    async def probe(self, media_url):
        self.probed.append(media_url)
        gate = self.gates.get(media_url)
        try:
            if gate is not None:
                await gate.wait()
        except asyncio.CancelledError:
            self.cancelled.append(media_url)
            raise
        value = self.durations.get(media_url)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise MediaUnreadable(media_url, "no duration")
        return value


def make_store(tracks):
    store = CatalogStore()
    store.replace(tracks, store.begin_refresh())
    return store


@pytest.fixture
def tracks():
    """Three tracks; the last has no probed duration."""
    return [
        Track(id="x", name="Xanadu", artist="Olivia", media_url="https://cdn.test/x.mp3",
              cover="cx", accent="#331E00", top_track=True, duration=180.0),
        Track(id="y", name="Yellow", artist="Coldplay", media_url="https://cdn.test/y.mp3",
              cover="cy", accent="#FFCC00", top_track=False, duration=200.0),
        Track(id="z", name="Zombie", artist="The Cranberries", media_url="https://cdn.test/z.mp3",
              cover="cz", accent="#0A0A0A", top_track=True),
    ]


@pytest.fixture
def store(tracks):
    return make_store(tracks)


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def catalog_payload():
    """Catalog API response in the upstream JSON shape."""
    return {
        "data": [
            {"id": 1, "name": "Colors", "artist": "William King", "url": "https://cdn.test/1.mp3",
             "cover": "4f718272", "accent": "#331E00", "top_track": True},
            {"id": 2, "name": "Saturn", "artist": "Sleeping At Last", "url": "https://cdn.test/2.mp3",
             "cover": "8a0a1b2c", "accent": "#0D2C3A", "top_track": False},
            {"id": 3, "name": "Cruel Summer", "artist": "Taylor Swift", "url": "https://cdn.test/3.mp3",
             "cover": "11223344", "accent": "#7A3B4E", "top_track": True},
        ]
    }
