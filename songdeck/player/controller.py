# songdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
PlaybackSessionController — what is playing, where, and how loud.

The controller is the only holder of the audio output device.  It turns UI
intents into device commands, applies device events to the PlaybackState, and
publishes a new snapshot to its observers after every change.

State machine:

    idle ──select──▶ loading ──started──▶ playing ◀──toggle──▶ paused
                        │                                        ▲
                        └────────────── error / rejected ────────┘

Ordering:
  - Intents are serialised through one asyncio.Lock (FIFO), so they reach
    the device in the order they were issued.
  - Every track switch detaches the device subscription and subscribes a new
    listener stamped with a fresh generation.  An event that arrives through
    an older listener is dropped.
  - Device errors never escape: they become ``PlaybackState.error`` and
    ``is_playing=False``.
"""

import asyncio
import logging
import math
from dataclasses import replace
from typing import Awaitable, Callable

from ..catalog.models import Track
from ..catalog.store import CatalogStore
from ..errors import DeviceError
from .device import (AudioOutputDevice, DeviceEvent, DeviceFailed, Ended,
                     PlaybackStarted, Progress, Subscription)
from .state import PlaybackState, PlayerStatus

log = logging.getLogger(__name__)

Observer = Callable[[PlaybackState], Awaitable[None]]

DEFAULT_WHEEL_SCALE = 1000


def _clamp_volume(value) -> float:
    return max(0.0, min(1.0, float(value)))


class PlaybackSessionController:

    def __init__(self, device: AudioOutputDevice, store: CatalogStore,
                 initial_volume: float = 1.0, wheel_scale: float = DEFAULT_WHEEL_SCALE):
        self.device = device
        self.store = store
        self.wheel_scale = wheel_scale
        volume = _clamp_volume(initial_volume)
        self._state = PlaybackState(volume=volume, is_muted=volume == 0)
        self._premute_volume = volume if volume > 0 else 1.0
        self._current_track: Track | None = None
        self._generation = 0
        self._subscription: Subscription | None = None
        self._want_playing = False
        self._source_loaded = False     # device confirmed the current source
        self._pending_seek: float | None = None
        self._lock = asyncio.Lock()
        self._observers: list[Observer] = []
        self._tasks: set[asyncio.Task] = set()

    # ── Snapshot ──

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def current_track(self) -> Track | None:
        if self._current_track is None:
            return None
        return self.store.get(self._current_track.id) or self._current_track

    @property
    def generation(self) -> int:
        return self._generation

    def add_observer(self, observer: Observer):
        self._observers.append(observer)

    def remove_observer(self, observer: Observer):
        if observer in self._observers:
            self._observers.remove(observer)

    async def _set(self, **changes):
        new_state = replace(self._state, **changes)
        if new_state == self._state:
            return
        self._state = new_state
        for observer in list(self._observers):
            try:
                await observer(new_state)
            except Exception:
                log.exception("Playback observer failed")

    # ── Lifecycle ──

    async def start(self):
        """Push the initial volume to the device."""
        async with self._lock:
            await self._push_volume()

    async def close(self):
        """Detach from the device, release it, and return to idle."""
        async with self._lock:
            for task in list(self._tasks):
                task.cancel()
            self._detach()
            try:
                await self.device.release()
            except DeviceError as e:
                log.warning("Device release failed: %s", e)
            self._current_track = None
            self._source_loaded = False
            self._want_playing = False
            self._pending_seek = None
            await self._set(status=PlayerStatus.IDLE, current_track_id=None,
                            is_playing=False, position_seconds=0.0,
                            duration_seconds=None, error=None)
        log.info("Playback session closed")

    async def wait_for_pending(self):
        """Wait for end-of-track transitions scheduled from device events."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Subscription ──

    def _detach(self):
        if self._subscription is not None:
            self._subscription.detach()
            self._subscription = None
        self._generation += 1

    def _attach(self):
        generation = self._generation

        async def listener(event: DeviceEvent):
            if generation != self._generation:
                log.debug("Dropping %s from superseded track (generation %d, current %d)",
                          type(event).__name__, generation, self._generation)
                return
            await self._on_device_event(event, generation)

        self._subscription = self.device.subscribe(listener)

    # ── Intents ──

    async def select_track(self, track_id) -> bool:
        async with self._lock:
            track = self.store.get(str(track_id))
            if track is None:
                log.warning("select_track: unknown track %s", track_id)
                return False
            await self._load(track, 0.0)
            return True

    async def toggle_play_pause(self):
        async with self._lock:
            status = self._state.status
            if status == PlayerStatus.IDLE:
                return

            if status == PlayerStatus.LOADING:
                # Applied when the device confirms the load
                self._want_playing = not self._want_playing
                try:
                    if self._want_playing:
                        await self.device.resume()
                    else:
                        await self.device.pause()
                except DeviceError as e:
                    log.warning("Toggle during load failed: %s", e)
                    if self._want_playing:
                        # Resume refused: the load will land paused
                        self._want_playing = False
                        await self._set(error=e.kind)
                    else:
                        self._want_playing = True
                    return
                log.info("Pending %s while loading", "play" if self._want_playing else "pause")
                return

            if status == PlayerStatus.PLAYING:
                try:
                    await self.device.pause()
                except DeviceError as e:
                    log.warning("Pause failed: %s", e)
                    return
                self._want_playing = False
                await self._set(status=PlayerStatus.PAUSED, is_playing=False)
                return

            # PAUSED
            if not self._source_loaded:
                log.info("Retrying load of %s", self._current_track.id)
                await self._load(self._current_track, self._state.position_seconds)
                return
            try:
                await self.device.resume()
            except DeviceError as e:
                log.warning("Resume rejected: %s", e)
                await self._set(is_playing=False, error=e.kind)
                return
            self._want_playing = True
            await self._set(status=PlayerStatus.PLAYING, is_playing=True, error=None)

    async def next_track(self):
        async with self._lock:
            await self._step(+1)

    async def prev_track(self):
        async with self._lock:
            await self._step(-1)

    async def seek(self, seconds):
        async with self._lock:
            if self._state.status == PlayerStatus.IDLE:
                return
            try:
                target = float(seconds)
            except (TypeError, ValueError):
                log.warning("seek: ignoring non-numeric position %r", seconds)
                return
            if math.isnan(target):
                return
            target = max(0.0, target)
            duration = self._state.duration_seconds
            if duration is not None:
                target = min(target, duration)
            await self._set(position_seconds=target)

            if not self._source_loaded:
                self._pending_seek = target
                return
            try:
                await self.device.seek(target)
            except DeviceError as e:
                log.warning("Seek to %.1fs failed: %s", target, e)

    async def set_volume(self, volume):
        async with self._lock:
            await self._apply_volume(_clamp_volume(volume))

    async def toggle_mute(self):
        async with self._lock:
            if self._state.is_muted:
                volume = self._state.volume if self._state.volume > 0 else self._premute_volume
                await self._set(is_muted=False, volume=volume)
            else:
                await self._set(is_muted=True)
            await self._push_volume()

    async def set_volume_gesture_active(self, active: bool):
        async with self._lock:
            await self._set(is_volume_gesture_active=bool(active))

    async def apply_volume_gesture_delta(self, delta):
        """Add *delta* to the volume while gesture mode is armed.  Cumulative."""
        async with self._lock:
            if not self._state.is_volume_gesture_active:
                return
            await self._apply_volume(_clamp_volume(self._state.volume + float(delta)))

    async def apply_wheel(self, delta_y):
        """Mouse wheel: scrolling up raises the volume."""
        await self.apply_volume_gesture_delta(-float(delta_y) / self.wheel_scale)

    # ── Internals (lock held) ──

    async def _load(self, track: Track, position: float):
        self._detach()
        self._attach()
        self._current_track = track
        self._want_playing = True
        self._source_loaded = False
        self._pending_seek = None
        duration = track.duration
        if duration is not None:
            position = min(position, duration)
        log.info("Loading %s — %s (%s)", track.artist, track.name, track.id)
        await self._set(status=PlayerStatus.LOADING, current_track_id=track.id,
                        is_playing=False, position_seconds=position,
                        duration_seconds=duration, error=None)
        try:
            await self.device.load_and_play(track.media_url, position)
        except DeviceError as e:
            log.warning("Playback of %s rejected: %s", track.id, e)
            self._want_playing = False
            await self._set(status=PlayerStatus.PAUSED, is_playing=False, error=e.kind)

    async def _step(self, step: int, at_end: bool = False):
        if self._state.status == PlayerStatus.IDLE:
            return
        tracks = self.store.tracks
        if not tracks:
            log.info("Navigation with empty catalog — ignored")
            if at_end:
                self._source_loaded = False
                self._want_playing = False
                await self._set(status=PlayerStatus.PAUSED, is_playing=False)
            return
        idx = self.store.index_of(self._state.current_track_id)
        if idx < 0:
            target = 0 if step > 0 else len(tracks) - 1
        else:
            target = (idx + step) % len(tracks)
        await self._load(tracks[target], 0.0)

    async def _apply_volume(self, volume: float):
        if volume > 0:
            self._premute_volume = volume
        await self._set(volume=volume, is_muted=volume == 0)
        await self._push_volume()

    async def _push_volume(self):
        try:
            await self.device.set_volume(self._state.effective_volume)
        except DeviceError as e:
            log.warning("Set volume failed: %s", e)

    # ── Device events (no device commands here; see device.py) ──

    async def _on_device_event(self, event: DeviceEvent, generation: int):
        status = self._state.status
        if status == PlayerStatus.IDLE:
            return

        if isinstance(event, Progress):
            duration = event.duration if event.duration is not None else self._state.duration_seconds
            position = max(0.0, event.position)
            if duration is not None:
                position = min(position, duration)
            await self._set(position_seconds=position, duration_seconds=duration)

        elif isinstance(event, PlaybackStarted):
            if status != PlayerStatus.LOADING:
                return
            self._source_loaded = True
            if self._pending_seek is not None:
                self._schedule(self._seek_after_load(generation))
            if self._want_playing:
                log.info("Playing %s", self._state.current_track_id)
                await self._set(status=PlayerStatus.PLAYING, is_playing=True, error=None)
            else:
                log.info("Loaded %s paused", self._state.current_track_id)
                await self._set(status=PlayerStatus.PAUSED, is_playing=False)

        elif isinstance(event, Ended):
            if status == PlayerStatus.LOADING:
                log.debug("Ignoring end of track while %s is loading",
                          self._state.current_track_id)
                return
            log.info("Track %s ended", self._state.current_track_id)
            duration = self._state.duration_seconds
            if duration is not None:
                await self._set(position_seconds=duration)
            self._schedule(self._advance_after_end(generation))

        elif isinstance(event, DeviceFailed):
            log.warning("Device error on %s: %s %s",
                        self._state.current_track_id, event.kind, event.message)
            self._source_loaded = False
            self._want_playing = False
            await self._set(status=PlayerStatus.PAUSED, is_playing=False, error=event.kind)

    def _schedule(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _advance_after_end(self, generation: int):
        async with self._lock:
            if generation != self._generation:
                return
            await self._step(+1, at_end=True)

    async def _seek_after_load(self, generation: int):
        async with self._lock:
            target, self._pending_seek = self._pending_seek, None
            if generation != self._generation or target is None:
                return
            try:
                await self.device.seek(target)
            except DeviceError as e:
                log.warning("Deferred seek to %.1fs failed: %s", target, e)
