# songdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
AudioOutputDevice — the contract the session controller drives.

A device wraps one platform playback primitive.  It has exactly one
subscriber at a time; events go to that subscriber only.  Subscribing
detaches any previous subscriber, and a detached subscription never
receives another event.

Events are delivered by awaiting the listener from the device's own reader
task.  Listeners must not await device commands (the reply would be read by
the task that is blocked delivering the event); schedule a task instead.

Subclass contract:

    class MyDevice(AudioOutputDevice):
        async def start(self) -> None: ...
        async def load_and_play(self, media_url, start_position=0.0) -> None: ...
        async def pause(self) -> None: ...
        async def resume(self) -> None: ...
        async def seek(self, seconds) -> None: ...
        async def set_volume(self, volume) -> None: ...
        async def release(self) -> None: ...

Subclasses call ``await self._emit(event)`` to deliver events.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Union

log = logging.getLogger(__name__)


# ── Events ──

@dataclass(frozen=True)
class PlaybackStarted:
    """The source is loaded and the device is producing (or ready to produce) audio."""


@dataclass(frozen=True)
class Progress:
    position: float
    duration: float | None = None


@dataclass(frozen=True)
class Ended:
    """The source played to its end."""


@dataclass(frozen=True)
class DeviceFailed:
    kind: str
    message: str = ""


DeviceEvent = Union[PlaybackStarted, Progress, Ended, DeviceFailed]
Listener = Callable[[DeviceEvent], Awaitable[None]]


class Subscription:
    """Handle returned by ``AudioOutputDevice.subscribe``."""

    def __init__(self, device: "AudioOutputDevice", listener: Listener):
        self._device = device
        self.listener = listener
        self.active = True

    def detach(self):
        self._device.unsubscribe(self)


class AudioOutputDevice(ABC):

    def __init__(self):
        self._subscription: Subscription | None = None

    # ── Subscription ──

    def subscribe(self, listener: Listener) -> Subscription:
        if self._subscription is not None:
            log.warning("Device already has a subscriber — detaching it")
            self.unsubscribe(self._subscription)
        sub = Subscription(self, listener)
        self._subscription = sub
        return sub

    def unsubscribe(self, sub: Subscription):
        sub.active = False
        if self._subscription is sub:
            self._subscription = None

    @property
    def has_subscriber(self) -> bool:
        return self._subscription is not None

    async def _emit(self, event: DeviceEvent):
        sub = self._subscription
        if sub is None or not sub.active:
            return
        try:
            await sub.listener(event)
        except Exception:
            log.exception("Device listener failed on %s", type(event).__name__)

    # ── Control surface ──

    @abstractmethod
    async def start(self) -> None:
        """Acquire the underlying primitive.  Called once per session."""

    @abstractmethod
    async def load_and_play(self, media_url: str, start_position: float = 0.0) -> None:
        """Stop current playback, load *media_url*, seek, and start playing.

        Raises PlaybackRejected if the device will not start.
        """

    @abstractmethod
    async def pause(self) -> None: ...

    @abstractmethod
    async def resume(self) -> None:
        """Raises PlaybackRejected if the device will not resume."""

    @abstractmethod
    async def seek(self, seconds: float) -> None: ...

    @abstractmethod
    async def set_volume(self, volume: float) -> None:
        """Set output volume, 0.0–1.0."""

    @abstractmethod
    async def release(self) -> None:
        """Stop playback and free the primitive.  Detaches the subscriber."""
