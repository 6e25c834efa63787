"""
Error kinds raised inside songdeck.

Only two of these ever reach the playback controller: ``DeviceError`` (and its
``PlaybackRejected`` subclass) from the audio output, and ``MediaUnreadable``
from the duration prober.  The controller and the catalog loader translate
them into state flags; none of them escape to the HTTP layer.
"""

# Values stored in PlaybackState.error
PLAYBACK_REJECTED = "playback_rejected"
MEDIA_UNREADABLE = "media_unreadable"
DEVICE_ERROR = "device_error"


class PlayerError(Exception):
    """Base class for songdeck errors."""


class DeviceError(PlayerError):
    """An audio output command failed."""

    kind = DEVICE_ERROR

    def __init__(self, message: str = "", kind: str | None = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class PlaybackRejected(DeviceError):
    """The device refused to start or resume playback."""

    kind = PLAYBACK_REJECTED


class MediaUnreadable(PlayerError):
    """A media URL could not be opened or its metadata could not be read."""

    kind = MEDIA_UNREADABLE

    def __init__(self, media_url: str, reason: str = ""):
        self.media_url = media_url
        self.reason = reason
        msg = f"Cannot read {media_url}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class CatalogFetchError(PlayerError):
    """The remote catalog could not be fetched or parsed."""
