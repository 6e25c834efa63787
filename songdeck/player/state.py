"""Playback state value object."""

import enum
from dataclasses import asdict, dataclass


class PlayerStatus(str, enum.Enum):
    IDLE = "idle"          # no track loaded
    LOADING = "loading"    # load requested, device has not confirmed playback
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class PlaybackState:
    """Render-ready snapshot of the session.

    Invariants kept by the controller:
      - current_track_id is None exactly when status is IDLE
      - position_seconds <= duration_seconds whenever the duration is known
      - volume is the last volume the user asked for; muting never changes it
    """
    status: PlayerStatus = PlayerStatus.IDLE
    current_track_id: str | None = None
    is_playing: bool = False
    position_seconds: float = 0.0
    duration_seconds: float | None = None
    volume: float = 1.0
    is_muted: bool = False
    is_volume_gesture_active: bool = False
    error: str | None = None

    @property
    def effective_volume(self) -> float:
        return 0.0 if self.is_muted else self.volume

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["effective_volume"] = self.effective_volume
        return data
