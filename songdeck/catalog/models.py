"""Track record."""

import logging
from dataclasses import dataclass, replace

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Track:
    """One playable catalog entry.  Immutable once fetched.

    ``duration`` is None until the prober fills it; it is set once and the
    record is replaced rather than mutated.
    """
    id: str
    name: str
    artist: str
    media_url: str
    cover: str = ""
    accent: str = ""
    top_track: bool = False
    duration: float | None = None

    @classmethod
    def from_api(cls, item: dict) -> "Track":
        """Build a Track from one catalog API item.

        Raises ValueError when the item has no id or no media url.
        """
        track_id = item.get("id")
        url = item.get("url")
        if track_id in (None, "") or not url:
            raise ValueError(f"catalog item missing id/url: {item!r}")
        return cls(
            id=str(track_id),
            name=item.get("name") or "",
            artist=item.get("artist") or "",
            media_url=url,
            cover=item.get("cover") or "",
            accent=item.get("accent") or "",
            top_track=bool(item.get("top_track")),
        )

    def with_duration(self, seconds: float) -> "Track":
        return replace(self, duration=float(seconds))

    def cover_url(self, base_url: str) -> str:
        if not self.cover:
            return ""
        return f"{base_url}{self.cover}"

    def to_dict(self, cover_base_url: str = "") -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "artist": self.artist,
            "url": self.media_url,
            "cover": self.cover,
            "cover_url": self.cover_url(cover_base_url),
            "accent": self.accent,
            "top_track": self.top_track,
            "duration": self.duration,
        }


def parse_catalog(payload) -> list[Track]:
    """Parse the catalog API response (``{"data": [...]}``).

    Malformed items are skipped with a warning.  Duplicate ids keep the first
    occurrence so navigation order stays stable.
    """
    if isinstance(payload, dict):
        items = payload.get("data")
    else:
        items = payload
    if not isinstance(items, list):
        raise ValueError("catalog payload has no 'data' list")

    tracks = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            log.warning("Skipping non-object catalog item: %r", item)
            continue
        try:
            track = Track.from_api(item)
        except ValueError as e:
            log.warning("Skipping catalog item: %s", e)
            continue
        if track.id in seen:
            log.warning("Duplicate track id %s, keeping first", track.id)
            continue
        seen.add(track.id)
        tracks.append(track)
    return tracks
