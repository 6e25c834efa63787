"""
CatalogStore — holds the full track list and derives the filtered view.

The full list is the navigation order (next/prev never depend on what the UI
is currently showing).  The filtered view is recomputed from (tab, query) on
every read and is never mutated directly.

Every refresh bumps ``generation``.  Writes carrying an older generation are
dropped, so a fetch or probe that finishes after a newer refresh started can
never leak into the replaced catalog.
"""

import logging

from .models import Track

log = logging.getLogger(__name__)

TAB_FOR_YOU = "For You"
TAB_TOP_TRACKS = "Top Tracks"
TABS = (TAB_FOR_YOU, TAB_TOP_TRACKS)


def filter_tracks(tracks, query: str) -> list[Track]:
    """Case-insensitive substring match on name or artist."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(tracks)
    return [t for t in tracks
            if needle in t.name.lower() or needle in t.artist.lower()]


def filter_tab(tracks, tab: str) -> list[Track]:
    if tab == TAB_TOP_TRACKS:
        return [t for t in tracks if t.top_track]
    return list(tracks)


class CatalogStore:
    """Owns Track data.  Pure data holder; no I/O."""

    def __init__(self):
        self._tracks: list[Track] = []
        self._by_id: dict[str, int] = {}
        self.tab = TAB_FOR_YOU
        self.query = ""
        self.generation = 0

    # ── Full list ──

    @property
    def tracks(self) -> list[Track]:
        return list(self._tracks)

    def __len__(self):
        return len(self._tracks)

    def get(self, track_id: str) -> Track | None:
        idx = self._by_id.get(track_id)
        return self._tracks[idx] if idx is not None else None

    def index_of(self, track_id: str | None) -> int:
        """Position in the full list, or -1."""
        if track_id is None:
            return -1
        return self._by_id.get(track_id, -1)

    # ── Refresh lifecycle ──

    def begin_refresh(self, tab: str | None = None) -> int:
        """Start a new refresh; returns its generation."""
        if tab is not None:
            self.set_tab(tab)
        self.generation += 1
        return self.generation

    def replace(self, tracks, generation: int) -> bool:
        """Atomically replace the track list.  False if *generation* is stale."""
        if generation != self.generation:
            log.debug("Dropping catalog for generation %d (current %d)",
                      generation, self.generation)
            return False
        self._tracks = list(tracks)
        self._by_id = {t.id: i for i, t in enumerate(self._tracks)}
        return True

    def apply_duration(self, track_id: str, seconds: float, generation: int) -> bool:
        """Fill a probed duration.  Applied once per track, never overwritten."""
        if generation != self.generation:
            log.debug("Dropping stale probe for %s (generation %d, current %d)",
                      track_id, generation, self.generation)
            return False
        idx = self._by_id.get(track_id)
        if idx is None:
            return False
        track = self._tracks[idx]
        if track.duration is not None:
            return False
        self._tracks[idx] = track.with_duration(seconds)
        return True

    # ── Filtered view ──

    def set_tab(self, tab: str):
        if tab not in TABS:
            raise ValueError(f"Unknown tab: {tab!r}")
        self.tab = tab

    def set_query(self, query: str):
        self.query = query or ""

    @property
    def filtered(self) -> list[Track]:
        return filter_tracks(filter_tab(self._tracks, self.tab), self.query)
