"""
Catalog — the list of tracks the player can play.

The full track list is fetched from the remote catalog API and replaced
wholesale on every refresh.  Durations are not part of the API payload; they
are probed per track with ffprobe after the list is published and filled in
as probes complete.  The UI reads a filtered view (tab + search query) while
navigation always walks the full list.

  models.py — Track record and API JSON parsing
  fetch.py  — HTTP fetch of the catalog
  store.py  — CatalogStore and the filtered view
  prober.py — DurationProber (ffprobe)
  loader.py — fetch → store → probes, with stale-result dropping
"""
