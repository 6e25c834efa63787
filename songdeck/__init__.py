"""
songdeck — single-page audio player service.

A catalog of tracks is fetched over HTTP and browsed through a filtered view;
one track at a time is played through mpv.  The playback session controller
owns what is playing, where, and how loud, and pushes render-ready snapshots
to UI clients over WebSocket.

  catalog/  — track records, fetching, filtering, duration probing
  player/   — audio output contract, mpv adapter, session controller
  service.py — HTTP + WebSocket relay between UI and controller
"""

__version__ = "0.1.0"
