"""
Player — one track at a time through one audio output.

The session controller is the only holder of the output device.  The UI
never touches the device; it sends intents to the controller and renders the
PlaybackState snapshots the controller publishes.

  state.py      — PlayerStatus and the PlaybackState value object
  device.py     — AudioOutputDevice contract and device events
  mpv.py        — MpvOutputDevice (mpv --idle over JSON IPC)
  controller.py — PlaybackSessionController
"""
