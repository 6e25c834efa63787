"""Shared plumbing: config, watchdog, artwork, time formatting."""
