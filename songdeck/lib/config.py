"""
Shared configuration loader for songdeck.

Loads a single JSON config file per device.  Search order:
  1. $SONGDECK_CONFIG               (explicit override)
  2. /etc/songdeck/config.json      (deployed install)
  3. config.json                    (CWD — handy for local dev)
  4. ../../config/default.json      (repo fallback)

Usage:
    from songdeck.lib.config import cfg

    catalog_url  = cfg("catalog", "url", default="https://...")
    ipc_socket   = cfg("player", "ipc_socket", default="/tmp/songdeck-mpv.sock")
    volume       = cfg("volume")  # returns the whole dict
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

_DEFAULT_PATHS = [
    "/etc/songdeck/config.json",
    "config.json",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
]


def _search_paths() -> list[str]:
    override = os.getenv("SONGDECK_CONFIG")
    if override:
        return [override] + _DEFAULT_PATHS
    return list(_DEFAULT_PATHS)


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    catalog = config.get("catalog") or {}
    if not catalog.get("url"):
        logger.warning("Config %s: missing catalog.url — using built-in catalog endpoint", path)
    vol = config.get("volume") or {}
    initial = vol.get("initial")
    if initial is not None:
        try:
            if not 0.0 <= float(initial) <= 1.0:
                logger.warning("Config %s: volume.initial %s outside 0..1 — will be clamped", path, initial)
        except (TypeError, ValueError):
            logger.warning("Config %s: volume.initial %r is not a number", path, initial)
    scale = vol.get("wheel_scale")
    if scale is not None and not (isinstance(scale, (int, float)) and scale > 0):
        logger.warning("Config %s: volume.wheel_scale must be a positive number", path)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found — using empty config")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("catalog")                     → config["catalog"]
    cfg("player", "mpv")               → config["player"]["mpv"]
    cfg("volume", "initial", default=1.0) → config["volume"]["initial"] or 1.0
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()
