"""Time display helpers."""

import math


def format_time(seconds) -> str:
    """Render seconds as ``m:ss``.

    Unknown, non-numeric, non-finite and negative values render as ``0:00``.
    Minutes are not wrapped into hours (``75:00`` for 4500 s).
    """
    try:
        value = float(seconds)
    except (TypeError, ValueError):
        return "0:00"
    if not math.isfinite(value) or value < 0:
        return "0:00"
    minutes = int(value // 60)
    secs = int(value % 60)
    return f"{minutes}:{secs:02d}"
