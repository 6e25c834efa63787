"""Systemd watchdog heartbeat for the songdeck service.

Sends READY=1 once, then WATCHDOG=1 at regular intervals to the systemd
notify socket.  When a status callable is given, its text is sent as
STATUS=... alongside each heartbeat so `systemctl status` shows what is
playing.  Silently no-ops when NOTIFY_SOCKET is unset (dev mode).

Usage:
    from songdeck.lib.watchdog import watchdog_loop
    asyncio.create_task(watchdog_loop(status=service.status_line))
"""

import asyncio
import logging
import os
import socket
from typing import Callable

logger = logging.getLogger(__name__)


def sd_notify(msg: str) -> bool:
    """Send a notification message to the systemd notify socket.

    Returns True if a datagram was sent.
    """
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return False
    if addr[0] == "@":
        addr = "\0" + addr[1:]
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        sock.sendto(msg.encode(), addr)
        return True
    except OSError as e:
        logger.debug("sd_notify failed: %s", e)
        return False
    finally:
        sock.close()


def _heartbeat(status: Callable[[], str] | None) -> str:
    msg = "WATCHDOG=1"
    if status is not None:
        try:
            text = status()
        except Exception as e:
            logger.debug("Status callback failed: %s", e)
            text = ""
        if text:
            msg += f"\nSTATUS={text}"
    return msg


async def watchdog_loop(status: Callable[[], str] | None = None, interval: int = 20):
    """Heartbeat forever.  Call as asyncio.create_task()."""
    sd_notify("READY=1")
    logger.info("Watchdog started (interval=%ds)", interval)
    while True:
        sd_notify(_heartbeat(status))
        await asyncio.sleep(interval)
