"""
DurationProber — learn a track's length without touching the audio output.

Each probe runs its own ffprobe process (metadata only, no decode to an
audio sink), so it cannot be heard and cannot disturb the track that is
playing.  Probes are independent coroutines; cancelling one kills its
ffprobe process.
"""

import asyncio
import json
import logging
import math

from ..errors import MediaUnreadable

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class DurationProber:

    def __init__(self, ffprobe: str = "ffprobe", timeout: float | None = DEFAULT_TIMEOUT):
        self.ffprobe = ffprobe
        self.timeout = timeout

    def _command(self, media_url: str) -> list[str]:
        return [
            self.ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "json",
            media_url,
        ]

    async def probe(self, media_url: str) -> float:
        """Return the duration of *media_url* in seconds.

        Raises MediaUnreadable if ffprobe fails, times out, or reports no
        usable duration.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._command(media_url),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise MediaUnreadable(media_url, f"cannot run {self.ffprobe}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), self.timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise MediaUnreadable(media_url, f"probe timed out after {self.timeout}s")
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        if proc.returncode != 0:
            reason = stderr.decode(errors="replace").strip() or f"exit status {proc.returncode}"
            raise MediaUnreadable(media_url, reason)

        duration = self._parse(stdout)
        if duration is None:
            raise MediaUnreadable(media_url, "no duration in metadata")
        log.debug("Probed %s: %.2fs", media_url, duration)
        return duration

    @staticmethod
    def _parse(output: bytes) -> float | None:
        try:
            data = json.loads(output or b"{}")
            value = float(data["format"]["duration"])
        except (ValueError, KeyError, TypeError):
            return None
        if not math.isfinite(value) or value < 0:
            return None
        return value

    @staticmethod
    async def _kill(proc):
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
