"""
MpvOutputDevice — audio output over a long-running ``mpv --idle`` process.

mpv is launched once per session and driven through its JSON IPC socket.
Commands carry a request_id and are awaited until mpv replies, so commands
issued in order take effect in order.  A single reader task owns the socket's
read side: it resolves command replies and turns mpv events into device
events:

  property-change time-pos  → Progress (throttled)
  property-change duration  → Progress with the new duration
  file-loaded               → PlaybackStarted
  end-file reason=eof       → Ended
  end-file reason=error     → DeviceFailed(media_unreadable)

While a load is in flight, time-pos/duration changes and end-file eof belong
to the file being replaced and are dropped.  Once mpv has answered loadfile,
end-file events carrying another playlist_entry_id are dropped as well.
"""

import asyncio
import json
import logging
import os

from ..errors import DeviceError, MEDIA_UNREADABLE, PlaybackRejected
from .device import AudioOutputDevice, DeviceFailed, Ended, PlaybackStarted, Progress

log = logging.getLogger(__name__)

OBSERVE_TIME_POS = 1
OBSERVE_DURATION = 2
COMMAND_TIMEOUT = 5          # seconds to wait for an IPC reply
CONNECT_ATTEMPTS = 50        # x 0.1 s


class MpvOutputDevice(AudioOutputDevice):

    def __init__(self, mpv="mpv", ao="pulse", ipc_socket="/tmp/songdeck-mpv.sock",
                 progress_interval=0.25, spawn=True):
        super().__init__()
        self.mpv = mpv
        self.ao = ao
        self.ipc_socket = ipc_socket
        self.progress_interval = progress_interval
        self.spawn = spawn
        self.process: asyncio.subprocess.Process | None = None
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task | None = None
        self._pending: dict[int, asyncio.Future] = {}
        self._next_request_id = 0
        self._loading = False
        self._entry_id: int | None = None  # playlist entry created by the last loadfile
        self._paused = False
        self._position = 0.0
        self._duration: float | None = None
        self._last_progress_at: float | None = None

    # ── mpv lifecycle ──

    async def start(self):
        if self.spawn:
            await self._launch()
        await self._connect()
        self._reader_task = asyncio.create_task(self._read_events())
        await self._command("observe_property", OBSERVE_TIME_POS, "time-pos")
        await self._command("observe_property", OBSERVE_DURATION, "duration")
        log.info("mpv ready on %s", self.ipc_socket)

    async def _launch(self):
        try:
            os.unlink(self.ipc_socket)
        except FileNotFoundError:
            pass
        env = os.environ.copy()
        env.setdefault('XDG_RUNTIME_DIR', f'/run/user/{os.getuid()}')
        cmd = [
            self.mpv, f'--ao={self.ao}',
            '--idle=yes', '--no-video', '--no-terminal',
            '--keep-open=no',
            f'--input-ipc-server={self.ipc_socket}',
        ]
        try:
            self.process = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL, env=env)
        except OSError as e:
            raise DeviceError(f"cannot launch {self.mpv}: {e}") from e
        log.info("mpv launched (pid %s)", self.process.pid)

    async def _connect(self):
        for _ in range(CONNECT_ATTEMPTS):
            if self.process is not None and self.process.returncode is not None:
                raise DeviceError("mpv exited immediately")
            if os.path.exists(self.ipc_socket):
                try:
                    self._reader, self._writer = \
                        await asyncio.open_unix_connection(self.ipc_socket)
                    return
                except (ConnectionRefusedError, FileNotFoundError):
                    pass
            await asyncio.sleep(0.1)
        raise DeviceError("Could not connect to mpv IPC")

    async def release(self):
        if self._subscription is not None:
            self.unsubscribe(self._subscription)
        if self._writer is not None:
            try:
                await asyncio.wait_for(self._command("quit"), 1)
            except (DeviceError, asyncio.TimeoutError):
                pass
        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        await self._close_ipc()
        if self.process is not None:
            if self.process.returncode is None:
                self.process.terminate()
                try:
                    await asyncio.wait_for(self.process.wait(), 2)
                except asyncio.TimeoutError:
                    self.process.kill()
                    await self.process.wait()
            self.process = None
            try:
                os.unlink(self.ipc_socket)
            except FileNotFoundError:
                pass
        log.info("mpv released")

    async def _close_ipc(self):
        if self._writer:
            try:
                self._writer.close()
                await self._writer.wait_closed()
            except (OSError, ConnectionError):
                pass
        self._reader = None
        self._writer = None
        self._fail_pending("mpv IPC closed")

    # ── IPC ──

    async def _command(self, *args):
        """Send one IPC command and return its ``data``.  Raises DeviceError."""
        if not self._writer:
            raise DeviceError("mpv IPC not connected")
        self._next_request_id += 1
        request_id = self._next_request_id
        fut = asyncio.get_running_loop().create_future()
        self._pending[request_id] = fut
        try:
            self._writer.write(json.dumps(
                {'command': list(args), 'request_id': request_id}).encode() + b'\n')
            await self._writer.drain()
            reply = await asyncio.wait_for(fut, COMMAND_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise DeviceError(f"mpv did not answer {args[0]}") from e
        except (OSError, ConnectionError) as e:
            raise DeviceError(f"mpv IPC send error: {e}") from e
        finally:
            self._pending.pop(request_id, None)
        if reply.get('error') != 'success':
            raise DeviceError(f"mpv {args[0]} failed: {reply.get('error')}")
        return reply.get('data')

    def _fail_pending(self, reason):
        for fut in self._pending.values():
            if not fut.done():
                fut.set_exception(DeviceError(reason))
        self._pending.clear()

    async def _read_events(self):
        """Background task — resolves replies and dispatches mpv events."""
        try:
            while self._reader:
                line = await self._reader.readline()
                if not line:
                    break  # EOF — mpv closed
                try:
                    msg = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if 'event' in msg:
                    await self._handle_event(msg)
                elif 'request_id' in msg:
                    fut = self._pending.get(msg['request_id'])
                    if fut is not None and not fut.done():
                        fut.set_result(msg)
        except asyncio.CancelledError:
            raise
        except (OSError, ConnectionError) as e:
            log.debug("IPC reader ended: %s", e)

        log.warning("mpv IPC connection lost")
        self._fail_pending("mpv IPC connection lost")
        self._reader = None
        self._writer = None
        await self._emit(DeviceFailed("device_error", "mpv exited"))

    async def _handle_event(self, msg):
        event = msg.get('event')
        if event == 'property-change':
            if self._loading:
                return
            name, data = msg.get('name'), msg.get('data')
            if name == 'time-pos' and isinstance(data, (int, float)):
                self._position = float(data)
                now = asyncio.get_running_loop().time()
                if (self._last_progress_at is not None
                        and now - self._last_progress_at < self.progress_interval):
                    return
                self._last_progress_at = now
                await self._emit(Progress(self._position, self._duration))
            elif name == 'duration' and isinstance(data, (int, float)):
                self._duration = float(data)
                await self._emit(Progress(self._position, self._duration))
        elif event == 'file-loaded':
            self._loading = False
            self._last_progress_at = None
            log.debug("mpv file loaded")
            await self._emit(PlaybackStarted())
        elif event == 'end-file':
            reason = msg.get('reason')
            entry_id = msg.get('playlist_entry_id')
            if entry_id is not None and self._entry_id is not None and entry_id != self._entry_id:
                log.debug("Dropping end-file of replaced entry %s", entry_id)
                return
            if reason == 'eof':
                if self._loading:
                    log.debug("Dropping eof of the file being replaced")
                    return
                await self._emit(Ended())
            elif reason == 'error':
                self._loading = False
                error = msg.get('file_error', 'unknown error')
                log.warning("mpv could not play file: %s", error)
                await self._emit(DeviceFailed(MEDIA_UNREADABLE, error))

    # ── Control surface ──

    async def load_and_play(self, media_url, start_position=0.0):
        start = max(0.0, float(start_position))
        self._loading = True
        self._position = start
        self._duration = None
        self._entry_id = None
        try:
            await self._command('set_property', 'options/start', f'{start:.3f}')
            data = await self._command('loadfile', media_url, 'replace')
            if isinstance(data, dict):
                self._entry_id = data.get('playlist_entry_id')
            await self._command('set_property', 'pause', False)
        except DeviceError as e:
            self._loading = False
            raise PlaybackRejected(str(e)) from e
        self._paused = False
        log.info("mpv loading %s at %.1fs", media_url, start)

    async def pause(self):
        if self._paused:
            return
        await self._command('set_property', 'pause', True)
        self._paused = True

    async def resume(self):
        if not self._paused:
            return
        try:
            await self._command('set_property', 'pause', False)
        except DeviceError as e:
            raise PlaybackRejected(str(e)) from e
        self._paused = False

    async def seek(self, seconds):
        target = max(0.0, float(seconds))
        if self._duration is not None:
            target = min(target, self._duration)
        await self._command('seek', target, 'absolute')
        self._position = target

    async def set_volume(self, volume):
        level = max(0.0, min(1.0, float(volume))) * 100
        await self._command('set_property', 'volume', level)
