#!/usr/bin/env python3
"""
songdeck player service (songdeck)

Owns the playback session: one mpv output, the catalog store, the duration
prober, and the session controller.  UI clients talk to it over HTTP and
receive pushed snapshots over WebSocket:

  GET  /status   — playback snapshot, current track, catalog summary
  GET  /catalog  — filtered track rows (tab + search applied)
  POST /command  — {"command": ..., ...} intents, see handle_command()
  GET  /ws       — push-only feed: playback_update, catalog_update, now_playing

Port: 8780 (service.port)
"""

import asyncio
import json
import logging
import math
import signal

import aiohttp
from aiohttp import web

from .catalog.loader import CatalogLoader
from .catalog.prober import DurationProber
from .catalog.store import TABS, CatalogStore
from .errors import DeviceError
from .lib.artwork import ArtworkCache, fetch_artwork
from .lib.config import cfg
from .lib.timefmt import format_time
from .lib.watchdog import watchdog_loop
from .player.controller import PlaybackSessionController
from .player.device import AudioOutputDevice
from .player.mpv import MpvOutputDevice
from .player.state import PlaybackState, PlayerStatus

log = logging.getLogger('songdeck')

DEFAULT_CATALOG_URL = "https://cms.samespace.com/items/songs"
DEFAULT_COVER_BASE_URL = "https://cms.samespace.com/assets/"
DEFAULT_PORT = 8780


class CommandError(ValueError):
    """Bad or unknown command from a client (HTTP 400)."""


class PlayerService:
    """HTTP + WebSocket relay between UI clients and the playback controller."""

    def __init__(self, device: AudioOutputDevice | None = None,
                 prober: DurationProber | None = None,
                 catalog_url: str | None = None,
                 cover_base_url: str | None = None):
        self.host = cfg("service", "host", default="0.0.0.0")
        self.port = int(cfg("service", "port", default=DEFAULT_PORT))
        self.catalog_url = catalog_url or cfg("catalog", "url", default=DEFAULT_CATALOG_URL)
        self.cover_base_url = cover_base_url if cover_base_url is not None else \
            cfg("catalog", "cover_base_url", default=DEFAULT_COVER_BASE_URL)
        self.catalog_timeout = float(cfg("catalog", "timeout", default=15))

        self.device = device or MpvOutputDevice(
            mpv=cfg("player", "mpv", default="mpv"),
            ao=cfg("player", "ao", default="pulse"),
            ipc_socket=cfg("player", "ipc_socket", default="/tmp/songdeck-mpv.sock"),
            progress_interval=float(cfg("player", "progress_interval", default=0.25)),
        )
        self.prober = prober or DurationProber(
            ffprobe=cfg("prober", "ffprobe", default="ffprobe"),
            timeout=cfg("prober", "timeout", default=30),
        )
        self.store = CatalogStore()
        self.controller = PlaybackSessionController(
            self.device, self.store,
            initial_volume=cfg("volume", "initial", default=1.0),
            wheel_scale=float(cfg("volume", "wheel_scale", default=1000)),
        )
        self.loader: CatalogLoader | None = None
        self._http_session: aiohttp.ClientSession | None = None
        self._runner: web.AppRunner | None = None
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._artwork_cache = ArtworkCache()
        self._announced_track_id: str | None = None
        self._background: set[asyncio.Task] = set()

    # ── App wiring ──

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/status", self._handle_status_route)
        app.router.add_get("/catalog", self._handle_catalog_route)
        app.router.add_post("/command", self._handle_command_route)
        app.router.add_options("/command", self._handle_cors)
        app.router.add_get("/ws", self._handle_ws)
        app.on_startup.append(self._on_app_startup)
        app.on_cleanup.append(self._on_app_cleanup)
        return app

    async def _on_app_startup(self, app):
        self._http_session = aiohttp.ClientSession()
        self.loader = CatalogLoader(
            self.store, self.prober, self._http_session, self.catalog_url,
            timeout=self.catalog_timeout, on_update=self._on_catalog_update)
        self.controller.add_observer(self._on_playback_update)
        try:
            await self.device.start()
        except DeviceError as e:
            log.error("Audio output unavailable: %s", e)
        await self.controller.start()
        self._spawn(self.loader.refresh())

    async def _on_app_cleanup(self, app):
        for task in list(self._background):
            task.cancel()
        if self.loader:
            await self.loader.close()
        self.controller.remove_observer(self._on_playback_update)
        await self.controller.close()
        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._http_session:
            await self._http_session.close()
            self._http_session = None

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def start(self):
        """Create the aiohttp app, start the session, start listening."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        log.info("HTTP + WebSocket on port %d", self.port)
        self._spawn(watchdog_loop(status=self.status_line))

    async def shutdown(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        log.info("Service stopped")

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()

    # ── Views ──

    def status_line(self) -> str:
        state = self.controller.state
        track = self.controller.current_track
        if track is None:
            return "Idle"
        label = f"{track.artist} - {track.name}" if track.artist else track.name
        return f"{state.status.value.capitalize()}: {label}"

    def track_row(self, track) -> dict:
        row = track.to_dict(self.cover_base_url)
        row["duration_text"] = format_time(track.duration)
        return row

    def catalog_view(self) -> dict:
        current = self.controller.state.current_track_id
        return {
            "tab": self.store.tab,
            "tabs": list(TABS),
            "query": self.store.query,
            "generation": self.store.generation,
            "tracks": [dict(self.track_row(t), active=t.id == current)
                       for t in self.store.filtered],
        }

    def playback_view(self, state: PlaybackState | None = None) -> dict:
        state = state or self.controller.state
        data = state.to_dict()
        data["position_text"] = format_time(state.position_seconds)
        data["duration_text"] = format_time(state.duration_seconds)
        return data

    async def handle_status(self) -> dict:
        track = self.controller.current_track
        return {
            "playback": self.playback_view(),
            "track": self.track_row(track) if track else None,
            "catalog": {
                "tab": self.store.tab,
                "query": self.store.query,
                "count": len(self.store),
                "generation": self.store.generation,
            },
        }

    # ── Commands ──

    async def handle_command(self, cmd: str, data: dict) -> dict:
        """Relay one UI intent.  Raises CommandError for bad input."""
        ctl = self.controller
        if cmd == "select":
            if "id" not in data:
                raise CommandError("select needs 'id'")
            if not await ctl.select_track(data["id"]):
                raise CommandError(f"Unknown track: {data['id']}")
        elif cmd == "toggle":
            await ctl.toggle_play_pause()
        elif cmd == "next":
            await ctl.next_track()
        elif cmd == "prev":
            await ctl.prev_track()
        elif cmd == "seek":
            await ctl.seek(_number(data, "position"))
        elif cmd == "volume":
            await ctl.set_volume(_number(data, "volume"))
        elif cmd == "mute":
            await ctl.toggle_mute()
        elif cmd == "gesture":
            await ctl.set_volume_gesture_active(bool(data.get("active")))
        elif cmd == "gesture_delta":
            await ctl.apply_volume_gesture_delta(_number(data, "delta"))
        elif cmd == "wheel":
            await ctl.apply_wheel(_number(data, "delta_y"))
        elif cmd == "tab":
            tab = data.get("tab")
            if tab not in TABS:
                raise CommandError(f"Unknown tab: {tab}")
            self._spawn(self.loader.refresh(tab))
        elif cmd == "search":
            self.store.set_query(str(data.get("query") or ""))
            await self._on_catalog_update()
        elif cmd == "refresh":
            self._spawn(self.loader.refresh())
        else:
            raise CommandError(f"Unknown: {cmd}")
        return {"playback": self.playback_view()}

    # ── Push feed ──

    async def _on_playback_update(self, state: PlaybackState):
        await self.broadcast("playback_update", self.playback_view(state))
        if state.current_track_id != self._announced_track_id:
            self._announced_track_id = state.current_track_id
            if state.status != PlayerStatus.IDLE:
                self._spawn(self._announce_now_playing(state.current_track_id))

    async def _on_catalog_update(self):
        await self.broadcast("catalog_update", self.catalog_view())

    async def _announce_now_playing(self, track_id):
        track = self.controller.current_track
        if track is None or track.id != track_id:
            return
        artwork = None
        if self._http_session is not None:
            artwork = await fetch_artwork(
                self._http_session, track.cover_url(self.cover_base_url), self._artwork_cache)
        if self.controller.state.current_track_id != track_id:
            return  # switched again while fetching artwork
        await self.broadcast("now_playing", {
            "track": self.track_row(track),
            "artwork": artwork,
        })

    async def broadcast(self, event_type: str, data: dict):
        """Push an event to all connected WebSocket clients."""
        if not self._ws_clients:
            return
        message = json.dumps({"type": event_type, "data": data})
        disconnected = set()
        for ws in self._ws_clients:
            try:
                await ws.send_str(message)
            except (ConnectionError, RuntimeError):
                disconnected.add(ws)
        self._ws_clients -= disconnected
        if event_type != "playback_update":
            log.info("Broadcast %s to %d clients", event_type, len(self._ws_clients))

    # ── CORS ──

    def _cors_headers(self):
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    async def _handle_cors(self, request):
        return web.Response(headers=self._cors_headers())

    # ── Route handlers ──

    async def _handle_status_route(self, request):
        result = await self.handle_status()
        return web.json_response(result, headers=self._cors_headers())

    async def _handle_catalog_route(self, request):
        return web.json_response(self.catalog_view(), headers=self._cors_headers())

    async def _handle_command_route(self, request):
        try:
            data = await request.json()
            if not isinstance(data, dict):
                raise CommandError("Body must be a JSON object")
            cmd = data.get("command", "")
            result = await self.handle_command(cmd, data)
            resp = {"status": "ok", "command": cmd}
            resp.update(result)
            return web.json_response(resp, headers=self._cors_headers())
        except (CommandError, json.JSONDecodeError) as e:
            log.warning("Bad command: %s", e)
            return web.json_response(
                {"status": "error", "message": str(e)},
                status=400,
                headers=self._cors_headers(),
            )
        except Exception as e:
            log.exception("Command error")
            return web.json_response(
                {"status": "error", "message": str(e)},
                status=500,
                headers=self._cors_headers(),
            )

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._ws_clients.add(ws)
        log.info("WebSocket client connected (%d total)", len(self._ws_clients))
        try:
            await ws.send_json({"type": "playback_update", "data": self.playback_view()})
            await ws.send_json({"type": "catalog_update", "data": self.catalog_view()})

            # Push-only; intents go through POST /command
            async for msg in ws:
                pass
        finally:
            self._ws_clients.discard(ws)
            log.info("WebSocket client disconnected (%d remaining)",
                     len(self._ws_clients))
        return ws


def _number(data: dict, key: str) -> float:
    try:
        value = float(data[key])
    except KeyError:
        raise CommandError(f"Missing '{key}'")
    except (TypeError, ValueError):
        raise CommandError(f"'{key}' must be a number")
    if not math.isfinite(value):
        raise CommandError(f"'{key}' must be finite")
    return value


def main():
    logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    service = PlayerService()
    asyncio.run(service.run())


if __name__ == "__main__":
    main()
