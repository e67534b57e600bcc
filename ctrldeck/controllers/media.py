"""Now-playing state and transport commands.

Linux:   MPRIS over the D-Bus session bus (dbus-next), playerctl for commands
Windows: Global System Media Transport Controls (winsdk)

Each controller keeps one :class:`MediaState`, updated from bus signals and a
periodic poll. Listeners registered with :meth:`MediaController.on_change`
are called only when the state actually changes (every field compared).
"""

from __future__ import annotations

import abc
import asyncio
import logging
import threading
from pathlib import Path
from typing import Any, Callable
from urllib.parse import unquote, urlparse

import httpx

from ..capabilities import COMMAND_ONLY, CapabilitySet
from ..errors import ControlError, ErrorKind, classify_exception
from ..models import ControlResult, MediaState, MediaStatus
from ..runner import DEFAULT_TIMEOUT, run

logger = logging.getLogger(__name__)

PLAY_PAUSE = "play_pause"
NEXT = "next"
PREVIOUS = "previous"
COMMANDS = (PLAY_PAUSE, NEXT, PREVIOUS)

_INITIAL_POLL_DELAY = 0.5
_COMMAND_REFRESH_DELAY = 0.15
_SIGNAL_REFRESH_DELAY = 0.1

MediaListener = Callable[[MediaState], None]


# ──────────────────────────────────────────────────────────────────
# Artwork
# ──────────────────────────────────────────────────────────────────


class ArtworkFetcher:
    """Load album art from ``file://`` or ``http(s)://`` URLs.

    Results (including misses) are cached by URL; the cache is cleared
    wholesale once it holds ``cache_size`` entries.
    """

    def __init__(
        self,
        max_bytes: int = 5 * 1024 * 1024,
        cache_size: int = 50,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.max_bytes = max_bytes
        self.cache_size = cache_size
        self.timeout = timeout
        self._transport = transport
        self._cache: dict[str, bytes | None] = {}

    async def fetch(self, url: str) -> bytes | None:
        if not url:
            return None
        if url in self._cache:
            return self._cache[url]

        try:
            data = await self._load(url)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Artwork fetch failed for %s: %s", url, exc)
            data = None

        if len(self._cache) >= self.cache_size:
            self._cache.clear()
        self._cache[url] = data
        return data

    async def _load(self, url: str) -> bytes | None:
        parsed = urlparse(url)
        if parsed.scheme == "file":
            path = Path(unquote(parsed.path))
            loop = asyncio.get_running_loop()
            size = await loop.run_in_executor(None, lambda: path.stat().st_size)
            if size > self.max_bytes:
                logger.debug("Artwork %s too large (%d bytes)", path, size)
                return None
            return await loop.run_in_executor(None, path.read_bytes)
        if parsed.scheme in ("http", "https"):
            return await self._download(url)
        return None

    async def _download(self, url: str) -> bytes | None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            async with client.stream("GET", url, follow_redirects=True) as resp:
                if resp.status_code != 200:
                    return None
                chunks: list[bytes] = []
                total = 0
                async for chunk in resp.aiter_bytes():
                    total += len(chunk)
                    if total > self.max_bytes:
                        logger.debug("Artwork at %s exceeds %d bytes", url, self.max_bytes)
                        return None
                    chunks.append(chunk)
                return b"".join(chunks)


# ──────────────────────────────────────────────────────────────────
# Base
# ──────────────────────────────────────────────────────────────────


class MediaController(abc.ABC):
    """State cache, change notification, polling and command serialization."""

    domain = "media"

    def __init__(self, mechanisms: tuple[str, ...] = (), poll_interval: float = 2.0) -> None:
        self.mechanisms = tuple(mechanisms)
        self.poll_interval = poll_interval
        self._state = MediaState.stopped()
        self._state_lock = threading.Lock()
        self._listeners: list[MediaListener] = []
        self._command_lock: asyncio.Lock | None = None
        self._running = False
        self._poll_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def available(self) -> bool:
        return bool(self.mechanisms)

    @property
    def reports_state(self) -> bool:
        return any(m not in COMMAND_ONLY for m in self.mechanisms)

    # ── State ──

    def on_change(self, listener: MediaListener) -> None:
        self._listeners.append(listener)

    def get_state(self) -> MediaState:
        with self._state_lock:
            return self._state

    def apply_state(self, new: MediaState) -> bool:
        """Replace the cached state; notify listeners only if it differs."""
        with self._state_lock:
            if new == self._state:
                return False
            self._state = new
        logger.debug("Media state → %s %r by %r", new.status.value, new.title, new.artist)
        for listener in list(self._listeners):
            try:
                listener(new)
            except Exception:  # noqa: BLE001
                logger.exception("Media listener failed")
        return True

    async def refresh(self) -> None:
        if not self.reports_state:
            return
        try:
            state = await self._read_state()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Media state read failed: %s", classify_exception(exc).message)
            return
        self.apply_state(state)

    # ── Lifecycle ──

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._command_lock = asyncio.Lock()
        if not self.available:
            return
        try:
            await self._connect()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Media event source unavailable, polling only: %s", exc)
        if self.reports_state:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        for task in (self._poll_task, self._refresh_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._poll_task = self._refresh_task = None
        try:
            await self._disconnect()
        except Exception:  # noqa: BLE001
            logger.debug("Error closing media event source", exc_info=True)

    async def _poll_loop(self) -> None:
        await asyncio.sleep(_INITIAL_POLL_DELAY)
        while self._running:
            await self.refresh()
            await asyncio.sleep(self.poll_interval)

    def _schedule_refresh(self, delay: float) -> None:
        """Debounced refresh: a pending one absorbs later requests."""
        if not self._running or not self.reports_state:
            return
        if self._refresh_task and not self._refresh_task.done():
            return

        async def _delayed() -> None:
            await asyncio.sleep(delay)
            await self.refresh()

        self._refresh_task = asyncio.get_running_loop().create_task(_delayed())

    # ── Commands ──

    async def play_pause(self) -> ControlResult:
        return await self._command(PLAY_PAUSE)

    async def next(self) -> ControlResult:
        return await self._command(NEXT)

    async def previous(self) -> ControlResult:
        return await self._command(PREVIOUS)

    async def _command(self, command: str) -> ControlResult:
        if not self.available:
            return ControlResult.failure(ErrorKind.UNSUPPORTED, "media control not available on this host")
        if self._command_lock is None:
            self._command_lock = asyncio.Lock()
        async with self._command_lock:
            try:
                await self._send(command)
            except Exception as exc:  # noqa: BLE001
                error = classify_exception(exc)
                logger.info("Media %s failed: %s", command, error.message)
                return ControlResult.failure(error.kind, error.message)
        self._schedule_refresh(_COMMAND_REFRESH_DELAY)
        return ControlResult.success()

    # ── Backend hooks ──

    async def _connect(self) -> None:
        """Attach to the platform's change notifications (optional)."""

    async def _disconnect(self) -> None:
        """Detach from change notifications (optional)."""

    @abc.abstractmethod
    async def _read_state(self) -> MediaState:
        """Query the platform for the current now-playing state."""

    @abc.abstractmethod
    async def _send(self, command: str) -> None:
        """Issue a transport command (raise on failure)."""


class NullMediaController(MediaController):
    def __init__(self) -> None:
        super().__init__(())

    async def _read_state(self) -> MediaState:
        return MediaState.stopped()

    async def _send(self, command: str) -> None:
        raise ControlError(ErrorKind.UNSUPPORTED, "media control not available")


# ──────────────────────────────────────────────────────────────────
# Linux: MPRIS
# ──────────────────────────────────────────────────────────────────

MPRIS_PREFIX = "org.mpris.MediaPlayer2."
MPRIS_PATH = "/org/mpris/MediaPlayer2"
MPRIS_PLAYER_IFACE = "org.mpris.MediaPlayer2.Player"

_MPRIS_METHODS = {PLAY_PAUSE: "PlayPause", NEXT: "Next", PREVIOUS: "Previous"}
_PLAYERCTL_ARGS = {PLAY_PAUSE: "play-pause", NEXT: "next", PREVIOUS: "previous"}

_MATCH_RULES = (
    "type='signal',sender='org.freedesktop.DBus',interface='org.freedesktop.DBus',"
    "member='NameOwnerChanged',arg0namespace='org.mpris.MediaPlayer2'",
    f"type='signal',interface='org.freedesktop.DBus.Properties',"
    f"member='PropertiesChanged',path='{MPRIS_PATH}'",
)


def _unwrap(value: Any) -> Any:
    from dbus_next import Variant

    return value.value if isinstance(value, Variant) else value


def state_from_mpris(status: str, metadata: dict, artwork: bytes | None = None) -> MediaState:
    """Build a :class:`MediaState` from ``PlaybackStatus`` and ``Metadata``."""
    title = _unwrap(metadata.get("xesam:title", "")) or ""
    artist = _unwrap(metadata.get("xesam:artist", [])) or []
    if isinstance(artist, str):
        artist = [artist]
    return MediaState(
        title=str(title),
        artist=", ".join(str(a) for a in artist),
        status=MediaStatus.parse(status),
        artwork=artwork,
    )


class MprisMediaController(MediaController):
    def __init__(
        self,
        caps: CapabilitySet,
        artwork: ArtworkFetcher | None = None,
        poll_interval: float = 2.0,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(caps.media, poll_interval)
        self._artwork = artwork or ArtworkFetcher()
        self._playerctl = caps.playerctl_path or "playerctl"
        self._timeout = timeout
        self._bus = None

    # ── Bus plumbing ──

    async def _connect(self) -> None:
        if "mpris" not in self.mechanisms:
            return
        from dbus_next import BusType
        from dbus_next.aio import MessageBus

        self._bus = await MessageBus(bus_type=BusType.SESSION).connect()
        for rule in _MATCH_RULES:
            await self._bus_call(
                "org.freedesktop.DBus", "/org/freedesktop/DBus", "org.freedesktop.DBus",
                "AddMatch", "s", [rule],
            )
        self._bus.add_message_handler(self._on_message)
        logger.info("Listening for MPRIS players on the session bus")

    async def _disconnect(self) -> None:
        if self._bus is not None:
            self._bus.remove_message_handler(self._on_message)
            self._bus.disconnect()
            self._bus = None

    def _on_message(self, msg) -> None:
        from dbus_next import MessageType

        if msg.message_type != MessageType.SIGNAL:
            return None
        if msg.member == "NameOwnerChanged" and msg.body and str(msg.body[0]).startswith(MPRIS_PREFIX):
            self._schedule_refresh(_SIGNAL_REFRESH_DELAY)
        elif msg.member == "PropertiesChanged" and msg.path == MPRIS_PATH:
            self._schedule_refresh(_SIGNAL_REFRESH_DELAY)
        return None

    async def _bus_call(self, destination, path, interface, member, signature="", body=None):
        if self._bus is None:
            raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "not connected to the session bus")
        from dbus_next import Message, MessageType

        reply = await asyncio.wait_for(
            self._bus.call(Message(
                destination=destination, path=path, interface=interface,
                member=member, signature=signature, body=body or [],
            )),
            timeout=self._timeout,
        )
        if reply.message_type == MessageType.ERROR:
            name = reply.error_name or ""
            text = reply.body[0] if reply.body else name
            if "AccessDenied" in name:
                raise ControlError(ErrorKind.PERMISSION_DENIED, text)
            if "ServiceUnknown" in name or "UnknownObject" in name or "NameHasNoOwner" in name:
                raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, text)
            raise ControlError(ErrorKind.UNKNOWN, text)
        return reply.body

    async def _players(self) -> list[str]:
        body = await self._bus_call(
            "org.freedesktop.DBus", "/org/freedesktop/DBus", "org.freedesktop.DBus", "ListNames",
        )
        return sorted(name for name in body[0] if name.startswith(MPRIS_PREFIX))

    async def _property(self, player: str, name: str) -> Any:
        body = await self._bus_call(
            player, MPRIS_PATH, "org.freedesktop.DBus.Properties", "Get", "ss",
            [MPRIS_PLAYER_IFACE, name],
        )
        return _unwrap(body[0])

    async def _active_player(self) -> tuple[str, str] | None:
        """First player that is Playing or Paused, with its status."""
        for player in await self._players():
            try:
                status = await self._property(player, "PlaybackStatus")
            except ControlError as exc:
                logger.debug("Skipping %s: %s", player, exc.message)
                continue
            if MediaStatus.parse(status) != MediaStatus.STOPPED:
                return player, status
        return None

    # ── Hooks ──

    async def _read_state(self) -> MediaState:
        for player in await self._players():
            try:
                status = await self._property(player, "PlaybackStatus")
                if MediaStatus.parse(status) == MediaStatus.STOPPED:
                    continue
                metadata = await self._property(player, "Metadata") or {}
            except ControlError as exc:
                logger.debug("Skipping %s: %s", player, exc.message)
                continue
            art_url = _unwrap(metadata.get("mpris:artUrl", "")) or ""
            artwork = await self._artwork.fetch(str(art_url)) if art_url else None
            return state_from_mpris(status, metadata, artwork)
        return MediaState.stopped()

    async def _send(self, command: str) -> None:
        last: ControlError | None = None
        for mechanism in self.mechanisms:
            try:
                if mechanism == "mpris":
                    await self._send_mpris(command)
                    return
                if mechanism == "playerctl":
                    await self._send_playerctl(command)
                    return
            except Exception as exc:  # noqa: BLE001
                last = classify_exception(exc)
                logger.debug("media %s via %s failed: %s", command, mechanism, last.message)
        raise last or ControlError(ErrorKind.UNSUPPORTED, f"no media mechanism can {command}")

    async def _send_mpris(self, command: str) -> None:
        active = await self._active_player()
        if active is not None:
            player = active[0]
        else:
            players = await self._players()
            if not players:
                raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "no MPRIS player running")
            player = players[0]
        await self._bus_call(player, MPRIS_PATH, MPRIS_PLAYER_IFACE, _MPRIS_METHODS[command])

    async def _send_playerctl(self, command: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, run, [self._playerctl, _PLAYERCTL_ARGS[command]], self._timeout,
        )


# ──────────────────────────────────────────────────────────────────
# Windows: GSMTC
# ──────────────────────────────────────────────────────────────────

# GlobalSystemMediaTransportControlsSessionPlaybackStatus values
_GSMTC_STATUS = {4: MediaStatus.PLAYING, 5: MediaStatus.PAUSED}


class WindowsMediaController(MediaController):
    def __init__(self, caps: CapabilitySet, poll_interval: float = 2.0) -> None:
        super().__init__(caps.media, poll_interval)
        self._manager = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tokens: list[tuple[Any, str, Any]] = []
        self._session_tokens: list[tuple[Any, str, Any]] = []

    async def _get_manager(self):
        if self._manager is None:
            from winsdk.windows.media.control import (
                GlobalSystemMediaTransportControlsSessionManager,
            )

            self._manager = await GlobalSystemMediaTransportControlsSessionManager.request_async()
        return self._manager

    def _from_winrt(self, *_args) -> None:
        # WinRT raises events on its own threads
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._schedule_refresh, _SIGNAL_REFRESH_DELAY)

    def _session_changed_from_winrt(self, *_args) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._on_session_changed)

    def _on_session_changed(self) -> None:
        if self._manager is None:
            return
        self._watch_session(self._manager.get_current_session())
        self._schedule_refresh(_SIGNAL_REFRESH_DELAY)

    async def _connect(self) -> None:
        self._loop = asyncio.get_running_loop()
        manager = await self._get_manager()
        token = manager.add_current_session_changed(self._session_changed_from_winrt)
        self._tokens.append((manager, "remove_current_session_changed", token))
        self._watch_session(manager.get_current_session())

    def _watch_session(self, session) -> None:
        """Move the property and playback handlers onto *session*."""
        _detach(self._session_tokens)
        if session is None:
            return
        for add, remove in (
            ("add_media_properties_changed", "remove_media_properties_changed"),
            ("add_playback_info_changed", "remove_playback_info_changed"),
        ):
            token = getattr(session, add)(self._from_winrt)
            self._session_tokens.append((session, remove, token))

    async def _disconnect(self) -> None:
        _detach(self._session_tokens)
        _detach(self._tokens)
        self._manager = None

    async def _read_state(self) -> MediaState:
        manager = await self._get_manager()
        session = manager.get_current_session()
        if session is None:
            return MediaState.stopped()
        playback = session.get_playback_info()
        status = _GSMTC_STATUS.get(int(getattr(playback, "playback_status", 0) or 0), MediaStatus.STOPPED)
        if status == MediaStatus.STOPPED:
            return MediaState.stopped()
        props = await session.try_get_media_properties_async()
        return MediaState(
            title=(props.title if props else "") or "",
            artist=(props.artist if props else "") or "",
            status=status,
            artwork=await self._thumbnail(props),
        )

    async def _thumbnail(self, props) -> bytes | None:
        ref = getattr(props, "thumbnail", None) if props else None
        if ref is None:
            return None
        from winsdk.windows.storage.streams import Buffer, InputStreamOptions

        try:
            stream = await ref.open_read_async()
            chunks: list[bytes] = []
            while True:
                buf = Buffer(32768)
                result = await stream.read_async(buf, 32768, InputStreamOptions.READ_AHEAD)
                length = getattr(result, "length", 0)
                if not length:
                    break
                chunks.append(bytes(result)[:length])
            return b"".join(chunks) or None
        except Exception as exc:  # noqa: BLE001
            logger.debug("Thumbnail read failed: %s", exc)
            return None

    async def _send(self, command: str) -> None:
        manager = await self._get_manager()
        session = manager.get_current_session()
        if session is None:
            raise ControlError(ErrorKind.DEVICE_UNAVAILABLE, "no media session")
        if command == PLAY_PAUSE:
            accepted = await session.try_toggle_play_pause_async()
        elif command == NEXT:
            accepted = await session.try_skip_next_async()
        else:
            accepted = await session.try_skip_previous_async()
        if not accepted:
            raise ControlError(ErrorKind.UNSUPPORTED, f"media session rejected {command}")


def _detach(tokens: list[tuple[Any, str, Any]]) -> None:
    for source, remove, token in tokens:
        try:
            getattr(source, remove)(token)
        except Exception:  # noqa: BLE001
            logger.debug("Could not detach WinRT handler", exc_info=True)
    tokens.clear()
