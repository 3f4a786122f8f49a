"""
Client transport: one WebSocket to the relay.

Outbound: `start` once after connecting, then `audio` frames, sent only while
the socket is open (dropped otherwise). At most OUTBOX_SIZE captured frames
wait for the sender; newer frames are dropped once it falls behind.
Inbound: status/log -> transcript, trips_update -> trips table,
audio -> playback queue. Unknown envelope tags are rejected and logged.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol
from urllib.parse import urlsplit, urlunsplit

import aiohttp

from logging_setup import get_logger, Component
from relay_server.envelopes import (
    AudioEnvelope,
    ClientAudio,
    ClientStart,
    LogEnvelope,
    StatusEnvelope,
    TripsUpdateEnvelope,
    parse_server_envelope,
)
from relay_server.errors import EnvelopeError, UnhandledEnvelopeError
from .playback import PlaybackQueue
from .view import ConsoleView


logger = get_logger(Component.VOICE_CLIENT)

# Captured frames waiting for the sender (about 2 s at 4096 samples / 16 kHz)
OUTBOX_SIZE = 8


def websocket_url(origin: str, path: str = "/ws") -> str:
    """
    WebSocket URL for a server origin; secure origins get a secure socket.

    "https://relay.example" -> "wss://relay.example/ws"
    """
    parts = urlsplit(origin)
    scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
    return urlunsplit((scheme, parts.netloc, path, "", ""))


class Capture(Protocol):
    def start(self, loop: asyncio.AbstractEventLoop) -> None: ...

    def stop(self) -> None: ...


CaptureFactory = Callable[[Callable[[str], None]], Capture]


class ClientTransport:
    """Owns the WebSocket lifecycle and the envelope protocol on the client side."""

    def __init__(
        self,
        server_url: str,
        *,
        view: ConsoleView,
        playback: PlaybackQueue,
        capture_factory: Optional[CaptureFactory] = None,
        http: Optional[aiohttp.ClientSession] = None,
    ):
        self.server_url = server_url
        self.view = view
        self.playback = playback
        self._capture_factory = capture_factory
        self._capture: Optional[Capture] = None
        self._http = http
        self._owns_http = http is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=OUTBOX_SIZE)
        self._sender: Optional[asyncio.Task] = None
        self.frames_sent = 0
        self.frames_dropped = 0

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        """Open the socket, announce start, then begin microphone capture."""
        if self._http is None:
            self._http = aiohttp.ClientSession()
        url = websocket_url(self.server_url)
        self.view.log("Connecting...")
        self._ws = await self._http.ws_connect(url)
        logger.info("Connected to relay", url=url)
        self.view.log("Connected to Server")

        await self._ws.send_str(ClientStart().model_dump_json())

        self._sender = asyncio.create_task(self._drain_outbox())
        if self._capture_factory is not None:
            self._capture = self._capture_factory(self.queue_audio_frame)
            self._capture.start(asyncio.get_running_loop())

    def queue_audio_frame(self, data: str) -> bool:
        """
        Capture handoff (runs on the loop). Drops the frame when the sender is
        behind.
        """
        try:
            self._outbox.put_nowait(data)
        except asyncio.QueueFull:
            self.frames_dropped += 1
            logger.debug("Audio frame dropped, sender behind", dropped=self.frames_dropped)
            return False
        return True

    async def _drain_outbox(self) -> None:
        while True:
            data = await self._outbox.get()
            await self.send_audio_frame(data)

    async def send_audio_frame(self, data: str) -> bool:
        """
        Send one base64 PCM16 frame if the socket is open.

        Returns False when the frame was dropped.
        """
        if not self.is_open:
            self.frames_dropped += 1
            return False
        try:
            await self._ws.send_str(ClientAudio(data=data).model_dump_json())
        except (ConnectionError, aiohttp.ClientError) as e:
            logger.warning("Audio frame send failed", error=str(e))
            self.frames_dropped += 1
            return False
        self.frames_sent += 1
        return True

    def handle_message(self, raw: str) -> None:
        """Dispatch one server envelope."""
        try:
            envelope = parse_server_envelope(raw)
        except UnhandledEnvelopeError as e:
            logger.warning("Unhandled envelope", tag=e.tag)
            return
        except EnvelopeError as e:
            logger.warning("Malformed server frame", error=str(e))
            return

        if isinstance(envelope, (StatusEnvelope, LogEnvelope)):
            self.view.log(envelope.message)
        elif isinstance(envelope, TripsUpdateEnvelope):
            self.view.update_trips(envelope.trips)
        elif isinstance(envelope, AudioEnvelope):
            self.playback.enqueue(envelope.data)
        else:
            logger.warning("Unhandled envelope", tag=getattr(envelope, "type", None))

    async def run(self) -> None:
        """Receive until the server closes the socket, then tear down."""
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error("WebSocket error", error=str(self._ws.exception()))
                    break
        finally:
            self.view.log("Disconnected")
            await self.disconnect()

    async def disconnect(self) -> None:
        """Stop capture, release devices, stop playback and close the socket."""
        if self._capture is not None:
            capture, self._capture = self._capture, None
            capture.stop()

        if self._sender is not None:
            self._sender.cancel()
            try:
                await self._sender
            except asyncio.CancelledError:
                pass
            self._sender = None

        self.playback.clear()

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None
