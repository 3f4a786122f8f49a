"""
Connection session: one client WebSocket paired with one upstream session.

Lifecycle:
- connecting: socket accepted, upstream being opened
- open: audio flows both ways, tool calls are handled
- closed: socket gone; upstream consumer cancelled and upstream closed

A single bad frame or upstream message is logged and skipped; it never ends
the session. An upstream that cannot be opened closes the client socket.

Everything sent to the client goes through a bounded outbox drained by a
writer task, so no other session ever waits on this socket. A client that
stops reading until the outbox overflows is disconnected.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import uuid
from contextlib import AsyncExitStack
from enum import Enum
from typing import Optional, Sequence

from fastapi import WebSocket
from fastapi.websockets import WebSocketState
from pydantic import BaseModel

from logging_setup import get_logger, Component
from .envelopes import (
    AudioEnvelope,
    ClientAudio,
    ClientStart,
    LogEnvelope,
    StatusEnvelope,
    TripsUpdateEnvelope,
    parse_client_envelope,
)
from .errors import EnvelopeError, UnhandledEnvelopeError, UpstreamErrorHandler, UpstreamSetupError
from .registry import ClientRegistry
from .trip_store import REQUIRED_FIELDS, TripStore, missing_required_fields, trip_from_tool_args
from .upstream import (
    ToolCallBatch,
    ToolInvocation,
    ToolResult,
    TurnComplete,
    UpstreamAudio,
    UpstreamConnector,
    UpstreamEvent,
    UpstreamSession,
    UpstreamText,
)


logger = get_logger(Component.CONNECTION)

# Close code sent when the upstream session cannot be opened
UPSTREAM_UNAVAILABLE_CLOSE_CODE = 1011

# Close code sent to a client that fell too far behind
SLOW_CONSUMER_CLOSE_CODE = 1013

# Envelopes queued per client before it is considered stalled
OUTBOX_SIZE = 256

# Seconds to wait for a close frame to go out
CLOSE_TIMEOUT = 2.0

TRIP_SAVED_RESULT = "Trip saved successfully."


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ConnectionSession:
    """Bridges one accepted client socket to one upstream conversational session."""

    def __init__(
        self,
        websocket: WebSocket,
        *,
        connector: UpstreamConnector,
        store: TripStore,
        registry: ClientRegistry,
        tool_name: str = "saveTrip",
        required_fields: Sequence[str] = REQUIRED_FIELDS,
        greeting: str = "Connected to Gemini",
        outbox_size: int = OUTBOX_SIZE,
    ):
        self.websocket = websocket
        self.connector = connector
        self.store = store
        self.registry = registry
        self.tool_name = tool_name
        self.required_fields = tuple(required_fields)
        self.greeting = greeting

        self.session_id = str(uuid.uuid4())
        self.state = ConnectionState.CONNECTING
        self.upstream: Optional[UpstreamSession] = None
        self.logger = logger.with_session(self.session_id)

        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self._writer: Optional[asyncio.Task] = None
        self.envelopes_dropped = 0

    @property
    def is_open(self) -> bool:
        return (
            self.state == ConnectionState.OPEN
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def deliver(self, envelope: BaseModel) -> bool:
        """
        Queue an envelope for this client without waiting on the socket.

        Returns False when the client is not open or its outbox overflowed; an
        overflow disconnects the client.
        """
        if not self.is_open:
            return False
        try:
            self._outbox.put_nowait(envelope)
        except asyncio.QueueFull:
            self.envelopes_dropped += 1
            self.logger.warning(
                "Client outbox full, disconnecting",
                outbox_size=self._outbox.maxsize,
                envelope_type=getattr(envelope, "type", None),
            )
            self.state = ConnectionState.CLOSED
            if self._writer is not None:
                self._writer.cancel()
            return False
        return True

    async def _drain_outbox(self) -> None:
        while True:
            envelope = await self._outbox.get()
            try:
                await self.websocket.send_text(envelope.model_dump_json())
            except Exception as e:
                self.logger.warning(
                    "Send to client failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return

    # --- lifecycle ---

    async def run(self) -> None:
        """Serve the connection until the client disconnects or falls behind."""
        self.logger.info("Client connected")
        stack = AsyncExitStack()

        try:
            self.upstream = await stack.enter_async_context(self.connector.connect())
        except Exception as e:
            category = (
                e.category if isinstance(e, UpstreamSetupError)
                else UpstreamErrorHandler.classify_error(e)
            )
            self.logger.error(
                "Failed to open upstream session",
                category=category,
                error=UpstreamErrorHandler.redact(e),
                error_type=type(e).__name__,
            )
            self.state = ConnectionState.CLOSED
            await self._close_socket(UPSTREAM_UNAVAILABLE_CLOSE_CODE)
            return

        self.state = ConnectionState.OPEN
        tasks = []
        try:
            # No await between register and the first snapshot, so every later
            # broadcast lands behind it in the outbox
            self.registry.register(self)
            self.deliver(StatusEnvelope(message=self.greeting))
            self.deliver(TripsUpdateEnvelope(trips=self.store.to_wire()))

            self._writer = asyncio.create_task(self._drain_outbox())
            reader = asyncio.create_task(self._consume_client())
            consumer = asyncio.create_task(self._consume_upstream())
            tasks = [self._writer, reader, consumer]

            # The reader ends on disconnect; the writer ends when the socket
            # breaks or the outbox overflowed
            await asyncio.wait([reader, self._writer], return_when=asyncio.FIRST_COMPLETED)
        finally:
            slow_consumer = self.envelopes_dropped > 0
            self.state = ConnectionState.CLOSED
            self.registry.unregister(self)
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    self.logger.error(
                        "Connection task failed",
                        error=str(result),
                        error_type=type(result).__name__,
                    )
            try:
                await stack.aclose()
            except Exception as e:
                self.logger.warning(
                    "Failed to close upstream session",
                    error=UpstreamErrorHandler.redact(e),
                    error_type=type(e).__name__,
                )
            if slow_consumer:
                await self._close_socket(SLOW_CONSUMER_CLOSE_CODE)
            self.logger.info("Client disconnected")

    async def _close_socket(self, code: int) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await asyncio.wait_for(self.websocket.close(code=code), CLOSE_TIMEOUT)
        except Exception as e:
            self.logger.debug("Socket close failed", error=str(e), error_type=type(e).__name__)

    # --- client -> upstream ---

    async def _consume_client(self) -> None:
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await self.handle_client_frame(raw)

    async def handle_client_frame(self, raw: str | bytes) -> None:
        """Parse one client frame and dispatch it by envelope type."""
        try:
            envelope = parse_client_envelope(raw)
        except UnhandledEnvelopeError as e:
            self.logger.warning("Unhandled envelope", tag=e.tag)
            return
        except EnvelopeError as e:
            self.logger.warning("Malformed client frame", error=str(e))
            return

        if isinstance(envelope, ClientAudio):
            await self.relay_inbound_audio(envelope.data)
        elif isinstance(envelope, ClientStart):
            self.logger.debug("Client start received")
        else:
            self.logger.warning("Unhandled envelope", tag=getattr(envelope, "type", None))

    async def relay_inbound_audio(self, data: str) -> bool:
        """
        Forward one microphone frame upstream.

        Returns False (after logging) when the payload is not base64 or the
        upstream send fails.
        """
        try:
            pcm = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            self.logger.warning("Malformed audio frame", error=str(e))
            return False

        if self.upstream is None:
            return False

        try:
            await self.upstream.send_audio(pcm)
        except Exception as e:
            self.logger.error(
                "Failed to forward audio upstream",
                error=UpstreamErrorHandler.redact(e),
                error_type=type(e).__name__,
            )
            return False
        return True

    # --- upstream -> client ---

    async def _consume_upstream(self) -> None:
        try:
            async for event in self.upstream.events():
                await self.handle_upstream_event(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(
                "Upstream session error",
                category=UpstreamErrorHandler.classify_error(e),
                error=UpstreamErrorHandler.redact(e),
                error_type=type(e).__name__,
            )
        else:
            self.logger.info("Upstream stream ended")

    async def handle_upstream_event(self, event: UpstreamEvent) -> None:
        """Translate one upstream event; failures are logged per event."""
        try:
            if isinstance(event, UpstreamAudio):
                self.deliver(AudioEnvelope(data=base64.b64encode(event.data).decode("ascii")))
            elif isinstance(event, UpstreamText):
                self.deliver(LogEnvelope(message=f"Gemini: {event.text}"))
            elif isinstance(event, ToolCallBatch):
                await self.handle_tool_calls(event)
            elif isinstance(event, TurnComplete):
                self.logger.debug("Turn complete")
            else:
                self.logger.warning("Unhandled upstream event", event_type=type(event).__name__)
        except Exception as e:
            self.logger.error(
                "Failed to handle upstream message",
                event_type=type(event).__name__,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def handle_tool_calls(self, batch: ToolCallBatch) -> None:
        """Run every invocation, then answer them all in one tool response."""
        results = [await self._run_tool(invocation) for invocation in batch.invocations]
        if results and self.upstream is not None:
            await self.upstream.send_tool_responses(results)

    async def _run_tool(self, invocation: ToolInvocation) -> ToolResult:
        if invocation.name != self.tool_name:
            self.logger.warning("Unknown tool invocation", tool=invocation.name)
            return ToolResult(
                id=invocation.id,
                name=invocation.name,
                response={"error": f"Unknown tool: {invocation.name}"},
            )

        record = trip_from_tool_args(invocation.args, self.required_fields)
        if record is None:
            missing = missing_required_fields(invocation.args, self.required_fields)
            self.logger.warning("Trip rejected", missing=missing, call_id=invocation.id)
            return ToolResult(
                id=invocation.id,
                name=invocation.name,
                response={"error": f"Missing required fields: {', '.join(missing)}"},
            )

        self.logger.info_pii("Saving trip", **record.to_wire())
        await self.store.append(record)
        return ToolResult(
            id=invocation.id,
            name=invocation.name,
            response={"result": TRIP_SAVED_RESULT},
        )
