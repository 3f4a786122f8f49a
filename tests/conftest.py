"""
Shared fakes for relay tests: upstream connector/session and a server-side WebSocket.
"""
import asyncio
import json
from contextlib import asynccontextmanager
from typing import Optional

import pytest
from fastapi.websockets import WebSocketState

from relay_server.upstream import UpstreamText


class FakeUpstream:
    """
    In-loop stand-in for a Gemini Live session.

    `script` is a list of event batches; each received audio frame releases
    the next batch. Every tool response is answered with an UpstreamText("ack").
    """

    def __init__(self, script=None):
        self.script = list(script or [])
        self.audio = []
        self.tool_responses = []
        self.closed = False
        self._events = asyncio.Queue()

    def push(self, *events):
        for event in events:
            self._events.put_nowait(event)

    def end(self):
        self._events.put_nowait(None)

    async def send_audio(self, pcm):
        self.audio.append(pcm)
        if self.script:
            self.push(*self.script.pop(0))

    async def send_tool_responses(self, results):
        self.tool_responses.append(list(results))
        self.push(UpstreamText(text="ack"))

    async def events(self):
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event


class FakeConnector:
    tool_name = "saveTrip"

    def __init__(self, script=None, fail=None, close_error=None):
        self.script = script
        self.fail = fail
        self.close_error = close_error
        self.sessions = []

    @asynccontextmanager
    async def connect(self):
        if self.fail is not None:
            raise self.fail
        upstream = FakeUpstream(self.script)
        self.sessions.append(upstream)
        try:
            yield upstream
        finally:
            upstream.closed = True
            if self.close_error is not None:
                raise self.close_error


class FakeWebSocket:
    """Enough of starlette's WebSocket for ConnectionSession."""

    def __init__(self):
        self.incoming = asyncio.Queue()
        self.sent = []
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.close_code = None
        self._stalled: Optional[asyncio.Future] = None

    def stall(self):
        """Make every later send block, like a client that stopped reading."""
        self._stalled = asyncio.get_running_loop().create_future()

    async def receive(self):
        return await self.incoming.get()

    async def send_text(self, text):
        if self._stalled is not None:
            await self._stalled
        if self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("Cannot send once the socket is closed")
        self.sent.append(json.loads(text))

    async def close(self, code=1000):
        self.application_state = WebSocketState.DISCONNECTED
        self.close_code = code

    def push_text(self, text):
        self.incoming.put_nowait({"type": "websocket.receive", "text": text})

    def push_json(self, payload):
        self.push_text(json.dumps(payload))

    def disconnect(self):
        self.client_state = WebSocketState.DISCONNECTED
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": 1000})

    def sent_of_type(self, kind):
        return [m for m in self.sent if m.get("type") == kind]


async def _wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def fake_connector_cls():
    return FakeConnector


@pytest.fixture
def fake_websocket_cls():
    return FakeWebSocket


@pytest.fixture
def trip_args():
    return {
        "cliente": "Altuglas",
        "autista": "Ivan",
        "destinazione": "Adler",
        "tipo_viaggio": "Andata",
        "data": "Oggi",
    }
