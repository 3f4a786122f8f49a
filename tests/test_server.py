"""
Relay server endpoint tests (FastAPI TestClient, fake upstream).

Verifies:
- GET /health, GET /trips, GET /
- a new socket gets the status line and the current trips
- a trip saved on one socket is broadcast to every socket
- an upstream that cannot be opened closes the socket with 1011
"""
import asyncio
import base64

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from relay_server.config import RelayConfig
from relay_server.errors import UpstreamSetupError
from relay_server.server import create_app
from relay_server.trip_store import TripRecord, TripStore
from relay_server.upstream import ToolCallBatch, ToolInvocation


@pytest.fixture
def relay_config():
    return RelayConfig(gemini_api_key="test_key")


@pytest.fixture
def save_on_first_audio(trip_args):
    """Upstream script: the first audio frame triggers one saveTrip call."""
    return [[ToolCallBatch(invocations=[ToolInvocation(id="call-1", name="saveTrip", args=trip_args)])]]


def audio_frame(pcm=b"\x00\x00\x01\x00"):
    return {"type": "audio", "data": base64.b64encode(pcm).decode()}


def test_health_endpoint(relay_config, fake_connector_cls):
    client = TestClient(create_app(relay_config, connector=fake_connector_cls()))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "component": "relay_server", "clients": 0}


def test_trips_endpoint_empty(relay_config, fake_connector_cls):
    client = TestClient(create_app(relay_config, connector=fake_connector_cls()))

    assert client.get("/trips").json() == {"trips": [], "count": 0}


def test_index_page(relay_config, fake_connector_cls):
    client = TestClient(create_app(relay_config, connector=fake_connector_cls()))

    response = client.get("/")

    assert response.status_code == 200
    assert "Trip Voice Relay" in response.text
    assert client.get("/static/app.js").status_code == 200


@pytest.mark.parametrize("path", ["/ws", "/"])
def test_socket_receives_status_and_trips(relay_config, fake_connector_cls, path):
    with TestClient(create_app(relay_config, connector=fake_connector_cls())) as client:
        with client.websocket_connect(path) as ws:
            assert ws.receive_json() == {"type": "status", "message": "Connected to Gemini"}
            assert ws.receive_json() == {"type": "trips_update", "trips": []}


def test_saved_trip_is_broadcast_to_all_sockets(relay_config, fake_connector_cls, save_on_first_audio, trip_args):
    app = create_app(relay_config, connector=fake_connector_cls(script=save_on_first_audio))

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as speaker, client.websocket_connect("/ws") as viewer:
            for ws in (speaker, viewer):
                ws.receive_json()
                assert ws.receive_json()["trips"] == []

            speaker.send_json({"type": "start"})
            speaker.send_json(audio_frame())

            assert speaker.receive_json() == {"type": "trips_update", "trips": [trip_args]}
            assert viewer.receive_json() == {"type": "trips_update", "trips": [trip_args]}
            assert speaker.receive_json() == {"type": "log", "message": "Gemini: ack"}

            assert client.get("/trips").json() == {"trips": [trip_args], "count": 1}


def test_new_socket_gets_existing_trips(relay_config, fake_connector_cls, trip_args):
    store = TripStore()
    asyncio.run(store.append(TripRecord.model_validate(trip_args)))
    app = create_app(relay_config, connector=fake_connector_cls(), store=store)

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            assert ws.receive_json() == {"type": "trips_update", "trips": [trip_args]}


def test_upstream_failure_closes_socket(relay_config, fake_connector_cls):
    connector = fake_connector_cls(fail=UpstreamSetupError("upstream.auth_failed", "API key not valid"))

    with TestClient(create_app(relay_config, connector=connector)) as client:
        with client.websocket_connect("/ws") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

    assert exc_info.value.code == 1011
