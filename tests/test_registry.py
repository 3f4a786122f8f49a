"""
Client registry tests.

Verifies:
- broadcast reaches every open client
- closed clients are skipped
- a failing delivery is logged and does not stop the fan-out
- a client that refuses an envelope is not counted
"""
import pytest

from relay_server.envelopes import StatusEnvelope
from relay_server.registry import ClientRegistry
from relay_server.trip_store import TripRecord


class RecordingClient:
    def __init__(self, session_id, is_open=True, fail=False, full=False):
        self.session_id = session_id
        self.is_open = is_open
        self.fail = fail
        self.full = full
        self.received = []

    def deliver(self, envelope):
        if self.fail:
            raise ConnectionResetError("socket gone")
        if self.full:
            return False
        self.received.append(envelope)
        return True


def test_broadcast_reaches_all_open_clients():
    registry = ClientRegistry()
    a, b = RecordingClient("a"), RecordingClient("b")
    registry.register(a)
    registry.register(b)

    envelope = StatusEnvelope(message="hello")
    delivered = registry.broadcast(envelope)

    assert delivered == 2
    assert a.received == [envelope]
    assert b.received == [envelope]


def test_closed_clients_are_skipped():
    registry = ClientRegistry()
    open_client = RecordingClient("open")
    closed_client = RecordingClient("closed", is_open=False)
    registry.register(open_client)
    registry.register(closed_client)

    assert registry.broadcast(StatusEnvelope(message="x")) == 1
    assert closed_client.received == []


def test_failing_delivery_does_not_raise():
    registry = ClientRegistry()
    broken = RecordingClient("broken", fail=True)
    healthy = RecordingClient("healthy")
    registry.register(broken)
    registry.register(healthy)

    assert registry.broadcast(StatusEnvelope(message="x")) == 1
    assert len(healthy.received) == 1


def test_refused_delivery_is_not_counted():
    registry = ClientRegistry()
    registry.register(RecordingClient("full", full=True))
    registry.register(RecordingClient("ok"))

    assert registry.broadcast(StatusEnvelope(message="x")) == 1


@pytest.mark.asyncio
async def test_broadcast_trips_sends_wire_snapshot():
    registry = ClientRegistry()
    client = RecordingClient("a")
    registry.register(client)
    trip = TripRecord(
        cliente="Argos",
        autista="Genti",
        destinazione="Casieri",
        tipo_viaggio="Andata/Ritorno",
        data="Oggi",
        partenza="Cassani",
    )

    await registry.broadcast_trips([trip])

    [envelope] = client.received
    assert envelope.type == "trips_update"
    assert envelope.trips == [trip.to_wire()]
    assert envelope.trips[0]["partenza"] == "Cassani"


def test_register_and_unregister():
    registry = ClientRegistry()
    client = RecordingClient("a")

    registry.register(client)
    registry.register(client)
    assert len(registry) == 1

    registry.unregister(client)
    registry.unregister(client)
    assert len(registry) == 0


def test_broadcast_with_no_clients():
    assert ClientRegistry().broadcast(StatusEnvelope(message="x")) == 0
