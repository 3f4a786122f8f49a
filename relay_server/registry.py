"""
Registry of open client sockets.

Fans out server envelopes (trips_update) to every connected client. Delivery
only queues the envelope on each client's outbox, so a client that stopped
reading never holds up the others. Closed clients are skipped.
"""

from __future__ import annotations

from typing import List, Protocol, Set

from pydantic import BaseModel

from logging_setup import get_logger, Component
from .envelopes import TripsUpdateEnvelope
from .trip_store import TripRecord


logger = get_logger(Component.REGISTRY)


class ClientSocket(Protocol):
    """What the registry needs from a connection."""

    session_id: str

    @property
    def is_open(self) -> bool: ...

    def deliver(self, envelope: BaseModel) -> bool: ...


class ClientRegistry:
    """Tracks connected clients for broadcast."""

    def __init__(self):
        self._clients: Set[ClientSocket] = set()

    def register(self, client: ClientSocket) -> None:
        self._clients.add(client)
        logger.debug("Client registered", session_id=client.session_id, client_count=len(self._clients))

    def unregister(self, client: ClientSocket) -> None:
        self._clients.discard(client)
        logger.debug("Client unregistered", session_id=client.session_id, client_count=len(self._clients))

    def __len__(self) -> int:
        return len(self._clients)

    def broadcast(self, envelope: BaseModel) -> int:
        """
        Queue one envelope for every open client without waiting on any socket.

        Returns the number of clients it was queued for.
        """
        delivered = 0
        for client in list(self._clients):
            if not client.is_open:
                continue
            try:
                if client.deliver(envelope):
                    delivered += 1
            except Exception as e:
                logger.warning(
                    "Broadcast to client failed",
                    session_id=client.session_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return delivered

    async def broadcast_trips(self, trips: List[TripRecord]) -> None:
        """TripStore listener: push the full snapshot to everyone."""
        envelope = TripsUpdateEnvelope(trips=[t.to_wire() for t in trips])
        delivered = self.broadcast(envelope)
        logger.info("Trips broadcast", trip_count=len(trips), delivered=delivered)
