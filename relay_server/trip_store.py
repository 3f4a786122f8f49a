"""
Trip records and the in-memory trip store.

Records only exist once the upstream session invoked `saveTrip` with every
required field; they are never updated or deleted. The store lives for the
process lifetime (single process only, no persistence).
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from logging_setup import get_logger, Component


logger = get_logger(Component.TRIP_STORE)


class TripRecord(BaseModel):
    """
    One completed data-collection cycle.

    Field aliases are the tool parameter names used on the wire.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    client: str = Field(..., alias="cliente")
    driver: str = Field(..., alias="autista")
    destination: str = Field(..., alias="destinazione")
    trip_type: str = Field(..., alias="tipo_viaggio")
    date: str = Field(..., alias="data")
    origin: Optional[str] = Field(None, alias="partenza")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


REQUIRED_FIELDS = ("cliente", "autista", "destinazione", "tipo_viaggio", "data")
OPTIONAL_FIELDS = ("partenza",)


def missing_required_fields(
    args: Optional[Mapping[str, Any]],
    required: Sequence[str] = REQUIRED_FIELDS,
) -> List[str]:
    """
    Required wire fields that are absent, not strings, or blank.

    `required` comes from the tool declaration; the TripRecord fields are
    always required on top of it.
    """
    args = args or {}
    missing = []
    for name in dict.fromkeys((*REQUIRED_FIELDS, *required)):
        value = args.get(name)
        if not isinstance(value, str) or not value.strip():
            missing.append(name)
    return missing


def trip_from_tool_args(
    args: Optional[Mapping[str, Any]],
    required: Sequence[str] = REQUIRED_FIELDS,
) -> Optional[TripRecord]:
    """
    Build a TripRecord from `saveTrip` arguments.

    Returns None when a required field is missing; partial records are never
    built. Extra required arguments are checked but not stored.
    """
    if missing_required_fields(args, required):
        return None
    cleaned = {
        name: args[name].strip()
        for name in REQUIRED_FIELDS + OPTIONAL_FIELDS
        if isinstance(args.get(name), str) and args[name].strip()
    }
    return TripRecord.model_validate(cleaned)


TripListener = Callable[[List[TripRecord]], Awaitable[None]]


class TripStore:
    """
    Ordered, append-only sequence of accepted trips.

    Append and listener notification happen under one lock, so listeners see
    snapshots in acceptance order even when several connections save at once.
    Listeners must not wait on client sockets while the lock is held.
    """

    def __init__(self):
        self._trips: List[TripRecord] = []
        self._listeners: List[TripListener] = []
        self._lock = asyncio.Lock()

    def subscribe(self, listener: TripListener) -> None:
        """Register an async listener called with the new snapshot after each append."""
        self._listeners.append(listener)

    async def append(self, record: TripRecord) -> List[TripRecord]:
        """Append a record and notify listeners. Returns the resulting snapshot."""
        async with self._lock:
            self._trips.append(record)
            snapshot = list(self._trips)
            logger.info("Trip appended", trip_count=len(snapshot))
            for listener in self._listeners:
                try:
                    await listener(snapshot)
                except Exception as e:
                    logger.error(
                        "Trip listener failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
            return snapshot

    def snapshot(self) -> List[TripRecord]:
        """Current trips, oldest first."""
        return list(self._trips)

    def to_wire(self) -> List[Dict[str, Any]]:
        return [t.to_wire() for t in self._trips]

    def __len__(self) -> int:
        return len(self._trips)
