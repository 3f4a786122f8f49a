"""
WebSocket envelope protocol.

Every frame is a JSON object `{type, ...payload}`. Each direction is a tagged
union on `type`:

client -> server:  audio, start
server -> client:  status, log, trips_update, audio
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .errors import EnvelopeError, UnhandledEnvelopeError


# --- client -> server ---


class ClientAudio(BaseModel):
    """Microphone frame: base64 PCM16 mono at 16 kHz."""
    type: Literal["audio"] = "audio"
    data: str


class ClientStart(BaseModel):
    """Sent once after connecting; the upstream session is already open by then."""
    type: Literal["start"] = "start"


ClientEnvelope = Annotated[Union[ClientAudio, ClientStart], Field(discriminator="type")]


# --- server -> client ---


class StatusEnvelope(BaseModel):
    type: Literal["status"] = "status"
    message: str


class LogEnvelope(BaseModel):
    type: Literal["log"] = "log"
    message: str


class TripsUpdateEnvelope(BaseModel):
    type: Literal["trips_update"] = "trips_update"
    trips: List[Dict[str, Any]] = Field(default_factory=list)


class AudioEnvelope(BaseModel):
    """Synthesized speech: base64 PCM16 mono at 24 kHz."""
    type: Literal["audio"] = "audio"
    data: str


ServerEnvelope = Annotated[
    Union[StatusEnvelope, LogEnvelope, TripsUpdateEnvelope, AudioEnvelope],
    Field(discriminator="type"),
]


_client_adapter: TypeAdapter = TypeAdapter(ClientEnvelope)
_server_adapter: TypeAdapter = TypeAdapter(ServerEnvelope)

CLIENT_TAGS = frozenset(["audio", "start"])
SERVER_TAGS = frozenset(["status", "log", "trips_update", "audio"])


def _parse(raw: str | bytes, adapter: TypeAdapter, known_tags: frozenset):
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise EnvelopeError(f"Invalid JSON frame: {e}") from e

    if not isinstance(payload, dict):
        raise EnvelopeError("Envelope must be a JSON object")

    tag = payload.get("type")
    if tag not in known_tags:
        raise UnhandledEnvelopeError(tag if isinstance(tag, str) else None)

    try:
        return adapter.validate_python(payload)
    except ValidationError as e:
        raise EnvelopeError(f"Invalid {tag!r} envelope: {e.error_count()} error(s)") from e


def parse_client_envelope(raw: str | bytes) -> ClientAudio | ClientStart:
    """
    Parse a client frame.

    Raises:
        UnhandledEnvelopeError: unknown or missing `type`
        EnvelopeError: bad JSON or payload not matching the variant
    """
    return _parse(raw, _client_adapter, CLIENT_TAGS)


def parse_server_envelope(
    raw: str | bytes,
) -> StatusEnvelope | LogEnvelope | TripsUpdateEnvelope | AudioEnvelope:
    """Parse a server frame (client side counterpart of parse_client_envelope)."""
    return _parse(raw, _server_adapter, SERVER_TAGS)
