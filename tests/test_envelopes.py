"""
Envelope protocol tests.

Verifies:
- each client and server variant parses to its model
- unknown or missing tags raise UnhandledEnvelopeError
- bad JSON and bad payloads raise EnvelopeError
- serialized server envelopes carry their type tag
"""
import json

import pytest

from relay_server.envelopes import (
    AudioEnvelope,
    ClientAudio,
    ClientStart,
    LogEnvelope,
    StatusEnvelope,
    TripsUpdateEnvelope,
    parse_client_envelope,
    parse_server_envelope,
)
from relay_server.errors import EnvelopeError, UnhandledEnvelopeError


class TestClientEnvelopes:
    def test_audio(self):
        envelope = parse_client_envelope('{"type": "audio", "data": "AAAA"}')
        assert isinstance(envelope, ClientAudio)
        assert envelope.data == "AAAA"

    def test_start(self):
        assert isinstance(parse_client_envelope('{"type": "start"}'), ClientStart)

    def test_bytes_frame(self):
        envelope = parse_client_envelope(b'{"type": "audio", "data": "AAAA"}')
        assert isinstance(envelope, ClientAudio)

    def test_extra_fields_ignored(self):
        envelope = parse_client_envelope('{"type": "start", "sampleRate": 16000}')
        assert isinstance(envelope, ClientStart)

    @pytest.mark.parametrize("raw,tag", [
        ('{"type": "video", "data": "AAAA"}', "video"),
        ('{"type": "status", "message": "hi"}', "status"),
        ('{"data": "AAAA"}', None),
        ('{"type": 7}', None),
    ])
    def test_unknown_tag(self, raw, tag):
        with pytest.raises(UnhandledEnvelopeError) as exc_info:
            parse_client_envelope(raw)
        assert exc_info.value.tag == tag

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2, 3]",
        '"audio"',
        '{"type": "audio"}',
        '{"type": "audio", "data": 42}',
        b"\xff\xfe\x00",
    ])
    def test_malformed(self, raw):
        with pytest.raises(EnvelopeError) as exc_info:
            parse_client_envelope(raw)
        assert not isinstance(exc_info.value, UnhandledEnvelopeError)


class TestServerEnvelopes:
    def test_serialization_carries_type(self):
        assert json.loads(StatusEnvelope(message="Connected to Gemini").model_dump_json()) == {
            "type": "status",
            "message": "Connected to Gemini",
        }
        assert json.loads(TripsUpdateEnvelope().model_dump_json()) == {"type": "trips_update", "trips": []}

    @pytest.mark.parametrize("envelope", [
        StatusEnvelope(message="Connected to Gemini"),
        LogEnvelope(message="Gemini: Cliente?"),
        TripsUpdateEnvelope(trips=[{"cliente": "Argos", "autista": "Genti"}]),
        AudioEnvelope(data="AAAA"),
    ])
    def test_parse_server_frames(self, envelope):
        assert parse_server_envelope(envelope.model_dump_json()) == envelope

    def test_client_tag_is_unknown_to_client_side(self):
        with pytest.raises(UnhandledEnvelopeError):
            parse_server_envelope('{"type": "start"}')
