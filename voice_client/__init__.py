"""
Python voice client for the trip relay.

Mirrors the browser page:
- microphone capture at 16 kHz, sent as base64 PCM16 `audio` envelopes
- synthesized speech at 24 kHz, played back one chunk at a time
- transcript (most recent first) and trips table rendered on the console
"""
