"""
Relay server for voice-driven trip collection.

Bridges browser / console clients to a Gemini Live conversational session:
- one upstream session per client WebSocket
- audio passes through as base64 PCM16 mono
- completed trips arrive as `saveTrip` tool calls and are broadcast to every client

The relay holds no conversational policy; the collection script lives in the
scenario prompt (see scenarios/).
"""
