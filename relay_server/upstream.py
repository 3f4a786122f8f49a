"""
Upstream session adapter (Gemini Live via google-genai).

The rest of the relay never touches SDK types. It sees:
- UpstreamConnector.connect(): async context manager yielding an UpstreamSession
- UpstreamSession.send_audio / send_tool_responses
- UpstreamSession.events(): async stream of UpstreamAudio, UpstreamText,
  ToolCallBatch and TurnComplete

Leaving the connect() context closes the upstream session.
"""

from __future__ import annotations

from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, AsyncIterator, Dict, List, Optional, Protocol, Tuple, Union

from google import genai
from google.genai import types

from logging_setup import get_logger, Component
from .config import RelayConfig
from .errors import UpstreamErrorHandler
from .instructions import build_tool_declaration, get_instructions, get_tool_spec


logger = get_logger(Component.UPSTREAM)

# Fixed by convention with the upstream service, not negotiated
INPUT_MIME_TYPE = "audio/pcm;rate=16000"
OUTPUT_MIME_PREFIX = "audio/pcm"


@dataclass(frozen=True)
class UpstreamAudio:
    """Synthesized speech chunk (raw PCM16 bytes, 24 kHz)."""
    data: bytes
    mime_type: str = "audio/pcm;rate=24000"


@dataclass(frozen=True)
class UpstreamText:
    text: str


@dataclass(frozen=True)
class ToolInvocation:
    id: Optional[str]
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCallBatch:
    """All function calls carried by one upstream message."""
    invocations: List[ToolInvocation]


@dataclass(frozen=True)
class TurnComplete:
    pass


UpstreamEvent = Union[UpstreamAudio, UpstreamText, ToolCallBatch, TurnComplete]


@dataclass(frozen=True)
class ToolResult:
    """Reply to one ToolInvocation, correlated by id."""
    id: Optional[str]
    name: str
    response: Dict[str, Any]


class UpstreamSession(Protocol):
    async def send_audio(self, pcm: bytes) -> None: ...

    async def send_tool_responses(self, results: List[ToolResult]) -> None: ...

    def events(self) -> AsyncIterator[UpstreamEvent]: ...


class UpstreamConnector(Protocol):
    def connect(self) -> AsyncContextManager[UpstreamSession]: ...


def translate_message(message: types.LiveServerMessage) -> List[UpstreamEvent]:
    """Flatten one LiveServerMessage into relay events, in message order."""
    events: List[UpstreamEvent] = []

    content = message.server_content
    if content is not None:
        parts = content.model_turn.parts if content.model_turn else None
        for part in parts or []:
            inline = part.inline_data
            if inline is not None and inline.data and (inline.mime_type or "").startswith(OUTPUT_MIME_PREFIX):
                events.append(UpstreamAudio(data=inline.data, mime_type=inline.mime_type))
            elif part.text:
                events.append(UpstreamText(text=part.text))
        if content.turn_complete:
            events.append(TurnComplete())

    tool_call = message.tool_call
    if tool_call is not None and tool_call.function_calls:
        events.append(ToolCallBatch(invocations=[
            ToolInvocation(id=fc.id, name=fc.name or "", args=dict(fc.args or {}))
            for fc in tool_call.function_calls
        ]))

    return events


def build_live_config(
    *,
    instructions: str,
    tool_declaration: types.FunctionDeclaration,
    voice: str,
) -> types.LiveConnectConfig:
    """Audio responses, one prebuilt voice, the scenario prompt and its completion tool."""
    return types.LiveConnectConfig(
        response_modalities=[types.Modality.AUDIO],
        speech_config=types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
            ),
        ),
        system_instruction=types.Content(parts=[types.Part(text=instructions)]),
        tools=[types.Tool(function_declarations=[tool_declaration])],
    )


class GeminiLiveSession:
    """UpstreamSession over a google-genai AsyncSession."""

    def __init__(self, session: Any):
        self._session = session

    async def send_audio(self, pcm: bytes) -> None:
        await self._session.send_realtime_input(
            audio=types.Blob(data=pcm, mime_type=INPUT_MIME_TYPE),
        )

    async def send_tool_responses(self, results: List[ToolResult]) -> None:
        await self._session.send_tool_response(
            function_responses=[
                types.FunctionResponse(id=r.id, name=r.name, response=r.response)
                for r in results
            ],
        )

    async def events(self) -> AsyncIterator[UpstreamEvent]:
        # receive() ends after each turn_complete; keep reading turns until the
        # stream yields nothing (session closed)
        while True:
            received = 0
            async for message in self._session.receive():
                received += 1
                for event in translate_message(message):
                    yield event
            if received == 0:
                logger.info("Gemini stream ended")
                return


class GeminiLiveConnector:
    """Opens one Gemini Live session per client connection."""

    def __init__(
        self,
        config: RelayConfig,
        *,
        client: Optional[genai.Client] = None,
    ):
        self.config = config
        self._client = client
        tool_spec = get_tool_spec(config.scenario)
        self.tool_name: str = tool_spec["name"]
        self.required_fields: Tuple[str, ...] = tuple(tool_spec.get("required") or ())
        self.live_config = build_live_config(
            instructions=get_instructions(config.scenario),
            tool_declaration=build_tool_declaration(tool_spec),
            voice=config.gemini_voice,
        )

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.config.gemini_api_key)
        return self._client

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[GeminiLiveSession]:
        """
        Open a Gemini Live session.

        Raises UpstreamSetupError (classified, secrets redacted) if it cannot be opened.
        """
        async with AsyncExitStack() as stack:
            try:
                session = await stack.enter_async_context(
                    self._get_client().aio.live.connect(
                        model=self.config.gemini_model,
                        config=self.live_config,
                    )
                )
            except Exception as e:
                raise UpstreamErrorHandler.to_setup_error(e) from e

            logger.info("Gemini session opened", model=self.config.gemini_model)
            yield GeminiLiveSession(session)

        logger.info("Gemini session closed")
