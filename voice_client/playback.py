"""
Playback queue for synthesized speech.

States:
- idle: nothing playing (queue may be empty)
- playing: exactly one chunk is playing

Enqueue while idle starts the chunk; enqueue while playing only appends. The
player's finished callback starts the next chunk or returns to idle. A second
chunk never starts before the previous one reported completion.
"""

from __future__ import annotations

import binascii
from collections import deque
from enum import Enum
from functools import partial
from typing import Callable, Deque, Optional, Protocol

import numpy as np

from logging_setup import get_logger, Component
from .codec import decode_frame


logger = get_logger(Component.PLAYBACK)


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"


class Player(Protocol):
    """Plays one mono float32 chunk and calls on_finished (on the event loop) when done."""

    def start(self, samples: np.ndarray, on_finished: Callable[[], None]) -> None: ...

    def stop(self) -> None: ...


class PlaybackQueue:
    """Serializes base64 PCM16 chunks into back-to-back playback."""

    def __init__(self, player: Player):
        self._player = player
        self._pending: Deque[str] = deque()
        self._current: Optional[object] = None
        self.state = PlaybackState.IDLE
        self.chunks_played = 0

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(self, data: str) -> None:
        """Queue one `audio` envelope payload; starts playback if idle."""
        self._pending.append(data)
        if self.state == PlaybackState.IDLE:
            self._start_next()

    def _start_next(self) -> None:
        while self._pending:
            data = self._pending.popleft()
            try:
                samples = decode_frame(data)
            except (binascii.Error, ValueError) as e:
                logger.warning("Dropping undecodable audio chunk", error=str(e))
                continue

            token = object()
            self._current = token
            self.state = PlaybackState.PLAYING
            self._player.start(samples, partial(self._on_finished, token))
            return

        self._current = None
        self.state = PlaybackState.IDLE

    def _on_finished(self, token: object) -> None:
        # Stale callbacks (chunk stopped by clear()) are ignored
        if token is not self._current:
            return
        self.chunks_played += 1
        self._current = None
        self.state = PlaybackState.IDLE
        self._start_next()

    def clear(self) -> None:
        """Drop pending chunks and stop the current one."""
        self._pending.clear()
        if self.state == PlaybackState.PLAYING:
            self._player.stop()
        self._current = None
        self.state = PlaybackState.IDLE
