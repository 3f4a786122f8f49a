"""
sounddevice-backed microphone capture and speaker playback.

Both run on PortAudio / executor threads and hand results back to the asyncio
loop; callbacks only encode or decode.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, Optional

import numpy as np
import sounddevice as sd

from logging_setup import get_logger, Component
from .codec import (
    CAPTURE_BLOCK_SIZE,
    CAPTURE_SAMPLE_RATE,
    CHANNELS,
    PLAYBACK_SAMPLE_RATE,
    encode_frame,
)


logger = get_logger(Component.VOICE_CLIENT)

PLAYBACK_BLOCK = 1024


class MicrophoneCapture:
    """Streams 16 kHz mono blocks as base64 PCM16 frames to on_frame (called on the loop)."""

    def __init__(
        self,
        on_frame: Callable[[str], None],
        *,
        device: Optional[int] = None,
        samplerate: int = CAPTURE_SAMPLE_RATE,
        blocksize: int = CAPTURE_BLOCK_SIZE,
    ):
        self._on_frame = on_frame
        self.device = device
        self.samplerate = samplerate
        self.blocksize = blocksize
        self._stream: Optional[sd.InputStream] = None

    @property
    def active(self) -> bool:
        return self._stream is not None

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._stream is not None:
            return

        def callback(indata, frames, time_info, status):
            if status:
                logger.debug("Input stream status", status=str(status))
            frame = encode_frame(indata[:, 0])
            try:
                loop.call_soon_threadsafe(self._on_frame, frame)
            except RuntimeError:
                # loop already closed during shutdown
                pass

        self._stream = sd.InputStream(
            samplerate=self.samplerate,
            channels=CHANNELS,
            dtype="float32",
            blocksize=self.blocksize,
            device=self.device,
            callback=callback,
        )
        self._stream.start()
        logger.info("Microphone capture started", samplerate=self.samplerate, device=self.device)

    def stop(self) -> None:
        """Stop capture and release the input device."""
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("Microphone capture stopped")


class SoundDevicePlayer:
    """
    Player for PlaybackQueue: plays one chunk per call in an executor thread.

    on_finished runs on the event loop once the chunk is done (or failed).
    Each chunk has its own stop event, and only one output stream is open at a
    time: a chunk started right after stop() waits for the stopped one to
    release the device.
    """

    def __init__(
        self,
        *,
        device: Optional[int] = None,
        samplerate: int = PLAYBACK_SAMPLE_RATE,
    ):
        self.device = device
        self.samplerate = samplerate
        self._stopped: Optional[threading.Event] = None
        self._device_lock = threading.Lock()

    def start(self, samples: np.ndarray, on_finished: Callable[[], None]) -> None:
        stopped = threading.Event()
        self._stopped = stopped
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self._play_blocking, samples, stopped)

        def done(f: asyncio.Future) -> None:
            if not f.cancelled() and f.exception() is not None:
                logger.warning("Playback failed", error=str(f.exception()))
            on_finished()

        future.add_done_callback(done)

    def _play_blocking(self, x: np.ndarray, stopped: threading.Event) -> None:
        if x.size == 0:
            return
        with self._device_lock:
            if stopped.is_set():
                return
            with sd.OutputStream(
                samplerate=self.samplerate,
                channels=CHANNELS,
                dtype="float32",
                device=self.device,
            ) as stream:
                idx = 0
                while idx < x.size and not stopped.is_set():
                    stream.write(x[idx: idx + PLAYBACK_BLOCK].reshape(-1, 1))
                    idx += PLAYBACK_BLOCK

    def stop(self) -> None:
        if self._stopped is not None:
            self._stopped.set()
