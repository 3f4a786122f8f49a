"""
Audio codec helpers: float samples <-> PCM16 little-endian <-> base64 text.

Rates are fixed by convention with the upstream service:
16 kHz for microphone frames, 24 kHz for synthesized speech.
"""
import base64

import numpy as np


CAPTURE_SAMPLE_RATE = 16000
PLAYBACK_SAMPLE_RATE = 24000
CAPTURE_BLOCK_SIZE = 4096
CHANNELS = 1

_PCM16 = np.dtype("<i2")


def float_to_pcm16(samples) -> bytes:
    """
    Clamp to [-1, 1] and scale to int16.

    Negatives scale by 32768 and non-negatives by 32767 so both ends of the
    signed range are reachable; values truncate toward zero.
    """
    x = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(x < 0, x * 32768.0, x * 32767.0)
    return np.trunc(scaled).astype(_PCM16).tobytes()


def pcm16_to_float(data: bytes) -> np.ndarray:
    """Reinterpret little-endian int16 bytes as float32 in [-1, 1)."""
    usable = len(data) - (len(data) % _PCM16.itemsize)
    return np.frombuffer(data[:usable], dtype=_PCM16).astype(np.float32) / 32768.0


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_base64(text: str) -> bytes:
    """Strict decode; raises binascii.Error on malformed input."""
    return base64.b64decode(text, validate=True)


def encode_frame(samples) -> str:
    """Microphone samples -> base64 PCM16 text for an `audio` envelope."""
    return to_base64(float_to_pcm16(samples))


def decode_frame(text: str) -> np.ndarray:
    """`audio` envelope payload -> mono float32 samples at PLAYBACK_SAMPLE_RATE."""
    return pcm16_to_float(from_base64(text))
