"""
Voice client configuration.
"""
import os
from dataclasses import dataclass
from typing import Optional


def _parse_device_env(key: str) -> Optional[int]:
    """Device index from env; unset or non-numeric means the system default."""
    value = os.environ.get(key, "").strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass
class ClientConfig:
    """Voice client configuration."""

    server_url: str = "http://localhost:3000"

    # sounddevice indices, None = default device
    input_device: Optional[int] = None
    output_device: Optional[int] = None

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            server_url=os.environ.get("RELAY_SERVER_URL", "http://localhost:3000"),
            input_device=_parse_device_env("AUDIO_INPUT_DEVICE"),
            output_device=_parse_device_env("AUDIO_OUTPUT_DEVICE"),
        )
