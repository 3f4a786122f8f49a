"""
Relay server configuration.

Loads the upstream credential and server settings from environment variables.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_MODEL = "models/gemini-2.0-flash-exp"
DEFAULT_VOICE = "Zephyr"
DEFAULT_PORT = 3000


def load_env_files(root: Optional[Path] = None) -> None:
    """
    Load .env / .env_local for local development.

    Existing environment variables always win.
    """
    root = root or Path(__file__).parent.parent
    for name in (".env_local", ".env"):
        p = root / name
        if p.exists():
            load_dotenv(p, override=False)


def _parse_int_env(key: str, default: int) -> int:
    """
    Parse integer environment variable, stripping comments and whitespace.

    "3000  # dev" -> 3000, missing or garbage -> default
    """
    value = os.environ.get(key)
    if not value:
        return default

    if "#" in value:
        value = value.split("#")[0]

    value = value.strip()

    if not value:
        return default

    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class RelayConfig:
    """Relay server configuration."""

    # Gemini Live
    gemini_api_key: str
    gemini_model: str = DEFAULT_MODEL
    gemini_voice: str = DEFAULT_VOICE

    # Conversational script (scenarios/<name>.yaml)
    scenario: str = "trips"

    # HTTP / WebSocket listener
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Load configuration from environment variables. Raises KeyError without GEMINI_API_KEY."""
        api_key = os.environ["GEMINI_API_KEY"].strip()
        if not api_key:
            raise KeyError("GEMINI_API_KEY")
        return cls(
            gemini_api_key=api_key,
            gemini_model=os.environ.get("GEMINI_MODEL", DEFAULT_MODEL),
            gemini_voice=os.environ.get("GEMINI_VOICE", DEFAULT_VOICE),
            scenario=os.environ.get("RELAY_SCENARIO", "trips"),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_parse_int_env("PORT", default=DEFAULT_PORT),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


def get_config() -> RelayConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = RelayConfig.from_env()
    return _config


# Global config instance (lazy loaded)
_config: Optional[RelayConfig] = None
