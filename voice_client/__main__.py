"""
Console voice client.

Usage:
    python -m voice_client --server http://localhost:3000

Talk into the default microphone; synthesized replies play on the default
output device and saved trips are printed as a table.
"""
import argparse
import asyncio

from logging_setup import setup_logging
from .config import ClientConfig
from .devices import MicrophoneCapture, SoundDevicePlayer
from .playback import PlaybackQueue
from .transport import ClientTransport
from .view import ConsoleView


def parse_args(argv=None) -> argparse.Namespace:
    defaults = ClientConfig.from_env()
    parser = argparse.ArgumentParser(description="Voice client for the trip relay.")
    parser.add_argument(
        "--server",
        default=defaults.server_url,
        help="Relay origin, e.g. http://localhost:3000 (https upgrades to wss).",
    )
    parser.add_argument(
        "--input-device",
        type=int,
        default=defaults.input_device,
        help="sounddevice input index (default: system default).",
    )
    parser.add_argument(
        "--output-device",
        type=int,
        default=defaults.output_device,
        help="sounddevice output index (default: system default).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level for client diagnostics.",
    )
    return parser.parse_args(argv)


async def run_client(args: argparse.Namespace) -> None:
    view = ConsoleView()
    playback = PlaybackQueue(SoundDevicePlayer(device=args.output_device))
    transport = ClientTransport(
        args.server,
        view=view,
        playback=playback,
        capture_factory=lambda on_frame: MicrophoneCapture(on_frame, device=args.input_device),
    )
    try:
        await transport.connect()
        await transport.run()
    finally:
        await transport.disconnect()


def main(argv=None) -> None:
    args = parse_args(argv)
    setup_logging(level=args.log_level, use_json=False)
    try:
        asyncio.run(run_client(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
