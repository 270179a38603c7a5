"""Entry point: register with the signaling server, set up one call, relay media over plain RTP."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from config.settings import DEBUG_KEYLOG_PATH, DEFAULT_URL, Settings
from media.codecs import codec_for_path
from signaling.errors import ConfigError, SignalingError
from signaling.transport import SignalingConnection, TlsPolicy

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="WebRTC signaling client with plain RTP media")
    parser.add_argument("role", choices=["caller", "callee"])
    parser.add_argument("--url", help=f"WebRTC server URL (default {DEFAULT_URL})")
    parser.add_argument(
        "--debug",
        action="store_true",
        help=f"Debug the TLS connection using a keylogger: dumps data into {DEBUG_KEYLOG_PATH}",
    )
    parser.add_argument("--insecure", action="store_true", help="Do not verify the server certificate")
    parser.add_argument(
        "--file",
        type=Path,
        help=(
            "caller: media file to send / callee: media file to write "
            "(extension is either h264/mkv or vp8/ivf, this selects the codec)"
        ),
    )
    parser.add_argument("--user", help="User name (will be registered with the WebRTC server)")
    parser.add_argument("--peer", help="Peer name")
    parser.add_argument("--ice-addr", help="Use only the given IP address to generate local ICE candidates")
    parser.add_argument("--log-level")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with command-line flags applied on top."""

    overrides = {
        "role": args.role,
        "signaling_url": args.url,
        "media_file": args.file,
        "user": args.user,
        "peer": args.peer,
        "ice_address": args.ice_addr,
        "log_level": args.log_level,
    }
    if args.insecure:
        overrides["tls_insecure"] = True
    if args.debug:
        overrides["tls_keylog_path"] = DEBUG_KEYLOG_PATH
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def check_media_file(settings: Settings) -> str:
    """Validate the media file and return the codec its extension selects."""

    if settings.media_file is None:
        raise ConfigError("--file is required")
    if settings.role == "caller" and not settings.media_file.is_file():
        raise ConfigError(f"Could not open file `{settings.media_file}`")
    return codec_for_path(settings.media_file)


async def _amain(settings: Settings, codec: str) -> None:
    # Lazy import keeps aiortc out of the CLI parsing path.
    from media.peer import AiortcPeerEngine
    from media.relay import RtpRelay
    from signaling.session import Session

    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    tls = TlsPolicy(insecure=settings.tls_insecure, keylog_path=settings.tls_keylog_path)
    connection = await SignalingConnection.connect(settings.signaling_url, tls)

    engine = AiortcPeerEngine(codec)
    relay = RtpRelay(
        settings.media_file,
        codec,
        payload_size=settings.rtp_payload_size,
        packet_interval_ms=settings.rtp_packet_interval_ms,
    )
    session = Session(
        role=settings.role,
        user=settings.user,
        peer=settings.peer,
        connection=connection,
        engine=engine,
        media=relay,
        ice_address=settings.ice_address,
        apply_remote_description=settings.apply_remote_description,
        fatal_policy=settings.fatal_policy,
    )
    engine.on_failure = session.fatal

    final_state = await session.run(shutdown)
    LOGGER.info("session ended: %s (%s)", final_state.value, session.state.reason)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    try:
        settings = build_settings(args)
    except ValidationError as exc:
        sys.exit(f"invalid configuration: {exc}")

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    try:
        codec = check_media_file(settings)
    except ConfigError as exc:
        LOGGER.critical("%s", exc)
        sys.exit(1)

    LOGGER.info(
        "Starting %s: user=%s, peer=%s: video: %s",
        settings.role,
        settings.user,
        settings.peer,
        settings.media_file,
    )
    try:
        asyncio.run(_amain(settings, codec))
    except SignalingError as exc:
        LOGGER.critical("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
