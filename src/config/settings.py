"""Client configuration loading and validation."""

from __future__ import annotations

import ipaddress
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_URL = "ws://localhost:8443/"
DEBUG_KEYLOG_PATH = Path("/tmp/keylog")


class Settings(BaseSettings):
    """Centralized environment configuration; CLI flags override it."""

    model_config = SettingsConfigDict(
        env_prefix="RTP_CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    log_level: str = Field(default="INFO")

    # Call
    role: Literal["caller", "callee"] = Field(default="caller")
    signaling_url: str = Field(default=DEFAULT_URL, description="WebRTC signaling server URL.")
    user: str = Field(default="test1", description="User name registered with the signaling server.")
    peer: str = Field(default="test2", description="Peer name to call.")
    media_file: Path | None = Field(
        default=None,
        description=(
            "caller: media file to send / callee: media file to write. "
            "The extension (h264/mkv or vp8/ivf) selects the codec."
        ),
    )
    ice_address: str | None = Field(
        default=None,
        description="Only advertise local ICE candidates bound to this IPv4 address.",
    )

    # TLS (lab servers use self-signed certificates)
    tls_insecure: bool = Field(default=False, description="Skip TLS certificate verification.")
    tls_keylog_path: Path | None = Field(
        default=None,
        description="Write TLS secrets to this file for packet-capture debugging.",
    )

    # Negotiation
    apply_remote_description: bool = Field(
        default=True,
        description="Set the remote answer on the peer connection and flush cached candidates.",
    )
    fatal_policy: Literal["exit", "raise"] = Field(
        default="exit",
        description="exit: terminate the process on fatal errors; raise: propagate them.",
    )

    # Plain RTP relay
    rtp_payload_size: int = Field(default=1200, ge=1, le=65000)
    rtp_packet_interval_ms: int = Field(default=20, ge=0)

    @field_validator("ice_address")
    @classmethod
    def ensure_ipv4(cls, value: str | None) -> str | None:
        if not value:
            return None
        try:
            ipaddress.IPv4Address(value)
        except ValueError as exc:
            raise ValueError(f"not an IPv4 address: {value}") from exc
        return value

