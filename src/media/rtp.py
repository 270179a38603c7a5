from __future__ import annotations

import struct
from dataclasses import dataclass

RTP_VERSION = 2

# V/P/X/CC, M/PT, sequence, timestamp, SSRC
_FIXED_HEADER = struct.Struct("!BBHII")
_EXTENSION_HEADER = struct.Struct("!HH")


@dataclass(frozen=True, slots=True)
class RtpPacket:
    payload_type: int
    sequence: int
    timestamp: int
    ssrc: int
    marker: bool
    payload: bytes


def parse_rtp_packet(data: bytes) -> RtpPacket:
    """Parse an RTP packet, skipping CSRC list, header extension and padding.

    Raises:
        ValueError: if the packet is truncated or not RTP version 2.
    """

    if len(data) < _FIXED_HEADER.size:
        raise ValueError("RTP packet too short")

    first, second, sequence, timestamp, ssrc = _FIXED_HEADER.unpack_from(data)
    if first >> 6 != RTP_VERSION:
        raise ValueError(f"Unsupported RTP version: {first >> 6}")

    offset = _FIXED_HEADER.size + 4 * (first & 0x0F)
    if first & 0x10:
        if len(data) < offset + _EXTENSION_HEADER.size:
            raise ValueError("RTP header extension truncated")
        _, words = _EXTENSION_HEADER.unpack_from(data, offset)
        offset += _EXTENSION_HEADER.size + 4 * words

    end = len(data) - (data[-1] if first & 0x20 else 0)
    if offset > end:
        raise ValueError("RTP packet truncated")

    return RtpPacket(
        payload_type=second & 0x7F,
        sequence=sequence,
        timestamp=timestamp,
        ssrc=ssrc,
        marker=bool(second & 0x80),
        payload=data[offset:end],
    )


def build_rtp_packet(
    *,
    payload_type: int,
    sequence: int,
    timestamp: int,
    ssrc: int,
    marker: bool,
    payload: bytes,
) -> bytes:
    """Build an RTP packet with a bare 12-byte header."""

    header = _FIXED_HEADER.pack(
        RTP_VERSION << 6,
        (0x80 if marker else 0) | (payload_type & 0x7F),
        sequence & 0xFFFF,
        timestamp & 0xFFFFFFFF,
        ssrc & 0xFFFFFFFF,
    )
    return header + payload
