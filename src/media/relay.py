from __future__ import annotations

import asyncio
import logging
import secrets
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from media.codecs import VIDEO_CLOCK_RATE
from media.rtp import build_rtp_packet, parse_rtp_packet
from signaling.errors import MediaHandoffError
from signaling.negotiator import CallHandoff
from signaling.sdp import MediaEndpoint, media_endpoint

LOGGER = logging.getLogger(__name__)

RECV_BUFFER: Final[int] = 65535
BIND_HOST: Final[str] = "0.0.0.0"


@dataclass(slots=True)
class RelayStats:
    packets: int = 0
    octets: int = 0


class RtpRelay:
    """Plain (unencrypted, non-ICE) RTP transfer of a media file.

    Current scope:
    - caller: cuts the file into fixed-size payloads and paces them to the
      remote endpoint from the port advertised in the local offer.
    - callee: listens on the advertised port and appends every payload of the
      negotiated payload type to the output file until cancelled.

    Payloads are opaque; codec-aware packetisation is left to a real media engine.
    """

    def __init__(
        self,
        media_file: Path,
        codec: str,
        *,
        payload_size: int = 1200,
        packet_interval_ms: int = 20,
    ) -> None:
        self._media_file = media_file
        self._codec = codec
        self._payload_size = payload_size
        self._packet_interval_ms = packet_interval_ms
        self.stats = RelayStats()

    async def __call__(self, call: CallHandoff) -> None:
        local = media_endpoint(call.local)
        remote = media_endpoint(call.remote)
        payload_type = self._payload_type(local, remote)
        LOGGER.info(
            "plain RTP %s: local=%s:%s remote=%s:%s pt=%s codec=%s",
            call.role,
            local.host,
            local.port,
            remote.host,
            remote.port,
            payload_type,
            self._codec,
        )

        if call.role == "caller":
            await self.send_file(local.port, (remote.host, remote.port), payload_type)
        else:
            await self.receive_file(local.port, payload_type)

    def _payload_type(self, local: MediaEndpoint, remote: MediaEndpoint) -> int:
        for endpoint in (remote, local):
            pt = endpoint.payload_type_for(self._codec)
            if pt is not None:
                return pt
        raise MediaHandoffError(f"no payload type negotiated for {self._codec}")

    async def send_file(self, local_port: int, remote_addr: tuple[str, int], payload_type: int) -> None:
        loop = asyncio.get_running_loop()
        sock = _bind_udp(local_port)
        ssrc = secrets.randbits(32)
        sequence = secrets.randbits(16)
        timestamp = secrets.randbits(32)
        ts_step = VIDEO_CLOCK_RATE * self._packet_interval_ms // 1000

        try:
            with self._media_file.open("rb") as fh:
                while chunk := fh.read(self._payload_size):
                    packet = build_rtp_packet(
                        payload_type=payload_type,
                        sequence=sequence,
                        timestamp=timestamp,
                        ssrc=ssrc,
                        marker=len(chunk) < self._payload_size,
                        payload=chunk,
                    )
                    await loop.sock_sendto(sock, packet, remote_addr)
                    self.stats.packets += 1
                    self.stats.octets += len(chunk)

                    sequence = (sequence + 1) & 0xFFFF
                    timestamp = (timestamp + ts_step) & 0xFFFFFFFF
                    await asyncio.sleep(self._packet_interval_ms / 1000)
        finally:
            sock.close()

        LOGGER.info("sent %s: %d packets, %d octets", self._media_file, self.stats.packets, self.stats.octets)

    async def receive_file(self, local_port: int, payload_type: int) -> None:
        loop = asyncio.get_running_loop()
        sock = _bind_udp(local_port)
        LOGGER.info("RTP receiver listening on %s:%s", BIND_HOST, sock.getsockname()[1])

        try:
            with self._media_file.open("wb") as fh:
                while True:
                    data, addr = await loop.sock_recvfrom(sock, RECV_BUFFER)
                    try:
                        pkt = parse_rtp_packet(data)
                    except ValueError:
                        continue
                    if pkt.payload_type != payload_type:
                        continue

                    if self.stats.packets == 0:
                        LOGGER.info("New RTP stream ssrc=%s from %s", pkt.ssrc, addr)
                    fh.write(pkt.payload)
                    fh.flush()
                    self.stats.packets += 1
                    self.stats.octets += len(pkt.payload)
        finally:
            sock.close()
            LOGGER.info("received %s: %d packets, %d octets", self._media_file, self.stats.packets, self.stats.octets)


def _bind_udp(port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.bind((BIND_HOST, port))
    except OSError as exc:
        sock.close()
        raise MediaHandoffError(f"cannot bind RTP port {port}: {exc}") from exc
    sock.setblocking(False)
    return sock
