from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from signaling.errors import ConnectionClosedError  # noqa: E402
from signaling.messages import Candidate, Message, dump_frame  # noqa: E402
from signaling.sdp import SessionDescription  # noqa: E402

ENGINE_OFFER_SDP = "\r\n".join(
    [
        "v=0",
        "o=- 3912345678 3912345678 IN IP4 0.0.0.0",
        "s=-",
        "t=0 0",
        "a=group:BUNDLE 0",
        "a=msid-semantic:WMS *",
        "m=video 40000 UDP/TLS/RTP/SAVPF 97 98",
        "c=IN IP4 10.0.0.5",
        "a=sendonly",
        "a=mid:0",
        "a=rtpmap:97 VP8/90000",
        "a=rtpmap:98 rtx/90000",
        "a=fmtp:98 apt=97",
        "a=candidate:1 1 udp 2130706431 10.0.0.5 40000 typ host",
        "a=candidate:2 1 udp 2130706431 192.168.1.7 40002 typ host",
        "a=end-of-candidates",
        "a=ice-ufrag:abcd",
        "a=ice-pwd:0123456789abcdef01234567",
        "a=fingerprint:sha-256 AA:BB:CC",
        "a=setup:actpass",
        "",
    ]
)

REMOTE_ANSWER_SDP = "\r\n".join(
    [
        "v=0",
        "o=- 1 1 IN IP4 10.0.0.9",
        "s=Kurento Media Server",
        "c=IN IP4 10.0.0.9",
        "t=0 0",
        "m=video 50000 RTP/AVP 97",
        "a=rtpmap:97 VP8/90000",
        "a=recvonly",
        "",
    ]
)


def make_candidate(n: int) -> Candidate:
    return Candidate(
        candidate=f"candidate:{n} 1 udp 2130706431 10.0.0.9 {50000 + n} typ host",
        sdp_mid="0",
        sdp_mline_index=0,
    )


class FakeEngine:
    """Records the calls the negotiator makes on the peer connection."""

    def __init__(self, offer_sdp: str = ENGINE_OFFER_SDP) -> None:
        self.offer_sdp = offer_sdp
        self.calls: list[str] = []
        self.remote: SessionDescription | None = None
        self.applied: list[Candidate] = []
        self.closed = False
        self.fail_remote = False

    def add_send_track(self) -> None:
        self.calls.append("add_send_track")

    def add_receive_transceiver(self) -> None:
        self.calls.append("add_receive_transceiver")

    async def create_local_offer(self) -> SessionDescription:
        self.calls.append("create_local_offer")
        return self.local_description()

    async def wait_gathering_complete(self) -> None:
        self.calls.append("wait_gathering_complete")

    def local_description(self) -> SessionDescription:
        return SessionDescription(kind="offer", sdp=self.offer_sdp)

    async def set_remote_description(self, desc: SessionDescription) -> None:
        self.calls.append("set_remote_description")
        if self.fail_remote:
            raise ValueError("DTLS fingerprint missing")
        self.remote = desc

    async def add_candidate(self, candidate: Candidate) -> None:
        assert self.remote is not None, "candidate applied before remote description"
        self.calls.append("add_candidate")
        self.applied.append(candidate)

    async def close(self) -> None:
        self.closed = True


class FakeConnection:
    """Scripted signaling server: frames are served in order, sends are recorded."""

    def __init__(self, frames: list[str | dict | Message | None] | None = None) -> None:
        self.sent: list[Message] = []
        self.closed = False
        self._frames: asyncio.Queue = asyncio.Queue()
        for frame in frames or []:
            self.push(frame)

    def push(self, frame: str | dict | Message | None) -> None:
        if frame is None or isinstance(frame, str):
            self._frames.put_nowait(frame)
        elif isinstance(frame, dict):
            self._frames.put_nowait(json.dumps(frame))
        else:
            self._frames.put_nowait(dump_frame(frame))

    async def send(self, message: Message) -> None:
        self.sent.append(message)

    async def receive_raw(self) -> str:
        frame = await self._frames.get()
        if frame is None:
            raise ConnectionClosedError("closed by test")
        return frame

    async def close(self) -> None:
        self.closed = True


@pytest.fixture()
def engine() -> FakeEngine:
    return FakeEngine()
