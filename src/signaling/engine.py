"""Capabilities the negotiator needs from the peer-connection engine."""

from __future__ import annotations

from typing import Protocol

from signaling.messages import Candidate
from signaling.sdp import SessionDescription


class PeerEngine(Protocol):
    def add_send_track(self) -> None:
        """Attach one outgoing video track (caller side)."""

    def add_receive_transceiver(self) -> None:
        """Advertise intent to receive one video stream (callee side)."""

    async def create_local_offer(self) -> SessionDescription:
        """Create an offer and install it as the local description."""

    async def wait_gathering_complete(self) -> None:
        """Block until local candidate discovery has finished (fires once)."""

    def local_description(self) -> SessionDescription:
        """The current local description, including gathered candidates."""

    async def set_remote_description(self, desc: SessionDescription) -> None:
        ...

    async def add_candidate(self, candidate: Candidate) -> None:
        ...

    async def close(self) -> None:
        ...
