"""aiortc peer connection behind the negotiator's ``PeerEngine`` surface."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from aiortc import (
    RTCConfiguration,
    RTCIceCandidate,
    RTCPeerConnection,
    RTCRtpSender,
    RTCRtpTransceiver,
    RTCSessionDescription,
    VideoStreamTrack,
)
from aiortc.sdp import candidate_from_sdp

from signaling.errors import (
    LocalDescriptionError,
    PeerConnectionFailedError,
    SignalingError,
    UnsupportedCodecError,
)
from signaling.messages import Candidate
from signaling.sdp import SessionDescription, parse_sdp

LOGGER = logging.getLogger(__name__)

_FATAL_ICE_STATES = frozenset({"disconnected", "failed"})
_CONNECTED_ICE_STATES = frozenset({"connected", "completed"})


def ice_candidate(candidate: Candidate) -> RTCIceCandidate:
    """Convert a wire candidate (``candidate:<foundation> ...``) for aiortc."""

    ice = candidate_from_sdp(candidate.candidate.removeprefix("candidate:"))
    ice.sdpMid = candidate.sdp_mid
    ice.sdpMLineIndex = candidate.sdp_mline_index
    return ice


def has_ice_credentials(desc: SessionDescription) -> bool:
    return any(
        media.ice.usernameFragment and media.ice.password for media in parse_sdp(desc.sdp).media
    )


class AiortcPeerEngine:
    """Peer connection restricted to one video codec and no STUN/TURN servers.

    Lab deployments control every address, so no public ICE servers are
    configured. ``on_failure`` is called when ICE reports the connection as
    disconnected or failed.

    A plain ``RTP/AVP`` answer carries no ICE credentials and no DTLS
    fingerprint, which aiortc's transports cannot start from. Such an answer is
    recorded on ``remote_description`` without being handed to aiortc, and
    remote candidates are then kept in ``plain_candidates`` for the RTP relay.
    """

    def __init__(self, codec: str, on_failure: Callable[[SignalingError], None] | None = None) -> None:
        self.codec = codec
        self.on_failure = on_failure
        self.remote_description: SessionDescription | None = None
        self.plain_candidates: list[RTCIceCandidate] = []
        self._plain = False
        self._gathered = asyncio.Event()
        self._closed = False
        self._pc = RTCPeerConnection(RTCConfiguration(iceServers=[]))

        @self._pc.on("signalingstatechange")
        def on_signaling_state() -> None:
            LOGGER.info("Signaling state change: %s", self._pc.signalingState)

        @self._pc.on("icegatheringstatechange")
        def on_gathering_state() -> None:
            LOGGER.info("ICE gathering state: %s", self._pc.iceGatheringState)
            if self._pc.iceGatheringState == "complete":
                self._gathered.set()

        @self._pc.on("iceconnectionstatechange")
        def on_ice_state() -> None:
            self._on_ice_state(self._pc.iceConnectionState)

    def _on_ice_state(self, state: str) -> None:
        LOGGER.info("Connection state change: %s", state)
        if state in _CONNECTED_ICE_STATES:
            LOGGER.info("peer connected")
        elif state in _FATAL_ICE_STATES and not self._closed and self.on_failure is not None:
            self.on_failure(PeerConnectionFailedError(f"ICE connection {state}, exiting"))

    def add_send_track(self) -> None:
        sender = self._pc.addTrack(VideoStreamTrack())
        for transceiver in self._pc.getTransceivers():
            if transceiver.sender is sender:
                self._prefer_codec(transceiver)

    def add_receive_transceiver(self) -> None:
        self._prefer_codec(self._pc.addTransceiver("video", direction="recvonly"))

    def _prefer_codec(self, transceiver: RTCRtpTransceiver) -> None:
        capabilities = RTCRtpSender.getCapabilities("video")
        preferred = [c for c in capabilities.codecs if c.mimeType.lower() == self.codec.lower()]
        if not preferred:
            raise UnsupportedCodecError(f"codec {self.codec} not supported by aiortc")
        transceiver.setCodecPreferences(preferred)

    async def create_local_offer(self) -> SessionDescription:
        offer = await self._pc.createOffer()
        await self._pc.setLocalDescription(offer)
        return self.local_description()

    async def wait_gathering_complete(self) -> None:
        if self._pc.iceGatheringState == "complete":
            self._gathered.set()
        await self._gathered.wait()

    def local_description(self) -> SessionDescription:
        desc = self._pc.localDescription
        if desc is None:
            raise LocalDescriptionError("no local description, create the offer first")
        return SessionDescription(kind=desc.type, sdp=desc.sdp)

    async def set_remote_description(self, desc: SessionDescription) -> None:
        if has_ice_credentials(desc):
            await self._pc.setRemoteDescription(RTCSessionDescription(sdp=desc.sdp, type=desc.kind))
        else:
            LOGGER.info("Remote %s has no ICE credentials, keeping it for plain RTP", desc.kind)
            self._plain = True
        self.remote_description = desc

    async def add_candidate(self, candidate: Candidate) -> None:
        ice = ice_candidate(candidate)
        if self._plain:
            LOGGER.info("Keeping remote candidate %s:%s for plain RTP", ice.ip, ice.port)
            self.plain_candidates.append(ice)
            return
        await self._pc.addIceCandidate(ice)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._pc.close()
