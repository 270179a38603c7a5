"""Session descriptions and the RTP profile rewrite.

The peer-connection engine always produces ICE/DTLS-ready descriptions
(``UDP/TLS/RTP/SAVPF``). This client negotiates a plain, unencrypted
``RTP/AVP`` path, so the first media section's protocol is rewritten before
the description leaves the process. Parsing and serialization are aiortc's.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from aiortc import sdp as aiortc_sdp

from signaling.errors import SdpParseError

PLAIN_RTP_PROFILE = "RTP/AVP"

SdpType = Literal["offer", "answer"]


@dataclass(frozen=True, slots=True)
class SessionDescription:
    kind: SdpType
    sdp: str


def parse_sdp(text: str) -> aiortc_sdp.SessionDescription:
    """Parse SDP text, raising ``SdpParseError`` on anything malformed.

    aiortc skips lines it does not know, so the basic line structure is
    checked here before handing the text over.
    """

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        raise SdpParseError("empty SDP")
    if not lines[0].startswith("v="):
        raise SdpParseError(f"SDP must start with v=, got {lines[0]!r}")
    for line in lines:
        if len(line) < 2 or line[1] != "=" or not line[0].islower():
            raise SdpParseError(f"malformed SDP line: {line!r}")

    try:
        session = aiortc_sdp.SessionDescription.parse(text)
    except Exception as exc:
        raise SdpParseError(f"unparsable SDP: {exc!r}") from exc

    for media in session.media:
        if not all(media.profile.split("/")):
            raise SdpParseError(f"malformed m= protocol: {media.profile!r}")
    return session


def _with_sdp(desc: SessionDescription, session: aiortc_sdp.SessionDescription) -> SessionDescription:
    return SessionDescription(kind=desc.kind, sdp=str(session))


def rewrite_protocol(desc: SessionDescription) -> SessionDescription:
    """Force the first media section onto the plain ``RTP/AVP`` profile."""

    session = parse_sdp(desc.sdp)
    if not session.media:
        return desc
    session.media[0].profile = PLAIN_RTP_PROFILE
    return _with_sdp(desc, session)


def restrict_candidates(desc: SessionDescription, address: str) -> SessionDescription:
    """Drop every candidate not bound to ``address``."""

    session = parse_sdp(desc.sdp)
    for media in session.media:
        media.ice_candidates = [c for c in media.ice_candidates if c.ip == address]
    return _with_sdp(desc, session)


@dataclass(frozen=True, slots=True)
class MediaEndpoint:
    host: str
    port: int
    payload_types: tuple[int, ...]
    rtpmap: dict[int, str]

    def payload_type_for(self, mime_type: str) -> int | None:
        """Return the payload type mapped to e.g. ``video/H264``."""

        wanted = mime_type.lower()
        for pt in self.payload_types:
            if self.rtpmap.get(pt, "").lower() == wanted:
                return pt
        return None


def media_endpoint(desc: SessionDescription) -> MediaEndpoint:
    """Where plain RTP for the first media section should go.

    No ICE checks run on the plain RTP path, so the first candidate of the
    first media section stands in for the negotiated address.
    """

    session = parse_sdp(desc.sdp)
    if not session.media:
        raise SdpParseError("SDP has no media section")
    media = session.media[0]

    if media.ice_candidates:
        host, port = media.ice_candidates[0].ip, media.ice_candidates[0].port
    else:
        host, port = media.host or session.host, media.port
    if host is None:
        raise SdpParseError("SDP has neither candidates nor a connection address")

    return MediaEndpoint(
        host=host,
        port=port,
        payload_types=tuple(pt for pt in media.fmt if isinstance(pt, int)),
        rtpmap={codec.payloadType: codec.mimeType for codec in media.rtp.codecs},
    )
