from __future__ import annotations

from pathlib import Path
from typing import Final

from signaling.errors import UnsupportedCodecError

MIME_H264: Final[str] = "video/H264"
MIME_VP8: Final[str] = "video/VP8"

# RTP clock rate of both video codecs.
VIDEO_CLOCK_RATE: Final[int] = 90000

_BY_EXTENSION: Final[dict[str, str]] = {
    ".h264": MIME_H264,
    ".mkv": MIME_H264,
    ".vp8": MIME_VP8,
    ".ivf": MIME_VP8,
}


def codec_for_path(path: Path | str) -> str:
    """Select the video codec from the media file extension."""

    ext = Path(path).suffix.lower()
    try:
        return _BY_EXTENSION[ext]
    except KeyError:
        raise UnsupportedCodecError(
            f"Unknown codec {ext or '<none>'}: file extension must be either mkv/h264 or vp8/ivf"
        ) from None
