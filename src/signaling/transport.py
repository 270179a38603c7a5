from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from pathlib import Path

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from signaling.errors import ConnectError, ConnectionClosedError, SendError
from signaling.messages import Message, dump_frame

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TlsPolicy:
    """TLS knobs for controlled lab deployments (self-signed servers, key logging)."""

    insecure: bool = False
    keylog_path: Path | None = None


def build_ssl_context(policy: TlsPolicy) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if policy.insecure:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    if policy.keylog_path is not None:
        LOGGER.warning("Dumping TLS secrets to %s", policy.keylog_path)
        ctx.keylog_filename = str(policy.keylog_path)
    return ctx


class SignalingConnection:
    """One WebSocket to the signaling server; one JSON message per text frame."""

    def __init__(self, ws) -> None:
        self._ws = ws
        self._closed = False

    @classmethod
    async def connect(cls, url: str, tls: TlsPolicy | None = None) -> SignalingConnection:
        kwargs = {}
        if url.startswith("wss://"):
            kwargs["ssl"] = build_ssl_context(tls or TlsPolicy())

        LOGGER.info("connecting to %s", url)
        try:
            ws = await websockets.connect(url, **kwargs)
        except (OSError, WebSocketException, TimeoutError) as exc:
            raise ConnectError(f"cannot connect to {url}: {exc}") from exc
        return cls(ws)

    async def send(self, message: Message) -> None:
        frame = dump_frame(message)
        try:
            await self._ws.send(frame)
        except (OSError, WebSocketException) as exc:
            raise SendError(f"cannot send {message.id}: {exc}") from exc
        LOGGER.info("send: %s", frame)

    async def receive_raw(self) -> str | bytes:
        try:
            frame = await self._ws.recv()
        except ConnectionClosed as exc:
            raise ConnectionClosedError(f"signaling connection closed: {exc}") from exc
        LOGGER.debug("recv: %s", frame)
        return frame

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._ws.close()
