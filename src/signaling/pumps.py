"""Background tasks bridging the signaling connection and the negotiator.

The inbox carries decoded messages in arrival order, an error raised by a
collaborator, or ``None`` once the connection is gone. The outbox carries
messages to send, or ``None`` to stop the writer after draining it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Union

from signaling.candidates import CandidateCache
from signaling.errors import ConnectionClosedError, DecodeError, SendError, SignalingError
from signaling.messages import IceCandidate, Message, parse_frame

LOGGER = logging.getLogger(__name__)

InboxItem = Union[Message, SignalingError, None]
Inbox = asyncio.Queue[InboxItem]
Outbox = asyncio.Queue[Optional[Message]]


class Connection(Protocol):
    async def send(self, message: Message) -> None: ...

    async def receive_raw(self) -> str | bytes: ...

    async def close(self) -> None: ...


async def inbound_pump(connection: Connection, cache: CandidateCache, inbox: Inbox) -> None:
    while True:
        try:
            raw = await connection.receive_raw()
        except ConnectionClosedError as exc:
            LOGGER.info("%s", exc)
            await inbox.put(None)
            return

        try:
            message = parse_frame(raw)
        except DecodeError as exc:
            LOGGER.warning("Dropping signaling frame: %s", exc)
            continue

        LOGGER.debug("recv: %s", message.id)

        # Remote candidates wait in the cache until the remote description is
        # set; after the flush they go to the negotiator like other messages.
        if isinstance(message, IceCandidate) and await cache.add(message.candidate):
            continue

        await inbox.put(message)


async def outbound_pump(outbox: Outbox, connection: Connection, inbox: Inbox) -> None:
    while True:
        message = await outbox.get()
        if message is None:
            return
        try:
            await connection.send(message)
        except SendError as exc:
            LOGGER.error("signaling send failed: %s", exc)
            await inbox.put(exc)
            return
