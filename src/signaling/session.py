from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Literal

from signaling.candidates import CandidateCache
from signaling.engine import PeerEngine
from signaling.errors import ConnectionClosedError, MediaHandoffError, SignalingError
from signaling.messages import IceCandidate, Stop, StopCommunication
from signaling.negotiator import CallHandoff, CallNegotiator, Role
from signaling.pumps import Connection, Inbox, InboxItem, Outbox, inbound_pump, outbound_pump
from signaling.state import CallState, CallStateMachine

LOGGER = logging.getLogger(__name__)

MediaHandoff = Callable[[CallHandoff], Awaitable[None]]
FatalPolicy = Literal["exit", "raise"]


class Session:
    """One call: state, candidate cache, engine, connection and both pumps.

    ``run`` negotiates, hands the call to the media engine and then stays up
    until the shutdown event is set or the peer hangs up. Fatal errors either
    exit the process (``fatal_policy="exit"``) or propagate as the typed
    ``SignalingError`` (``fatal_policy="raise"``).
    """

    def __init__(
        self,
        *,
        role: Role,
        user: str,
        peer: str,
        connection: Connection,
        engine: PeerEngine,
        media: MediaHandoff | None = None,
        ice_address: str | None = None,
        apply_remote_description: bool = True,
        fatal_policy: FatalPolicy = "exit",
    ) -> None:
        self.role = role
        self.state = CallStateMachine()
        self.cache = CandidateCache()
        self.handoff: CallHandoff | None = None
        self._connection = connection
        self._engine = engine
        self._media = media
        self._fatal_policy = fatal_policy
        self._inbox: Inbox = asyncio.Queue()
        self._outbox: Outbox = asyncio.Queue()
        self._negotiator = CallNegotiator(
            user=user,
            peer=peer,
            engine=engine,
            cache=self.cache,
            state=self.state,
            inbox=self._inbox,
            outbox=self._outbox,
            ice_address=ice_address,
            apply_remote_description=apply_remote_description,
        )

    def fatal(self, exc: SignalingError) -> None:
        """Report a fatal condition from outside the handshake (engine callbacks)."""

        self._inbox.put_nowait(exc)

    async def run(self, shutdown: asyncio.Event) -> CallState:
        reader = asyncio.create_task(inbound_pump(self._connection, self.cache, self._inbox))
        writer = asyncio.create_task(outbound_pump(self._outbox, self._connection, self._inbox))
        try:
            self.handoff = await self._negotiator.run(self.role)
            # The plain RTP path reuses the ports the engine gathered on.
            await self._engine.close()
            await self._run_active(shutdown)
        except SignalingError as exc:
            self.state.terminate(str(exc))
            await self._teardown(reader, writer)
            if self._fatal_policy == "raise":
                raise
            LOGGER.critical("%s: %s", type(exc).__name__, exc)
            raise SystemExit(1) from exc
        except BaseException:
            self.state.terminate("aborted")
            await self._teardown(reader, writer)
            raise

        self.state.terminate(self.state.reason)
        await self._teardown(reader, writer)
        return self.state.state

    async def _run_active(self, shutdown: asyncio.Event) -> None:
        assert self.handoff is not None
        media_task = asyncio.create_task(self._media(self.handoff)) if self._media else None
        shutdown_task = asyncio.create_task(shutdown.wait())
        try:
            while True:
                inbox_task = asyncio.create_task(self._inbox.get())
                waiters = {inbox_task, shutdown_task}
                if media_task is not None and not media_task.done():
                    waiters.add(media_task)
                done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

                if inbox_task in done:
                    if self._on_call_message(inbox_task.result()):
                        return
                else:
                    inbox_task.cancel()

                if shutdown_task in done:
                    LOGGER.info("shutting down, hanging up")
                    self.state.reason = "local hangup"
                    await self._outbox.put(Stop())
                    return

                if media_task is not None and media_task in done:
                    self._check_media(media_task)
        finally:
            shutdown_task.cancel()
            if media_task is not None and not media_task.done():
                media_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await media_task

    def _on_call_message(self, item: InboxItem) -> bool:
        """Handle one inbox item while the call is up; True ends the call."""

        if item is None:
            raise ConnectionClosedError("signaling connection closed during call")
        if isinstance(item, SignalingError):
            raise item
        if isinstance(item, StopCommunication):
            LOGGER.info("call stopped by peer")
            self.state.reason = "remote hangup"
            return True
        if isinstance(item, IceCandidate):
            LOGGER.info("Ignoring remote ICE candidate after handoff: %s", item.candidate.candidate)
        else:
            LOGGER.info("Ignoring unexpected %s message during call", item.id)
        return False

    @staticmethod
    def _check_media(media_task: asyncio.Task) -> None:
        if media_task.cancelled():
            return
        exc = media_task.exception()
        if exc is None:
            LOGGER.info("media handoff finished")
            return
        if isinstance(exc, SignalingError):
            raise exc
        raise MediaHandoffError(str(exc)) from exc

    async def _teardown(self, reader: asyncio.Task, writer: asyncio.Task) -> None:
        # Let the writer drain what is already queued, e.g. the final stop.
        await self._outbox.put(None)
        try:
            await asyncio.wait_for(writer, timeout=1.0)
        except asyncio.TimeoutError:
            LOGGER.warning("outbound queue not drained before close")

        reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reader

        try:
            await self._engine.close()
        except Exception:
            LOGGER.exception("Failed to close peer connection")
        try:
            await self._connection.close()
        except Exception:
            LOGGER.exception("Failed to close signaling connection")
