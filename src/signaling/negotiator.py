from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, TypeVar

from signaling.candidates import CandidateCache
from signaling.engine import PeerEngine
from signaling.errors import (
    CallRejectedError,
    CallStoppedError,
    ConnectionClosedError,
    LocalDescriptionError,
    RegistrationRejectedError,
    RemoteDescriptionError,
    RemoteDescriptionMissingError,
    SignalingError,
)
from signaling.messages import (
    CallRequest,
    CallResponse,
    IncomingCallRequest,
    IncomingCallResponse,
    Message,
    RegisterRequest,
    RegisterResponse,
    StartCommunication,
    StopCommunication,
)
from signaling.pumps import Inbox, Outbox
from signaling.sdp import SessionDescription, restrict_candidates, rewrite_protocol
from signaling.state import CallState, CallStateMachine

LOGGER = logging.getLogger(__name__)

Role = Literal["caller", "callee"]

M = TypeVar("M", bound=Message)


@dataclass(frozen=True, slots=True)
class CallHandoff:
    """What the media engine needs once both sides accepted."""

    role: Role
    local: SessionDescription
    remote: SessionDescription


class CallNegotiator:
    """Role-specific handshake on top of the inbox/outbox queues.

    This is the only consumer of the inbox and the only producer of the
    outbox. Every failure surfaces as a ``SignalingError``; the caller owns
    the TERMINATED transition.
    """

    def __init__(
        self,
        *,
        user: str,
        peer: str,
        engine: PeerEngine,
        cache: CandidateCache,
        state: CallStateMachine,
        inbox: Inbox,
        outbox: Outbox,
        ice_address: str | None = None,
        apply_remote_description: bool = True,
    ) -> None:
        self._user = user
        self._peer = peer
        self._engine = engine
        self._cache = cache
        self._state = state
        self._inbox = inbox
        self._outbox = outbox
        self._ice_address = ice_address
        self._apply_remote_description = apply_remote_description

    async def run(self, role: Role) -> CallHandoff:
        await self.register()
        if role == "caller":
            return await self.call()
        return await self.answer()

    async def register(self) -> None:
        LOGGER.info("registering user: %s", self._user)
        await self._send(RegisterRequest(name=self._user))

        reply = await self._expect(RegisterResponse)
        if not reply.accepted:
            raise RegistrationRejectedError(
                f"could not register {self._user}: {reply.message or reply.response}"
            )

    async def call(self) -> CallHandoff:
        LOGGER.info("starting call: %s -> %s", self._user, self._peer)
        self._engine.add_send_track()

        offer = await self._local_offer()
        self._state.advance(CallState.NEGOTIATING)
        await self._send(CallRequest(from_=self._user, to=self._peer, sdp_offer=offer.sdp))

        response = await self._expect(CallResponse)
        LOGGER.info("call response: %s", response.response)
        if not response.accepted:
            raise CallRejectedError(f"call rejected with message: {response.message or response.response}")
        if response.sdp_answer is None:
            raise RemoteDescriptionMissingError("callResponse carries no sdpAnswer")

        remote = SessionDescription(kind="answer", sdp=response.sdp_answer)
        await self._establish(remote)
        self._state.advance(CallState.ACTIVE)
        return CallHandoff(role="caller", local=offer, remote=remote)

    async def answer(self) -> CallHandoff:
        self._engine.add_receive_transceiver()

        request = await self._expect(IncomingCallRequest)
        LOGGER.info("new call from: %s", request.from_)

        offer = await self._local_offer()
        self._state.advance(CallState.NEGOTIATING)
        await self._send(IncomingCallResponse(from_=self._user, call_response="accept", sdp_offer=offer.sdp))

        start = await self._expect(StartCommunication)
        LOGGER.info("start communication")

        remote = SessionDescription(kind="answer", sdp=start.sdp_answer)
        await self._establish(remote)
        self._state.advance(CallState.ACTIVE)
        return CallHandoff(role="callee", local=offer, remote=remote)

    async def _local_offer(self) -> SessionDescription:
        try:
            await self._engine.create_local_offer()
            await self._engine.wait_gathering_complete()
            local = self._engine.local_description()
        except SignalingError:
            raise
        except Exception as exc:
            raise LocalDescriptionError(f"cannot create local SDP: {exc}") from exc

        offer = rewrite_protocol(local)
        if self._ice_address:
            offer = restrict_candidates(offer, self._ice_address)
        return offer

    async def _establish(self, remote: SessionDescription) -> None:
        LOGGER.info("Remote session description received")
        if not self._apply_remote_description:
            LOGGER.warning(
                "Remote description not applied; %d cached candidates left pending", len(self._cache)
            )
            return

        try:
            await self._engine.set_remote_description(remote)
        except Exception as exc:
            raise RemoteDescriptionError(f"cannot set remote SDP: {exc}") from exc

        applied = await self._cache.flush(self._engine.add_candidate)
        LOGGER.info("connection setup ready (%d cached candidates applied)", applied)

    async def _send(self, message: Message) -> None:
        await self._outbox.put(message)

    async def _expect(self, kind: type[M]) -> M:
        while True:
            item = await self._inbox.get()
            if item is None:
                raise ConnectionClosedError("signaling connection closed during negotiation")
            if isinstance(item, SignalingError):
                raise item
            if isinstance(item, kind):
                return item
            if isinstance(item, StopCommunication):
                raise CallStoppedError()
            LOGGER.info("waiting for %s, skipping %s", kind.__name__, item.id)
