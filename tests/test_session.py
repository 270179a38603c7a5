from __future__ import annotations

import asyncio

import pytest

from conftest import REMOTE_ANSWER_SDP, FakeConnection, FakeEngine, make_candidate
from signaling.errors import (
    CallRejectedError,
    CallStoppedError,
    CandidateApplyError,
    ConnectionClosedError,
    LocalDescriptionError,
    MediaHandoffError,
    PeerConnectionFailedError,
    RegistrationRejectedError,
    RemoteDescriptionError,
    RemoteDescriptionMissingError,
)
from signaling.messages import (
    CallRequest,
    CallResponse,
    IceCandidate,
    IncomingCallRequest,
    IncomingCallResponse,
    RegisterRequest,
    RegisterResponse,
    StartCommunication,
    Stop,
    StopCommunication,
)
from signaling.sdp import parse_sdp
from signaling.session import Session
from signaling.state import CallState

ACCEPTED = RegisterResponse(response="accepted")
CALL_ACCEPTED = CallResponse(response="accepted", sdp_answer=REMOTE_ANSWER_SDP)


def _session(connection: FakeConnection, engine: FakeEngine, role: str = "caller", **kwargs) -> Session:
    kwargs.setdefault("fatal_policy", "raise")
    return Session(
        role=role,
        user="test1" if role == "caller" else "test2",
        peer="test2" if role == "caller" else "test1",
        connection=connection,
        engine=engine,
        **kwargs,
    )


def run_session(frames, engine: FakeEngine, role: str = "caller", **kwargs):
    """Run one session against scripted frames; returns (session, connection, result)."""

    async def scenario():
        connection = FakeConnection(frames)
        session = _session(connection, engine, role, **kwargs)
        try:
            result = await asyncio.wait_for(session.run(asyncio.Event()), timeout=5)
        except Exception as exc:
            result = exc
        return session, connection, result

    return asyncio.run(scenario())


async def _wait_for_state(session: Session, state: CallState) -> None:
    for _ in range(200):
        if session.state.state is state:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"session never reached {state}")


def test_caller_registers_and_sends_rewritten_offer(engine: FakeEngine) -> None:
    session, connection, result = run_session(
        [ACCEPTED, IncomingCallRequest(from_="someone"), CALL_ACCEPTED, StopCommunication()], engine
    )

    assert result is CallState.TERMINATED
    assert session.state.history == [
        CallState.IDLE,
        CallState.NEGOTIATING,
        CallState.ACTIVE,
        CallState.TERMINATED,
    ]
    assert session.state.reason == "remote hangup"

    register, call = connection.sent
    assert register == RegisterRequest(name="test1")
    assert isinstance(call, CallRequest)
    assert (call.from_, call.to) == ("test1", "test2")
    assert parse_sdp(call.sdp_offer).media[0].profile == "RTP/AVP"

    assert engine.calls[:3] == ["add_send_track", "create_local_offer", "wait_gathering_complete"]
    assert engine.remote is not None and engine.remote.kind == "answer"
    assert engine.remote.sdp == REMOTE_ANSWER_SDP
    assert engine.closed and connection.closed


def test_callee_skips_malformed_incoming_call_and_stays_idle(engine: FakeEngine) -> None:
    async def scenario():
        connection = FakeConnection([ACCEPTED, {"id": "incomingCall"}])
        session = _session(connection, engine, role="callee")
        task = asyncio.create_task(session.run(asyncio.Event()))

        await asyncio.sleep(0.05)
        assert session.state.state is CallState.IDLE
        assert connection.sent == [RegisterRequest(name="test2")]
        assert "create_local_offer" not in engine.calls

        connection.push(IncomingCallRequest(from_="test1"))
        connection.push(StartCommunication(sdp_answer=REMOTE_ANSWER_SDP))
        connection.push(StopCommunication())
        return session, connection, await asyncio.wait_for(task, timeout=5)

    session, connection, result = asyncio.run(scenario())

    assert result is CallState.TERMINATED
    assert session.state.history == [
        CallState.IDLE,
        CallState.NEGOTIATING,
        CallState.ACTIVE,
        CallState.TERMINATED,
    ]
    response = connection.sent[1]
    assert isinstance(response, IncomingCallResponse)
    assert (response.from_, response.call_response) == ("test2", "accept")
    assert "RTP/AVP" in response.sdp_offer
    assert engine.calls[0] == "add_receive_transceiver"
    assert session.handoff is not None and session.handoff.role == "callee"


def test_early_candidates_are_cached_then_flushed_before_active() -> None:
    observed: list[CallState] = []

    class ObservingEngine(FakeEngine):
        async def add_candidate(self, candidate):
            observed.append(session_ref[0].state.state)
            await super().add_candidate(candidate)

    session_ref: list[Session] = []
    engine = ObservingEngine()

    async def scenario():
        connection = FakeConnection(
            [
                ACCEPTED,
                IceCandidate(candidate=make_candidate(1)),
                IceCandidate(candidate=make_candidate(2)),
                CALL_ACCEPTED,
                StopCommunication(),
            ]
        )
        session = _session(connection, engine)
        session_ref.append(session)
        return session, await asyncio.wait_for(session.run(asyncio.Event()), timeout=5)

    session, result = asyncio.run(scenario())

    assert result is CallState.TERMINATED
    assert engine.applied == [make_candidate(1), make_candidate(2)]
    assert engine.calls.index("set_remote_description") < engine.calls.index("add_candidate")
    assert observed == [CallState.NEGOTIATING, CallState.NEGOTIATING]
    assert session.cache.flushed and len(session.cache) == 0


def test_registration_rejected_terminates_without_further_messages(engine: FakeEngine) -> None:
    session, connection, result = run_session([RegisterResponse(response="rejected", message="taken")], engine)

    assert isinstance(result, RegistrationRejectedError)
    assert "taken" in str(result)
    assert session.state.history == [CallState.IDLE, CallState.TERMINATED]
    assert connection.sent == [RegisterRequest(name="test1")]
    assert "create_local_offer" not in engine.calls


def test_registration_rejected_exits_process_by_default(engine: FakeEngine) -> None:
    async def scenario():
        connection = FakeConnection([RegisterResponse(response="rejected")])
        session = _session(connection, engine, fatal_policy="exit")
        await session.run(asyncio.Event())

    with pytest.raises(SystemExit) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.code == 1


def test_call_rejected(engine: FakeEngine) -> None:
    session, connection, result = run_session(
        [ACCEPTED, CallResponse(response="rejected", message="user declined")], engine
    )

    assert isinstance(result, CallRejectedError)
    assert "user declined" in str(result)
    assert session.state.history == [CallState.IDLE, CallState.NEGOTIATING, CallState.TERMINATED]
    assert len(connection.sent) == 2
    assert engine.remote is None


def test_accepted_call_without_answer_is_fatal(engine: FakeEngine) -> None:
    _, _, result = run_session([ACCEPTED, CallResponse(response="accepted")], engine)
    assert isinstance(result, RemoteDescriptionMissingError)


def test_connection_closed_during_negotiation(engine: FakeEngine) -> None:
    session, _, result = run_session([ACCEPTED, None], engine)

    assert isinstance(result, ConnectionClosedError)
    assert session.state.state is CallState.TERMINATED


def test_stop_communication_during_negotiation(engine: FakeEngine) -> None:
    _, _, result = run_session([ACCEPTED, StopCommunication()], engine)
    assert isinstance(result, CallStoppedError)


def test_remote_description_failure_is_fatal(engine: FakeEngine) -> None:
    engine.fail_remote = True
    _, _, result = run_session([ACCEPTED, CALL_ACCEPTED], engine)
    assert isinstance(result, RemoteDescriptionError)


def test_candidate_apply_failure_is_fatal() -> None:
    class RefusingEngine(FakeEngine):
        async def add_candidate(self, candidate):
            raise ValueError("no transceiver for mid")

    _, _, result = run_session(
        [ACCEPTED, IceCandidate(candidate=make_candidate(1)), CALL_ACCEPTED], RefusingEngine()
    )
    assert isinstance(result, CandidateApplyError)


def test_remote_description_can_be_left_unapplied(engine: FakeEngine) -> None:
    session, _, result = run_session(
        [ACCEPTED, IceCandidate(candidate=make_candidate(1)), CALL_ACCEPTED, StopCommunication()],
        engine,
        apply_remote_description=False,
    )

    assert result is CallState.TERMINATED
    assert "set_remote_description" not in engine.calls
    assert engine.applied == []
    assert not session.cache.flushed


def test_local_shutdown_hands_off_media_and_hangs_up(engine: FakeEngine) -> None:
    handoffs = []

    async def scenario():
        shutdown = asyncio.Event()

        async def media(call) -> None:
            handoffs.append(call)
            shutdown.set()
            await asyncio.Event().wait()

        connection = FakeConnection([ACCEPTED, CALL_ACCEPTED])
        session = _session(connection, engine, media=media)
        result = await asyncio.wait_for(session.run(shutdown), timeout=5)
        return session, connection, result

    session, connection, result = asyncio.run(scenario())

    assert result is CallState.TERMINATED
    assert session.state.reason == "local hangup"
    assert connection.sent[-1] == Stop()
    assert [m.id for m in connection.sent] == ["register", "call", "stop"]

    (call,) = handoffs
    assert call.role == "caller"
    assert call.remote.sdp == REMOTE_ANSWER_SDP
    assert "RTP/AVP" in call.local.sdp


def test_media_failure_ends_session(engine: FakeEngine) -> None:
    async def media(call) -> None:
        raise OSError("address in use")

    _, _, result = run_session([ACCEPTED, CALL_ACCEPTED], engine, media=media)
    assert isinstance(result, MediaHandoffError)
    assert "address in use" in str(result)


def test_peer_connection_failure_during_call_is_fatal(engine: FakeEngine) -> None:
    async def scenario():
        connection = FakeConnection([ACCEPTED, CALL_ACCEPTED])
        session = _session(connection, engine)
        task = asyncio.create_task(session.run(asyncio.Event()))
        await _wait_for_state(session, CallState.ACTIVE)
        session.fatal(PeerConnectionFailedError("ICE connection failed"))
        with pytest.raises(PeerConnectionFailedError):
            await asyncio.wait_for(task, timeout=5)
        return session

    session = asyncio.run(scenario())
    assert session.state.history[-1] is CallState.TERMINATED


def test_engine_failure_while_creating_offer_is_typed() -> None:
    class BrokenEngine(FakeEngine):
        async def create_local_offer(self):
            raise RuntimeError("no usable network interface")

    session, connection, result = run_session([ACCEPTED], BrokenEngine())

    assert isinstance(result, LocalDescriptionError)
    assert "no usable network interface" in str(result)
    assert session.state.history == [CallState.IDLE, CallState.TERMINATED]
    assert connection.sent == [RegisterRequest(name="test1")]
