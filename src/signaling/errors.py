"""Signaling error taxonomy.

Only ``DecodeError`` is handled where it is raised (log and skip the frame).
Every other family ends the session; ``Session`` decides whether that means
exiting the process or propagating the error to the caller.
"""

from __future__ import annotations


class SignalingError(Exception):
    default_detail: str = "Signaling error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


# Transport errors: fatal.


class TransportError(SignalingError):
    default_detail = "Signaling transport failed."


class ConnectError(TransportError):
    default_detail = "Could not connect to the signaling server."


class SendError(TransportError):
    default_detail = "Could not send a signaling message."


class ConnectionClosedError(TransportError):
    default_detail = "Signaling connection closed."


class PeerConnectionFailedError(TransportError):
    default_detail = "Peer connection disconnected or failed."


# Decode errors: non-fatal.


class DecodeError(SignalingError):
    default_detail = "Malformed signaling message."

    def __init__(self, field: str, detail: str | None = None) -> None:
        super().__init__(f"{field}: {detail or self.default_detail}")
        self.field = field


# Negotiation errors: fatal.


class NegotiationError(SignalingError):
    default_detail = "Call negotiation failed."


class RegistrationRejectedError(NegotiationError):
    default_detail = "Registration rejected."


class CallRejectedError(NegotiationError):
    default_detail = "Call rejected."


class CallStoppedError(NegotiationError):
    default_detail = "Call stopped by the remote side."


class RemoteDescriptionMissingError(NegotiationError):
    default_detail = "Remote session description missing."


# Engine-integrity errors: fatal, indicate a defect rather than a network condition.


class EngineIntegrityError(SignalingError):
    default_detail = "Engine integrity error."


class CandidateApplyError(EngineIntegrityError):
    default_detail = "Could not apply remote ICE candidate."


class CacheAlreadyFlushedError(EngineIntegrityError):
    default_detail = "Candidate cache was already flushed."


class SdpParseError(EngineIntegrityError):
    default_detail = "Cannot parse SDP."


class LocalDescriptionError(EngineIntegrityError):
    default_detail = "Cannot create local session description."


class RemoteDescriptionError(EngineIntegrityError):
    default_detail = "Cannot set remote session description."


class StateTransitionError(EngineIntegrityError):
    default_detail = "Invalid call state transition."


class MediaHandoffError(EngineIntegrityError):
    default_detail = "Media handoff failed."


# Bootstrap configuration errors.


class ConfigError(SignalingError):
    default_detail = "Invalid configuration."


class UnsupportedCodecError(ConfigError):
    default_detail = "File extension must be either mkv/h264 or vp8/ivf."
