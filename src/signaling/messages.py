"""Wire messages of the one2one call server protocol.

Every frame is a JSON object whose ``id`` field selects the variant. Decoding
validates each field strictly and reports the offending wire field; it never
returns a partially populated message.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from signaling.errors import DecodeError

ACCEPTED = "accepted"


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Candidate(_WireModel):
    """Remote ICE candidate as carried by ``iceCandidate`` messages."""

    candidate: StrictStr
    sdp_mid: StrictStr = Field(alias="sdpMid")
    sdp_mline_index: StrictInt = Field(alias="sdpMLineIndex", ge=0)


class RegisterRequest(_WireModel):
    id: Literal["register"] = "register"
    name: StrictStr


class RegisterResponse(_WireModel):
    id: Literal["registerResponse"] = "registerResponse"
    response: StrictStr
    message: StrictStr | None = None

    @property
    def accepted(self) -> bool:
        return self.response == ACCEPTED


class CallRequest(_WireModel):
    id: Literal["call"] = "call"
    from_: StrictStr = Field(alias="from")
    to: StrictStr
    sdp_offer: StrictStr = Field(alias="sdpOffer")


class CallResponse(_WireModel):
    id: Literal["callResponse"] = "callResponse"
    response: StrictStr
    sdp_answer: StrictStr | None = Field(default=None, alias="sdpAnswer")
    message: StrictStr | None = None

    @property
    def accepted(self) -> bool:
        return self.response == ACCEPTED


class IncomingCallRequest(_WireModel):
    id: Literal["incomingCall"] = "incomingCall"
    from_: StrictStr = Field(alias="from")


class IncomingCallResponse(_WireModel):
    id: Literal["incomingCallResponse"] = "incomingCallResponse"
    from_: StrictStr = Field(alias="from")
    call_response: StrictStr = Field(alias="callResponse")
    sdp_offer: StrictStr = Field(alias="sdpOffer")


class StartCommunication(_WireModel):
    id: Literal["startCommunication"] = "startCommunication"
    sdp_answer: StrictStr = Field(alias="sdpAnswer")


class IceCandidate(_WireModel):
    id: Literal["iceCandidate"] = "iceCandidate"
    candidate: Candidate


class Stop(_WireModel):
    id: Literal["stop"] = "stop"


class StopCommunication(_WireModel):
    id: Literal["stopCommunication"] = "stopCommunication"


Message = Union[
    RegisterRequest,
    RegisterResponse,
    CallRequest,
    CallResponse,
    IncomingCallRequest,
    IncomingCallResponse,
    StartCommunication,
    IceCandidate,
    Stop,
    StopCommunication,
]

MESSAGE_TYPES: dict[str, type[_WireModel]] = {
    model.model_fields["id"].default: model
    for model in (
        RegisterRequest,
        RegisterResponse,
        CallRequest,
        CallResponse,
        IncomingCallRequest,
        IncomingCallResponse,
        StartCommunication,
        IceCandidate,
        Stop,
        StopCommunication,
    )
}


def _error_field(exc: ValidationError) -> tuple[str, str]:
    error = exc.errors()[0]
    loc = ".".join(str(part) for part in error["loc"]) or "payload"
    return loc, error["msg"]


def decode(payload: Any) -> Message:
    """Decode an untyped JSON object into its message variant.

    Raises:
        DecodeError: naming the discriminator or field that failed validation.
    """

    if not isinstance(payload, dict):
        raise DecodeError("payload", f"expected a JSON object, got {type(payload).__name__}")

    if "id" not in payload:
        raise DecodeError("id", "missing message discriminator")
    kind = payload["id"]
    if not isinstance(kind, str):
        raise DecodeError("id", f"discriminator must be a string, got {type(kind).__name__}")

    model = MESSAGE_TYPES.get(kind)
    if model is None:
        raise DecodeError("id", f"unknown message id {kind!r}")

    try:
        # Wire names only; attribute names such as `from_` are not accepted here.
        return model.model_validate(payload, by_alias=True, by_name=False)
    except ValidationError as exc:
        field, msg = _error_field(exc)
        raise DecodeError(field, msg) from exc


def encode(message: Message) -> dict[str, Any]:
    """Serialize a message to its wire object, omitting unset optional fields."""

    return message.model_dump(by_alias=True, exclude_none=True)


def parse_frame(raw: str | bytes) -> Message:
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError("payload", f"invalid JSON: {exc}") from exc
    return decode(payload)


def dump_frame(message: Message) -> str:
    return json.dumps(encode(message))
