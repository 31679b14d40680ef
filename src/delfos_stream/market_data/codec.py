"""Decoding of raw stream frames into typed messages."""

from __future__ import annotations

import json
from typing import Union

from pydantic import TypeAdapter, ValidationError

from delfos_stream.market_data.exceptions import DecodeError
from delfos_stream.market_data.models import StatusUpdate, StreamMessage, TickerUpdate

_MESSAGE_ADAPTER: TypeAdapter = TypeAdapter(StreamMessage)


def decode(raw_frame: Union[str, bytes]) -> Union[TickerUpdate, StatusUpdate, DecodeError]:
    """Turn one frame into a stream message, or a ``DecodeError`` describing why not.

    This never raises: invalid JSON, a non-object payload, a missing or
    unknown ``type`` tag and wrongly typed fields all come back as a
    ``DecodeError`` value.
    """

    if isinstance(raw_frame, (bytes, bytearray)):
        try:
            raw_frame = bytes(raw_frame).decode("utf-8")
        except UnicodeDecodeError as exc:
            return DecodeError(f"frame is not valid UTF-8 ({exc.reason})", raw_frame)

    if not isinstance(raw_frame, str):
        return DecodeError(f"unsupported frame type {type(raw_frame).__name__}", raw_frame)

    try:
        data = json.loads(raw_frame)
    except ValueError as exc:
        return DecodeError(f"invalid JSON ({exc})", raw_frame)

    if not isinstance(data, dict):
        return DecodeError(f"expected a JSON object, got {type(data).__name__}", raw_frame)

    tag = data.get("type")
    if tag is None:
        return DecodeError("missing 'type' tag", raw_frame)

    try:
        return _MESSAGE_ADAPTER.validate_python(data)
    except ValidationError as exc:
        errors = exc.errors()
        if errors and errors[0].get("type") == "union_tag_invalid":
            return DecodeError(f"unknown message type {tag!r}", raw_frame)
        fields = ", ".join(
            ".".join(str(part) for part in error.get("loc", ())[1:]) or "<root>"
            for error in errors
        )
        return DecodeError(f"invalid {tag!r} message fields: {fields}", raw_frame)


def encode(message: Union[TickerUpdate, StatusUpdate]) -> str:
    """Serialise a message back into its wire JSON."""

    return json.dumps(message.to_wire())


__all__ = ["decode", "encode"]
