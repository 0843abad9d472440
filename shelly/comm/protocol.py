"""Packet encoding: a type byte, a big-endian sequence number and a msgpack payload."""

from __future__ import annotations

import struct
from collections.abc import Mapping, Sequence
from dataclasses import astuple
from typing import Any

import msgpack
from msgpack.exceptions import OutOfData, UnpackException

from shelly.comm.types import (
    DecodeError,
    EncodeError,
    MsgType,
    RequestPayload,
    ResponsePayload,
)

HEADER_SIZE = 5
_HEADER = struct.Struct(">BI")


def encode_packet(msg_type: MsgType, seq: int, payload: Any = None) -> bytes:
    """Encode a packet; the payload dataclass is written as a msgpack array of its fields."""
    try:
        header = _HEADER.pack(int(msg_type), seq)
    except struct.error as exc:
        raise EncodeError(str(exc)) from exc
    if payload is None:
        return header
    try:
        body = msgpack.packb(list(astuple(payload)), use_bin_type=True)
    except (TypeError, ValueError, OverflowError) as exc:
        raise EncodeError(str(exc)) from exc
    return header + body


def decode_header(data: bytes) -> tuple[MsgType, int]:
    """Return the message type and sequence number of a packet."""
    if len(data) < HEADER_SIZE:
        raise DecodeError("Packet too short")
    type_byte, seq = _HEADER.unpack(bytes(data[:HEADER_SIZE]))
    msg_type = MsgType.from_byte(type_byte)
    if msg_type is None:
        raise DecodeError(f"Unknown msg type: {type_byte}")
    return msg_type, seq


def _unpack_one(data: bytes) -> Any:
    unpacker = msgpack.Unpacker(raw=False)
    unpacker.feed(bytes(data))
    try:
        return unpacker.unpack()
    except OutOfData as exc:
        raise DecodeError("unexpected end of payload") from exc
    except (UnpackException, ValueError) as exc:
        raise DecodeError(str(exc)) from exc


def _fields(value: Any, names: Sequence[str]) -> list[Any]:
    if isinstance(value, (list, tuple)):
        if len(value) != len(names):
            raise DecodeError(f"invalid length {len(value)}, expected {len(names)}")
        return list(value)
    if isinstance(value, Mapping):
        missing = [name for name in names if name not in value]
        if missing:
            raise DecodeError(f"missing field '{missing[0]}'")
        return [value[name] for name in names]
    raise DecodeError("expected an array or map")


def _check(value: Any, kind: type, name: str) -> Any:
    if not isinstance(value, kind):
        raise DecodeError(f"field '{name}' has the wrong type")
    return value


def decode_request_payload(data: bytes) -> RequestPayload:
    (content,) = _fields(_unpack_one(data), ("content",))
    return RequestPayload(content=_check(content, str, "content"))


def decode_response_payload(data: bytes) -> ResponsePayload:
    content, is_error = _fields(_unpack_one(data), ("content", "is_error"))
    return ResponsePayload(
        content=_check(content, str, "content"),
        is_error=_check(is_error, bool, "is_error"),
    )


def encode_request_ack(seq: int) -> bytes:
    """Encode a REQUEST_ACK, which carries no payload."""
    return encode_packet(MsgType.REQUEST_ACK, seq)


def encode_response(seq: int, payload: ResponsePayload) -> bytes:
    return encode_packet(MsgType.RESPONSE, seq, payload)