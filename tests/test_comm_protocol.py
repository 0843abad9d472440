import msgpack
import pytest

from shelly.comm.protocol import (
    decode_header,
    decode_request_payload,
    decode_response_payload,
    encode_packet,
    encode_request_ack,
    encode_response,
)
from shelly.comm.types import (
    DecodeError,
    EncodeError,
    MsgType,
    RequestPayload,
    ResponsePayload,
)


def test_request_encode_decode():
    packet = encode_packet(MsgType.REQUEST, 1, RequestPayload("hello"))
    msg_type, seq = decode_header(packet)
    assert msg_type is MsgType.REQUEST
    assert seq == 1
    assert decode_request_payload(packet[5:]).content == "hello"


def test_request_ack_no_payload():
    packet = encode_request_ack(42)
    assert len(packet) == 5
    msg_type, seq = decode_header(packet)
    assert msg_type is MsgType.REQUEST_ACK
    assert seq == 42
    assert packet == bytes([0x02, 0x00, 0x00, 0x00, 0x2A])


def test_response_encode_decode():
    packet = encode_response(1, ResponsePayload("result", False))
    msg_type, seq = decode_header(packet)
    assert msg_type is MsgType.RESPONSE
    assert seq == 1
    decoded = decode_response_payload(packet[5:])
    assert decoded.content == "result"
    assert decoded.is_error is False


def test_response_error():
    packet = encode_response(1, ResponsePayload("command not found", True))
    decoded = decode_response_payload(packet[5:])
    assert decoded.is_error is True
    assert decoded.content == "command not found"


def test_empty_content_request():
    packet = encode_packet(MsgType.REQUEST, 1, RequestPayload(""))
    assert decode_request_payload(packet[5:]).content == ""


def test_large_payload():
    content = "x" * 60000
    packet = encode_packet(MsgType.REQUEST, 1, RequestPayload(content))
    decoded = decode_request_payload(packet[5:])
    assert len(decoded.content) == 60000
    assert decoded.content == content


def test_invalid_msg_type():
    packet = bytes([0xFF]) + (1).to_bytes(4, "big")
    with pytest.raises(DecodeError):
        decode_header(packet)


def test_truncated_packet():
    with pytest.raises(DecodeError):
        decode_header(bytes([0x01, 0x00, 0x00]))
    assert decode_header(bytes([0x01, 0x00, 0x00, 0x00, 0x01])) == (MsgType.REQUEST, 1)


def test_seq_boundary_values():
    assert decode_header(encode_request_ack(0))[1] == 0
    assert decode_header(encode_request_ack(0xFFFFFFFF))[1] == 0xFFFFFFFF
    packet = encode_request_ack(256)
    assert decode_header(packet)[1] == 256
    assert packet[1:5] == bytes([0x00, 0x00, 0x01, 0x00])


@pytest.mark.parametrize("content", ["你好🌮🎉", "line1\nline2\r\nnull\0end"])
def test_special_characters(content):
    packet = encode_packet(MsgType.REQUEST, 1, RequestPayload(content))
    assert decode_request_payload(packet[5:]).content == content


@pytest.mark.parametrize("seq", [-1, 0x1_0000_0000])
def test_seq_out_of_range(seq):
    with pytest.raises(EncodeError):
        encode_request_ack(seq)


def test_payload_is_msgpack_array():
    packet = encode_response(7, ResponsePayload("ok", True))
    assert msgpack.unpackb(packet[5:], raw=False) == ["ok", True]


def test_decode_accepts_map_form():
    data = msgpack.packb({"content": "hi", "is_error": False})
    decoded = decode_response_payload(data)
    assert decoded.content == "hi"
    assert decoded.is_error is False
    assert decode_request_payload(msgpack.packb({"content": "q"})).content == "q"


@pytest.mark.parametrize(
    "data",
    [
        b"",
        msgpack.packb([]),
        msgpack.packb([1]),
        msgpack.packb({"other": "x"}),
        msgpack.packb("plain"),
        b"\xc1",
    ],
)
def test_decode_request_payload_invalid(data):
    with pytest.raises(DecodeError):
        decode_request_payload(data)


@pytest.mark.parametrize(
    "data",
    [msgpack.packb(["x"]), msgpack.packb(["x", "yes"]), msgpack.packb({"content": "x"})],
)
def test_decode_response_payload_invalid(data):
    with pytest.raises(DecodeError):
        decode_response_payload(data)


def test_encode_rejects_non_payload():
    with pytest.raises(EncodeError):
        encode_packet(MsgType.REQUEST, 1, object())