"""Wire message types, payloads, server configuration and errors."""

from __future__ import annotations

import asyncio
import ipaddress
from dataclasses import dataclass
from enum import IntEnum


class MsgType(IntEnum):
    """Packet type byte."""

    REQUEST = 0x01
    REQUEST_ACK = 0x02
    RESPONSE = 0x03

    @classmethod
    def from_byte(cls, value: int) -> MsgType | None:
        """The message type for a byte value, or None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class RequestPayload:
    """Request payload sent by a client."""

    content: str


@dataclass
class ResponsePayload:
    """Response payload sent back to a client."""

    content: str
    is_error: bool


@dataclass
class UserRequest:
    """A request passed from the server to the main loop."""

    content: str
    reply: asyncio.Future[UserResponse]
    source_addr: tuple[str, int]


@dataclass
class UserResponse:
    """A response passed from the main loop back to the server."""

    content: str
    is_error: bool = False

    @classmethod
    def error(cls, content: str) -> UserResponse:
        return cls(content=content, is_error=True)


@dataclass
class CommConfig:
    """UDP server settings."""

    listen_addr: str = "0.0.0.0"
    listen_port: int = 9700
    max_payload_bytes: int = 65536
    recv_buffer_size: int = 65536
    dedup_capacity: int = 256
    dedup_ttl_secs: int = 300

    def bind_addr(self) -> tuple[str, int]:
        """The (host, port) pair to bind to."""
        try:
            ipaddress.ip_address(self.listen_addr)
        except ValueError as exc:
            raise ValueError("Invalid bind address") from exc
        if not 0 <= self.listen_port <= 0xFFFF:
            raise ValueError("Invalid bind address")
        return (self.listen_addr, self.listen_port)


class CommInitError(Exception):
    """The UDP socket could not be bound."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to bind UDP socket: {detail}")
        self.detail = detail


class CommError(Exception):
    """Base class for errors raised while serving clients."""


class RecvError(CommError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to receive packet: {detail}")
        self.detail = detail


class SendError(CommError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to send packet: {detail}")
        self.detail = detail


class DecodeError(CommError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to decode packet: {detail}")
        self.detail = detail


class EncodeError(CommError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Failed to encode packet: {detail}")
        self.detail = detail


class PayloadTooLarge(CommError):
    def __init__(self, size: int) -> None:
        super().__init__(f"Payload too large: {size} bytes")
        self.size = size


class ChannelClosed(CommError):
    def __init__(self) -> None:
        super().__init__("Channel closed")