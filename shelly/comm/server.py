"""UDP server: acknowledges client requests, hands them to the main loop and returns replies."""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from dataclasses import dataclass
from typing import Any

from shelly.comm.protocol import (
    HEADER_SIZE,
    decode_header,
    decode_request_payload,
    encode_request_ack,
    encode_response,
)
from shelly.comm.types import (
    ChannelClosed,
    CommConfig,
    CommError,
    CommInitError,
    DecodeError,
    MsgType,
    PayloadTooLarge,
    RecvError,
    ResponsePayload,
    SendError,
    UserRequest,
    UserResponse,
)

log = logging.getLogger(__name__)

RESPONSE_TIMEOUT_SECS = 300
CLEANUP_INTERVAL_SECS = 30
QUEUE_CAPACITY = 1024

Address = tuple[Any, ...]


@dataclass
class _DedupEntry:
    """When a sequence number was seen, and the response sent for it, if any."""

    instant: float
    cached_response: bytes | None = None


@dataclass
class _Closed:
    """Marks the end of the datagram stream."""

    error: Exception | None


class _Receiver(asyncio.DatagramProtocol):
    """Queues incoming datagrams for the server loop."""

    def __init__(self, inbox: asyncio.Queue[tuple[bytes, Address] | _Closed]) -> None:
        self._inbox = inbox

    def datagram_received(self, data: bytes, addr: Address) -> None:
        self._inbox.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        log.warning("Recv error: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        self._inbox.put_nowait(_Closed(exc))


class Comm:
    """Serves clients over UDP and forwards their requests to the main loop."""

    def __init__(
        self,
        transport: asyncio.DatagramTransport,
        inbox: asyncio.Queue[tuple[bytes, Address] | _Closed],
        config: CommConfig,
        requests: asyncio.Queue[UserRequest],
    ) -> None:
        self._transport = transport
        self._inbox = inbox
        self.config = config
        # The main loop owns the queue; once it is gone, requests cannot be delivered.
        self._requests = weakref.ref(requests)
        self._dedup: dict[Address, dict[int, _DedupEntry]] = {}
        self.response_timeout: float = RESPONSE_TIMEOUT_SECS

    @classmethod
    async def create(
        cls, config: CommConfig | None = None
    ) -> tuple[Comm, asyncio.Queue[UserRequest]]:
        """Bind the UDP socket; returns the server and the queue the main loop reads from."""
        config = config if config is not None else CommConfig()
        bind = config.bind_addr()
        loop = asyncio.get_running_loop()
        inbox: asyncio.Queue[tuple[bytes, Address] | _Closed] = asyncio.Queue()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _Receiver(inbox), local_addr=bind
            )
        except OSError as exc:
            raise CommInitError(str(exc)) from exc

        requests: asyncio.Queue[UserRequest] = asyncio.Queue(maxsize=QUEUE_CAPACITY)
        comm = cls(transport, inbox, config, requests)
        log.info("Comm listening on %s:%s", *comm.local_addr())
        return comm, requests

    def local_addr(self) -> tuple[str, int]:
        """The (host, port) the socket is bound to."""
        sockname = self._transport.get_extra_info("sockname")
        return (sockname[0], sockname[1])

    def close(self) -> None:
        """Close the socket; a running server then returns."""
        self._transport.close()

    async def run(self) -> None:
        """Serve packets until the socket is closed."""
        cleanup = asyncio.create_task(self._cleanup_periodically())
        try:
            while True:
                item = await self._inbox.get()
                if isinstance(item, _Closed):
                    if item.error is not None:
                        log.error("Recv error: %s", item.error)
                        raise RecvError(str(item.error))
                    return
                data, addr = item
                try:
                    await self.handle_packet(data, addr)
                except CommError as exc:
                    log.warning("Failed to handle packet from %s: %s", addr, exc)
        finally:
            cleanup.cancel()

    async def _cleanup_periodically(self) -> None:
        while True:
            self.cleanup_dedup()
            await asyncio.sleep(CLEANUP_INTERVAL_SECS)

    def _send(self, data: bytes, addr: Address) -> None:
        try:
            self._transport.sendto(data, addr)
        except OSError as exc:
            raise SendError(str(exc)) from exc

    async def handle_packet(self, packet: bytes, client_addr: Address) -> None:
        """Validate one datagram and dispatch it by type."""
        if len(packet) < HEADER_SIZE:
            log.warning("Truncated packet from %s: only %d bytes", client_addr, len(packet))
            raise DecodeError("Packet too short")

        payload_len = len(packet) - HEADER_SIZE
        if payload_len > self.config.max_payload_bytes:
            log.warning("Payload too large from %s: %d bytes", client_addr, payload_len)
            raise PayloadTooLarge(payload_len)

        msg_type, seq = decode_header(packet)
        log.debug("Received %d from %s seq=%d", int(msg_type), client_addr, seq)

        if msg_type is MsgType.REQUEST:
            await self._handle_request(packet[HEADER_SIZE:], seq, client_addr)
        else:
            log.warning("Unexpected message type: %d from %s", int(msg_type), client_addr)

    async def _handle_request(self, payload: bytes, seq: int, client_addr: Address) -> None:
        entries = self._dedup.setdefault(client_addr, {})

        if entries and len(entries) >= self.config.dedup_capacity:
            oldest = min(entries, key=lambda key: entries[key].instant)
            del entries[oldest]
            log.debug("Dedup table at capacity, removed oldest entry seq=%d", oldest)

        existing = entries.get(seq)
        if existing is not None:
            if existing.cached_response is not None:
                log.info(
                    "Duplicate request seq=%d from %s, resending cached response", seq, client_addr
                )
                self._send(existing.cached_response, client_addr)
            else:
                log.debug(
                    "Duplicate request seq=%d from %s, no cached response yet, sending ACK",
                    seq,
                    client_addr,
                )
                self._send(encode_request_ack(seq), client_addr)
            return

        # Record the request before processing so duplicates arriving meanwhile are recognised.
        entries[seq] = _DedupEntry(instant=time.monotonic())

        request_payload = decode_request_payload(payload)
        log.info(
            "New request seq=%d from %s content_len=%d",
            seq,
            client_addr,
            len(request_payload.content.encode("utf-8")),
        )

        self._send(encode_request_ack(seq), client_addr)
        log.debug("Sent REQUEST_ACK seq=%d to %s", seq, client_addr)

        requests = self._requests()
        if requests is None:
            log.error("Failed to send request to main loop: receiver is gone")
            error = ResponsePayload(content="Internal server error", is_error=True)
            self._send(encode_response(seq, error), client_addr)
            raise ChannelClosed()

        reply: asyncio.Future[UserResponse] = asyncio.get_running_loop().create_future()
        await requests.put(
            UserRequest(content=request_payload.content, reply=reply, source_addr=client_addr)
        )
        del requests

        try:
            done, _ = await asyncio.wait({reply}, timeout=self.response_timeout)
        except asyncio.CancelledError:
            reply.cancel()
            raise

        if not done:
            reply.cancel()
            log.warning("Timeout waiting for response for seq=%d", seq)
            error = ResponsePayload(content="Response timeout", is_error=True)
            self._send(encode_response(seq, error), client_addr)
            return

        if reply.cancelled() or reply.exception() is not None:
            log.warning("Channel closed without response for seq=%d", seq)
            error = ResponsePayload(content="No response from handler", is_error=True)
            self._send(encode_response(seq, error), client_addr)
            return

        response = reply.result()
        response_bytes = encode_response(
            seq, ResponsePayload(content=response.content, is_error=response.is_error)
        )
        self._send(response_bytes, client_addr)

        client_entries = self._dedup.get(client_addr)
        if client_entries is not None:
            client_entries[seq] = _DedupEntry(
                instant=time.monotonic(), cached_response=response_bytes
            )
        log.debug("Sent RESPONSE seq=%d to %s", seq, client_addr)

    def cleanup_dedup(self) -> int:
        """Drop expired dedup entries; returns the number of clients still tracked."""
        ttl = self.config.dedup_ttl_secs
        now = time.monotonic()
        for entries in self._dedup.values():
            expired = [seq for seq, entry in entries.items() if now - entry.instant >= ttl]
            for seq in expired:
                del entries[seq]
        self._dedup = {addr: entries for addr, entries in self._dedup.items() if entries}
        log.debug("Dedup table cleaned, %d clients tracked", len(self._dedup))
        return len(self._dedup)