"""Interactive command-line client for the daemon's UDP protocol."""

from __future__ import annotations

import argparse
import asyncio
import ipaddress
import itertools
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from shelly.comm.protocol import HEADER_SIZE, decode_response_payload, encode_packet
from shelly.comm.types import CommError, DecodeError, MsgType, RequestPayload, ResponsePayload

try:
    import readline
except ImportError:
    readline = None

VERSION = "0.1.0"
DEFAULT_TARGET = "127.0.0.1:9700"
RESPONSE_TIMEOUT_SECS = 120
HISTORY_FILE_NAME = ".shelly_history"

Address = tuple[str, int]


def _parse_target(text: str) -> Address:
    host, sep, port_text = text.rpartition(":")
    if not sep or not port_text.isdigit():
        raise argparse.ArgumentTypeError(f"invalid socket address: {text}")
    bracketed = host.startswith("[") and host.endswith("]")
    if bracketed:
        host = host[1:-1]
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid socket address: {text}") from None
    port = int(port_text)
    if ip.version != (6 if bracketed else 4) or port > 0xFFFF:
        raise argparse.ArgumentTypeError(f"invalid socket address: {text}")
    return (str(ip), port)


def _format_addr(addr: Address) -> str:
    host, port = addr
    if ipaddress.ip_address(host).version == 6:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _default_history_file() -> Path:
    try:
        return Path.home() / HISTORY_FILE_NAME
    except RuntimeError:
        return Path(HISTORY_FILE_NAME)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="shelly-cli", description="Shelly daemon CLI client")
    parser.add_argument(
        "-t",
        "--target",
        type=_parse_target,
        default=DEFAULT_TARGET,
        help="daemon address (e.g. 127.0.0.1:9700)",
    )
    parser.add_argument("--timeout", type=int, default=5, help="ACK timeout in seconds")
    parser.add_argument(
        "-m", "--max-retries", type=int, default=3, help="maximum retry attempts"
    )
    parser.add_argument("--history-file", type=Path, default=None, help="history file path")
    parser.add_argument(
        "--history-size", type=int, default=1000, help="maximum history entries (reserved)"
    )
    return parser.parse_args(argv)


@dataclass
class CliConfig:
    """Client settings."""

    target: Address
    ack_timeout_secs: float
    max_retries: int
    history_file: Path
    history_size: int

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> CliConfig:
        history_file = args.history_file if args.history_file is not None else _default_history_file()
        return cls(
            target=args.target,
            ack_timeout_secs=args.timeout,
            max_retries=args.max_retries,
            history_file=history_file,
            history_size=args.history_size,
        )


class _Endpoint(asyncio.DatagramProtocol):
    def __init__(self, inbox: asyncio.Queue[Any]) -> None:
        self._inbox = inbox

    def datagram_received(self, data: bytes, addr: Any) -> None:
        self._inbox.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        self._inbox.put_nowait(exc)


class Client:
    """Sends requests to the daemon and waits for acknowledgements and replies."""

    def __init__(
        self,
        transport: asyncio.DatagramTransport,
        inbox: asyncio.Queue[Any],
        config: CliConfig,
    ) -> None:
        self._transport = transport
        self._inbox = inbox
        self.config = config
        self.response_timeout: float = RESPONSE_TIMEOUT_SECS
        self._seq = itertools.count(1)

    @classmethod
    async def create(cls, config: CliConfig) -> Client:
        """Bind an ephemeral UDP socket for talking to the configured target."""
        ipv6 = ipaddress.ip_address(config.target[0]).version == 6
        local = ("::", 0) if ipv6 else ("0.0.0.0", 0)
        inbox: asyncio.Queue[Any] = asyncio.Queue()
        transport, _ = await asyncio.get_running_loop().create_datagram_endpoint(
            lambda: _Endpoint(inbox), local_addr=local
        )
        return cls(transport, inbox, config)

    def close(self) -> None:
        self._transport.close()

    async def _receive(self, timeout: float) -> tuple[bytes, Any]:
        item = await asyncio.wait_for(self._inbox.get(), timeout=timeout)
        if isinstance(item, Exception):
            raise item
        return item

    def _from_target(self, addr: Any) -> bool:
        return (addr[0], addr[1]) == self.config.target

    async def send_request(self, content: str) -> ResponsePayload:
        """Send a request, retrying until it is answered or the retries run out."""
        seq = next(self._seq) & 0xFFFFFFFF
        packet = encode_packet(MsgType.REQUEST, seq, RequestPayload(content=content))

        for _ in range(self.config.max_retries):
            self._transport.sendto(packet, self.config.target)
            try:
                acked = await self.wait_for_ack(seq)
            except OSError:
                continue
            if not acked:
                continue
            try:
                return await self.wait_for_response(seq)
            except (OSError, CommError):
                print("[warning] Response timeout, retrying...", file=sys.stderr)
                continue

        raise TimeoutError("shelly not responding")

    async def wait_for_ack(self, expected_seq: int) -> bool:
        """Whether the next packet is the target's REQUEST_ACK for this sequence number."""
        try:
            data, addr = await self._receive(self.config.ack_timeout_secs)
        except TimeoutError:
            return False
        if not self._from_target(addr) or len(data) < HEADER_SIZE:
            return False
        seq = int.from_bytes(data[1:HEADER_SIZE], "big")
        return data[0] == MsgType.REQUEST_ACK and seq == expected_seq

    async def wait_for_response(self, expected_seq: int) -> ResponsePayload:
        """Read the next packet, which must be the RESPONSE for this sequence number."""
        try:
            data, addr = await self._receive(self.response_timeout)
        except TimeoutError:
            raise TimeoutError("Response timeout") from None
        if not self._from_target(addr):
            raise ConnectionError("Unexpected sender")
        if len(data) < HEADER_SIZE:
            raise DecodeError("Packet too short")
        if data[0] != MsgType.RESPONSE:
            raise DecodeError("Not a response packet")
        if int.from_bytes(data[1:HEADER_SIZE], "big") != expected_seq:
            raise DecodeError("Sequence mismatch")
        return decode_response_payload(data[HEADER_SIZE:])


def _load_history(path: Path) -> None:
    if readline is None or not path.exists():
        return
    try:
        readline.read_history_file(str(path))
    except OSError as exc:
        print(f"[warning] Failed to load history: {exc}", file=sys.stderr)


def _save_history(path: Path) -> None:
    if readline is None:
        return
    try:
        readline.write_history_file(str(path))
    except OSError as exc:
        print(f"[warning] Failed to save history: {exc}", file=sys.stderr)


def run_client(config: CliConfig) -> int:
    """Read lines from the terminal and send each one to the daemon."""
    with asyncio.Runner() as runner:
        client = runner.run(Client.create(config))
        try:
            _load_history(config.history_file)

            print(f"shelly-cli v{VERSION}")
            print(f"Target: {_format_addr(config.target)}")
            print("Type your message and press Enter. Ctrl+D to quit.")
            print()

            while True:
                try:
                    line = input("> ")
                except KeyboardInterrupt:
                    print("^C")
                    continue
                except EOFError:
                    break

                text = line.strip()
                if not text:
                    continue
                if readline is not None:
                    readline.add_history(text)

                print("[waiting...]", end="", flush=True)
                try:
                    response = runner.run(client.send_request(text))
                except (OSError, CommError) as exc:
                    print(f"\r[error] {exc}")
                    continue
                if response.is_error:
                    print(f"\r[error] {response.content}")
                else:
                    print(f"\r{response.content}")
        finally:
            client.close()

    _save_history(config.history_file)
    print("\nGoodbye!")
    return 0


def main(argv: list[str] | None = None) -> int:
    config = CliConfig.from_args(parse_args(argv))

    lang = os.environ.get("LANG")
    if lang is not None and "utf-8" not in lang.lower() and "utf8" not in lang.lower():
        print(
            "[warning] Terminal locale is not UTF-8. "
            "Non-ASCII characters may not display correctly.",
            file=sys.stderr,
        )

    return run_client(config)


if __name__ == "__main__":
    sys.exit(main())