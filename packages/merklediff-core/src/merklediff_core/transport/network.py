"""Network asker and connection setup over TCP."""

from __future__ import annotations

import logging
import socket
from typing import BinaryIO

from merklediff_core.errors import TransportError
from merklediff_core.merkle.models import MerkleNode

logger = logging.getLogger(__name__)


class NetworkAsker:
    """Exchanges fixed-width digest frames over a duplex byte channel.

    Each question is written, flushed and answered before the next one is
    sent. Frames carry no length prefix or sequence number; the pairing of
    question and answer is implied by call order.
    """

    def __init__(self, channel: BinaryIO, digest_size: int) -> None:
        if digest_size <= 0:
            raise ValueError(f"digest_size must be positive, got {digest_size}")
        self.channel = channel
        self.digest_size = digest_size
        self.questions = 0

    @classmethod
    def from_socket(cls, sock: socket.socket, digest_size: int) -> NetworkAsker:
        return cls(sock.makefile("rwb"), digest_size)

    def _read_frame(self) -> bytes:
        parts: list[bytes] = []
        remaining = self.digest_size
        while remaining > 0:
            try:
                part = self.channel.read(remaining)
            except OSError as e:
                raise TransportError("read", e) from e
            if not part:
                received = self.digest_size - remaining
                raise TransportError(
                    "read",
                    ConnectionError(
                        f"peer closed the channel after {received} of {self.digest_size} bytes"
                    ),
                )
            parts.append(part)
            remaining -= len(part)
        return b"".join(parts)

    def ask(self, node: MerkleNode) -> bool:
        if len(node.hash) != self.digest_size:
            raise ValueError(
                f"hash is {len(node.hash)} bytes, channel frames are {self.digest_size}"
            )
        try:
            self.channel.write(node.hash)
        except OSError as e:
            raise TransportError("write", e) from e
        try:
            self.channel.flush()
        except OSError as e:
            raise TransportError("flush", e) from e

        answer = self._read_frame()
        self.questions += 1
        return answer == node.hash

    def close(self) -> None:
        self.channel.close()


# ---------------------------------------------------------------------------
# Connection setup
# ---------------------------------------------------------------------------


def parse_address(address: str, default_port: int) -> tuple[str, int]:
    """Split ``host:port`` (``[v6]:port`` for IPv6) into a tuple.

    A bare host uses *default_port*; an empty host means all interfaces.
    An unbracketed address with several colons is a bare IPv6 host.
    """
    if address.count(":") > 1 and not address.startswith("["):
        return address, default_port
    host, sep, port = address.rpartition(":")
    if not sep or "]" in port:
        host, port = address, ""
    host = host.strip("[]")
    if not port:
        return host, default_port
    try:
        number = int(port)
    except ValueError:
        raise ValueError(f"Invalid port in address {address!r}") from None
    if not 0 < number < 65536:
        raise ValueError(f"Port out of range in address {address!r}")
    return host, number


def open_connection(
    address: tuple[str, int], timeout: float | None = None
) -> socket.socket:
    """Connect to a listening peer."""
    try:
        sock = socket.create_connection(address, timeout=timeout)
    except OSError as e:
        raise TransportError("connect", e) from e
    logger.info("connected to %s:%d", *address)
    return sock


def accept_connection(
    address: tuple[str, int], timeout: float | None = None, backlog: int = 1
) -> socket.socket:
    """Listen on *address* and return the first accepted connection."""
    try:
        with socket.create_server(address, backlog=backlog) as server:
            server.settimeout(timeout)
            logger.info("listening on %s:%d", *server.getsockname()[:2])
            conn, peer = server.accept()
    except OSError as e:
        raise TransportError("accept", e) from e
    conn.settimeout(timeout)
    logger.info("accepted connection from %s:%d", *peer[:2])
    return conn
