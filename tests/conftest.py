"""Shared test fixtures for merklediff."""

from __future__ import annotations

import io
import socket
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from merklediff_core.config.models import MerkleDiffConfig
from merklediff_core.merkle import digest_size
from merklediff_core.transport import NetworkAsker

MIB = 1024 * 1024


def flip(data: bytes, *offsets: int) -> bytes:
    """Return *data* with the bytes at *offsets* inverted."""
    out = bytearray(data)
    for offset in offsets:
        out[offset] ^= 0xFF
    return bytes(out)


@pytest.fixture
def sample_config():
    return MerkleDiffConfig()


@pytest.fixture
def small_config():
    """Small blocks so trees stay cheap to build."""
    return MerkleDiffConfig(tree={"block_size": 64}, refine={"block_sizes": [8, 1]})


@pytest.fixture
def write_file(tmp_path):
    def _write(name: str, data: bytes) -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture
def lockstep():
    """Run the same protocol step on two byte strings over a socket pair.

    ``lockstep(data_a, data_b, step)`` calls ``step(stream, asker)`` for
    each side, the second on a worker thread, and returns both results.
    """

    def _run(data_a: bytes, data_b: bytes, step, algorithm: str = "sha256"):
        width = digest_size(algorithm)
        left, right = socket.socketpair()

        def side(data: bytes, sock: socket.socket):
            with sock:
                asker = NetworkAsker.from_socket(sock, width)
                try:
                    return step(io.BytesIO(data), asker)
                finally:
                    asker.close()

        with ThreadPoolExecutor(max_workers=1) as pool:
            peer = pool.submit(side, data_b, right)
            mine = side(data_a, left)
            return mine, peer.result(timeout=30)

    return _run
