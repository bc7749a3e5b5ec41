"""End-to-end tests for diff sessions over real sockets."""

from __future__ import annotations

import io
import logging
import socket
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from merklediff_core.config.models import MerkleDiffConfig
from merklediff_core.errors import EmptyInputError, StreamError, TransportError
from merklediff_core.merkle import Region
from merklediff_core.session import (
    Block,
    DiffSession,
    SessionReport,
    compare_local,
    compare_remote,
)
from merklediff_core.transport import EchoChannel, NetworkAsker

from conftest import MIB, flip

DATA = bytes(range(256)) * 16  # 4096 bytes, 64 blocks of 64


# ── DiffSession ──────────────────────────────────────────────────────


def test_session_against_itself_is_identical(small_config):
    report = DiffSession(small_config).run(io.BytesIO(DATA), NetworkAsker(EchoChannel(), 32))
    assert report.identical
    assert report.exchanges == 2
    assert report.refined is False
    assert report.node_count == 127
    assert report.leaf_count == 64


def test_session_uses_a_prebuilt_tree(small_config):
    session = DiffSession(small_config)
    stream = io.BytesIO(DATA)
    tree = session.build(stream)
    report = session.run(stream, NetworkAsker(EchoChannel(), 32), tree=tree)
    assert report.node_count == len(tree)


def test_session_takes_config_and_run_takes_asker(small_config):
    session = DiffSession(small_config)
    report = session.run(io.BytesIO(b"x" * 100), asker=NetworkAsker(EchoChannel(), 32))
    assert report.identical
    assert report.leaf_count == 2


def test_session_defaults_to_default_config():
    assert DiffSession().config == MerkleDiffConfig()


def test_empty_stream_is_an_error(small_config):
    with pytest.raises(EmptyInputError):
        DiffSession(small_config).run(io.BytesIO(b""), NetworkAsker(EchoChannel(), 32))


def test_report_properties():
    report = SessionReport(
        block_size=64,
        algorithm="sha256",
        node_count=3,
        leaf_count=2,
        exchanges=2,
        blocks=(Block(index=1, region=Region(64, 64)),),
        refined=True,
        regions=(Region(70, 1), Region(99, 1)),
        refine_exchanges=12,
    )
    assert not report.identical
    assert report.exact
    assert report.total_exchanges == 14


# ── compare_local ────────────────────────────────────────────────────


def test_local_identical_files(write_file, small_config):
    a = write_file("a.bin", DATA)
    b = write_file("b.bin", DATA)
    report = compare_local(a, b, small_config)
    assert report.identical
    assert report.exchanges == 2


def test_local_single_byte_difference(write_file, small_config):
    a = write_file("a.bin", DATA)
    b = write_file("b.bin", flip(DATA, 1234))
    report = compare_local(a, b, small_config)
    assert [block.index for block in report.blocks] == [1234 // 64]
    assert report.blocks[0].region == Region(1216, 64)
    assert report.refined
    assert report.regions == (Region(1234, 1),)
    assert report.exact


def test_local_without_refinement(write_file, small_config):
    cfg = small_config.model_copy(update={"refine": small_config.refine.model_copy(update={"enabled": False})})
    a = write_file("a.bin", DATA)
    b = write_file("b.bin", flip(DATA, 10, 4000))
    report = compare_local(a, b, cfg)
    assert [block.index for block in report.blocks] == [0, 62]
    assert not report.refined
    assert report.regions == ()


@pytest.mark.parametrize("algorithm", ["blake2b", "xxh64", "xxh128"])
def test_local_with_other_algorithms(write_file, algorithm):
    cfg = MerkleDiffConfig(
        tree={"block_size": 64, "algorithm": algorithm},
        refine={"block_sizes": [1]},
    )
    a = write_file("a.bin", DATA)
    b = write_file("b.bin", flip(DATA, 77))
    report = compare_local(a, b, cfg)
    assert report.regions == (Region(77, 1),)
    assert report.algorithm == algorithm


def test_local_empty_file_is_an_error(write_file, small_config):
    a = write_file("a.bin", b"")
    b = write_file("b.bin", b"")
    with pytest.raises(EmptyInputError):
        compare_local(a, b, small_config)


def test_local_missing_first_file(tmp_path, write_file, small_config):
    b = write_file("b.bin", DATA)
    with pytest.raises(StreamError) as exc_info:
        compare_local(tmp_path / "missing.bin", b, small_config)
    assert exc_info.value.operation == "open"


def test_local_missing_peer_file_reports_root_cause(tmp_path, write_file, small_config):
    """The peer's open failure wins over the transport error it causes."""
    a = write_file("a.bin", DATA)
    with pytest.raises(StreamError):
        compare_local(a, tmp_path / "missing.bin", small_config)


def test_local_size_mismatch_is_logged(write_file, small_config, caplog):
    a = write_file("a.bin", DATA)
    b = write_file("b.bin", DATA + DATA)
    with caplog.at_level(logging.WARNING, logger="merklediff_core.session"):
        try:
            compare_local(a, b, small_config)
        except TransportError:
            pass
    assert "file sizes differ" in caplog.text


# ── 1 MiB block scenarios ────────────────────────────────────────────


def test_three_mib_zero_files_are_identical(write_file, sample_config):
    a = write_file("a.bin", bytes(3 * MIB))
    b = write_file("b.bin", bytes(3 * MIB))
    report = compare_local(a, b, sample_config)
    assert report.identical
    assert report.leaf_count == 3
    assert report.exchanges == 2


def test_flip_at_five_million_is_found_exactly(write_file, sample_config):
    data = bytes(6 * MIB)
    a = write_file("a.bin", data)
    b = write_file("b.bin", flip(data, 5_000_000))
    report = compare_local(a, b, sample_config)
    assert [block.index for block in report.blocks] == [4]
    assert report.blocks[0].region == Region(4_194_304, MIB)
    assert report.regions == (Region(5_000_000, 1),)


def test_flip_refined_straight_to_bytes(write_file):
    """Refinement at block size 1 over a whole leaf finds the exact offset."""
    cfg = MerkleDiffConfig(tree={"block_size": 4096}, refine={"block_sizes": [1]})
    data = bytes(64 * 1024)
    a = write_file("a.bin", data)
    b = write_file("b.bin", flip(data, 50_000))
    report = compare_local(a, b, cfg)
    assert [block.index for block in report.blocks] == [50_000 // 4096]
    assert report.regions == (Region(50_000, 1),)


# ── compare_remote ───────────────────────────────────────────────────


def _free_port() -> int:
    with socket.socket() as spare:
        spare.bind(("127.0.0.1", 0))
        return spare.getsockname()[1]


def _connect_when_ready(path, address, config):
    deadline = time.monotonic() + 10
    while True:
        try:
            return compare_remote(path, address, listen=False, config=config)
        except TransportError as e:
            if e.operation != "connect" or time.monotonic() > deadline:
                raise
            time.sleep(0.05)


def test_remote_comparison_over_tcp(write_file, small_config):
    cfg = small_config.model_copy(
        update={"network": small_config.network.model_copy(update={"timeout": 10.0})}
    )
    a = write_file("a.bin", DATA)
    b = write_file("b.bin", flip(DATA, 3000))
    address = f"127.0.0.1:{_free_port()}"

    with ThreadPoolExecutor(max_workers=1) as pool:
        server = pool.submit(compare_remote, a, address, True, cfg)
        client_report = _connect_when_ready(b, address, cfg)
        server_report = server.result(timeout=30)

    assert server_report.regions == (Region(3000, 1),)
    assert client_report.regions == server_report.regions
    assert client_report.total_exchanges == server_report.total_exchanges


class _RecordingAsker:
    """Forwards to a NetworkAsker and remembers every node asked about."""

    def __init__(self, sock: socket.socket, width: int) -> None:
        self.inner = NetworkAsker.from_socket(sock, width)
        self.width = width
        self.asked = []

    def ask(self, node) -> bool:
        self.asked.append(node)
        return self.inner.ask(node)

    def close(self) -> None:
        self.inner.close()


def test_remote_comparison_with_custom_asker_factory(write_file, small_config):
    cfg = small_config.model_copy(
        update={"network": small_config.network.model_copy(update={"timeout": 10.0})}
    )
    a = write_file("a.bin", DATA)
    b = write_file("b.bin", flip(DATA, 500))
    address = f"127.0.0.1:{_free_port()}"
    made: list[_RecordingAsker] = []

    def factory(sock, width):
        asker = _RecordingAsker(sock, width)
        made.append(asker)
        return asker

    with ThreadPoolExecutor(max_workers=1) as pool:
        server = pool.submit(compare_remote, a, address, True, cfg, factory)
        client_report = _connect_when_ready(b, address, cfg)
        server_report = server.result(timeout=30)

    assert len(made) == 1
    assert made[0].width == 32
    assert len(made[0].asked) == server_report.total_exchanges
    assert server_report.regions == client_report.regions == (Region(500, 1),)


def test_remote_missing_file_fails_before_connecting(tmp_path, small_config):
    with pytest.raises(StreamError):
        compare_remote(tmp_path / "missing.bin", "127.0.0.1:1", listen=False, config=small_config)
