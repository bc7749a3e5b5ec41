"""One peer's side of a comparison: build, diff, then refine."""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from merklediff_core.config.models import MerkleDiffConfig
from merklediff_core.errors import MerkleDiffError, StreamError, TransportError
from merklediff_core.merkle import (
    MerkleTree,
    MerkleTreeBuilder,
    MerkleTreeDiffer,
    RefinementLoop,
    Region,
    digest_size,
)
from merklediff_core.transport import (
    Asker,
    NetworkAsker,
    accept_connection,
    open_connection,
    parse_address,
)

logger = logging.getLogger(__name__)

# Wraps a connected socket in an asker whose frames are the given width.
AskerFactory = Callable[[socket.socket, int], Asker]


@dataclass(frozen=True)
class Block:
    """A top-level leaf that differs, with the bytes it covers."""

    index: int
    region: Region


@dataclass(frozen=True)
class SessionReport:
    """Everything one peer learned from a comparison."""

    block_size: int
    algorithm: str
    node_count: int
    leaf_count: int
    exchanges: int
    blocks: tuple[Block, ...] = ()
    refined: bool = False
    regions: tuple[Region, ...] = ()
    refine_exchanges: int = 0

    @property
    def identical(self) -> bool:
        return not self.blocks

    @property
    def total_exchanges(self) -> int:
        return self.exchanges + self.refine_exchanges

    @property
    def exact(self) -> bool:
        """True when every reported region is a single byte."""
        return self.refined and all(r.length == 1 for r in self.regions)


def open_stream(path: str | Path) -> BinaryIO:
    try:
        return open(path, "rb")
    except OSError as e:
        raise StreamError("open", e) from e


class DiffSession:
    """Runs the top-level diff and the refinement rounds over one asker."""

    def __init__(self, config: MerkleDiffConfig | None = None) -> None:
        self.config = config or MerkleDiffConfig()

    def build(self, stream: BinaryIO) -> MerkleTree:
        tree = MerkleTreeBuilder.build(
            stream,
            self.config.tree.block_size,
            algorithm=self.config.tree.algorithm,
        )
        logger.info("built tree with %d nodes (%d leaves)", len(tree), tree.leaf_count)
        return tree

    def run(self, stream: BinaryIO, asker: Asker, tree: MerkleTree | None = None) -> SessionReport:
        """Compare *stream* against the peer behind *asker*.

        *tree* may be passed in when it was built before the connection
        was established; it must have been built from *stream*.
        """
        if tree is None:
            tree = self.build(stream)

        result = MerkleTreeDiffer.diff(tree, asker)
        logger.info(
            "made %d exchanges, %d block(s) mismatched",
            result.exchanges,
            len(result.mismatched),
        )
        blocks = tuple(
            Block(index=idx, region=tree.region(idx)) for idx in result.mismatched
        )
        report = SessionReport(
            block_size=tree.block_size,
            algorithm=tree.algorithm,
            node_count=len(tree),
            leaf_count=tree.leaf_count,
            exchanges=result.exchanges,
            blocks=blocks,
        )

        refine = self.config.refine
        if not blocks or not refine.enabled:
            return report

        loop = RefinementLoop(
            stream,
            asker,
            block_sizes=refine.block_sizes,
            algorithm=tree.algorithm,
        )
        refined = loop.run(block.region for block in blocks)
        logger.info(
            "refinement made %d exchanges, %d region(s) differ",
            refined.exchanges,
            len(refined.regions),
        )
        return SessionReport(
            block_size=report.block_size,
            algorithm=report.algorithm,
            node_count=report.node_count,
            leaf_count=report.leaf_count,
            exchanges=report.exchanges,
            blocks=report.blocks,
            refined=True,
            regions=refined.regions,
            refine_exchanges=refined.exchanges,
        )


# ---------------------------------------------------------------------------
# Peer setup
# ---------------------------------------------------------------------------


def _run_over_socket(
    session: DiffSession,
    stream: BinaryIO,
    sock: socket.socket,
    tree: MerkleTree | None = None,
    asker_factory: AskerFactory = NetworkAsker.from_socket,
) -> SessionReport:
    width = digest_size(session.config.tree.algorithm)
    with sock:
        asker = asker_factory(sock, width)
        try:
            return session.run(stream, asker, tree=tree)
        finally:
            close = getattr(asker, "close", None)
            if close is not None:
                close()


def compare_remote(
    path: str | Path,
    address: str,
    listen: bool,
    config: MerkleDiffConfig | None = None,
    asker_factory: AskerFactory = NetworkAsker.from_socket,
) -> SessionReport:
    """Build the tree for *path*, then diff it against a peer over TCP.

    With *listen* the peer is accepted on *address*, otherwise *address*
    is connected to. *asker_factory* turns the connected socket into the
    asker used for every question; it is called with the socket and the
    digest width of the configured algorithm.
    """
    session = DiffSession(config)
    net = session.config.network
    host_port = parse_address(address, net.default_port)

    with open_stream(path) as stream:
        tree = session.build(stream)
        if listen:
            sock = accept_connection(host_port, timeout=net.timeout, backlog=net.backlog)
        else:
            sock = open_connection(host_port, timeout=net.timeout)
        return _run_over_socket(session, stream, sock, tree=tree, asker_factory=asker_factory)


def _run_local_peer(session: DiffSession, path: str | Path, sock: socket.socket) -> SessionReport:
    try:
        stream = open_stream(path)
    except StreamError:
        sock.close()
        raise
    with stream:
        return _run_over_socket(session, stream, sock)


def compare_local(
    path_a: str | Path,
    path_b: str | Path,
    config: MerkleDiffConfig | None = None,
) -> SessionReport:
    """Compare two local files by running both peers over a socket pair.

    The second peer runs on a worker thread. If either side fails, its
    socket is closed and the other side fails with a TransportError; the
    report returned is the first peer's.
    """
    session = DiffSession(config)
    size_a, size_b = _file_size(path_a), _file_size(path_b)
    if size_a is not None and size_b is not None and size_a != size_b:
        logger.warning(
            "file sizes differ (%d vs %d bytes); tree shapes will not line up",
            size_a,
            size_b,
        )

    left, right = socket.socketpair()
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="merklediff-peer") as pool:
        peer = pool.submit(_run_local_peer, session, path_b, right)
        try:
            report = _run_local_peer(session, path_a, left)
        except TransportError:
            cause = peer.exception()
            if isinstance(cause, MerkleDiffError) and not isinstance(cause, TransportError):
                raise cause from None
            raise
        peer.result()
    return report


def _file_size(path: str | Path) -> int | None:
    try:
        return Path(path).stat().st_size
    except OSError:
        return None
