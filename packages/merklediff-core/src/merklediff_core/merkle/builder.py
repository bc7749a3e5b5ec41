"""Builder for constructing Merkle trees from a byte stream."""

from __future__ import annotations

import logging
from typing import BinaryIO

from merklediff_core.errors import EmptyInputError, StreamError
from merklediff_core.merkle.models import MerkleNode
from merklediff_core.merkle.tree import (
    DEFAULT_ALGORITHM,
    MerkleTree,
    combine_hashes,
    compute_hash,
)

logger = logging.getLogger(__name__)


def read_block(stream: BinaryIO, block_size: int) -> bytes:
    """Read up to *block_size* bytes, retrying short reads until EOF."""
    parts: list[bytes] = []
    remaining = block_size
    while remaining > 0:
        try:
            part = stream.read(remaining)
        except OSError as e:
            raise StreamError("read", e) from e
        if not part:
            break
        parts.append(part)
        remaining -= len(part)
    return b"".join(parts)


def chunk_hashes(
    stream: BinaryIO,
    block_size: int,
    algorithm: str = DEFAULT_ALGORITHM,
    base_offset: int = 0,
) -> list[MerkleNode]:
    """Split *stream* into blocks and hash each into a leaf node.

    The final block may be shorter than *block_size*. An empty stream
    yields an empty list; callers decide whether that is an error.
    """
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")

    leaves: list[MerkleNode] = []
    while True:
        chunk = read_block(stream, block_size)
        if not chunk:
            return leaves
        leaves.append(
            MerkleNode(
                hash=compute_hash(chunk, algorithm),
                offset=base_offset + len(leaves) * block_size,
                length=len(chunk),
            )
        )


class MerkleTreeBuilder:
    """Folds leaves level by level into an arena-backed MerkleTree."""

    @staticmethod
    def from_leaves(
        leaves: list[MerkleNode],
        block_size: int,
        algorithm: str = DEFAULT_ALGORITHM,
        base_offset: int = 0,
    ) -> MerkleTree:
        """Append parent levels to *leaves* until a single root remains.

        Siblings are paired by position, left to right. A lone trailing
        node gets a single-child parent whose hash is the digest of the
        child's hash, so every level is strictly smaller than the last.
        The leaf level is always folded, even when it holds one node.
        """
        if not leaves:
            raise EmptyInputError()

        nodes = list(leaves)
        start, count, depth = 0, len(nodes), 0
        while True:
            depth += 1
            end = start + count
            for i in range(start, end, 2):
                children = tuple(range(i, min(i + 2, end)))
                nodes.append(
                    MerkleNode(
                        hash=combine_hashes((nodes[c].hash for c in children), algorithm),
                        children=children,
                        offset=nodes[i].offset,
                        length=sum(nodes[c].length for c in children),
                        depth=depth,
                    )
                )
            start, count = end, len(nodes) - end
            if count == 1:
                break

        return MerkleTree(
            nodes,
            block_size=block_size,
            algorithm=algorithm,
            base_offset=base_offset,
        )

    @staticmethod
    def build(
        stream: BinaryIO,
        block_size: int,
        algorithm: str = DEFAULT_ALGORITHM,
        base_offset: int = 0,
    ) -> MerkleTree:
        """Read *stream* to the end and construct the full tree."""
        leaves = chunk_hashes(stream, block_size, algorithm, base_offset)
        if not leaves:
            raise EmptyInputError()
        tree = MerkleTreeBuilder.from_leaves(leaves, block_size, algorithm, base_offset)
        logger.debug(
            "built tree: %d leaves, %d nodes, block_size=%d, base_offset=%d",
            len(leaves),
            len(tree),
            block_size,
            base_offset,
        )
        return tree
