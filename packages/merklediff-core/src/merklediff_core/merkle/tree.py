"""Arena-backed Merkle tree over fixed-size chunks of a byte stream."""

from __future__ import annotations

import hashlib
import itertools
import json
from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Any

import xxhash

from merklediff_core.errors import EmptyInputError
from merklediff_core.merkle.models import MerkleNode, Region

DEFAULT_ALGORITHM = "sha256"


# name -> (hasher factory, digest width in bytes)
_ALGORITHMS: dict[str, tuple[Callable[[], Any], int]] = {
    "sha256": (hashlib.sha256, 32),
    "blake2b": (lambda: hashlib.blake2b(digest_size=32), 32),
    "xxh64": (xxhash.xxh64, 8),
    "xxh128": (xxhash.xxh3_128, 16),
}


def available_algorithms() -> list[str]:
    return sorted(_ALGORITHMS)


def _check_algorithm(algorithm: str) -> None:
    if algorithm not in _ALGORITHMS:
        raise ValueError(
            f"Unsupported hash algorithm: {algorithm!r}. "
            f"Supported: {', '.join(available_algorithms())}"
        )


def digest_size(algorithm: str = DEFAULT_ALGORITHM) -> int:
    """Width in bytes of every hash produced by *algorithm*."""
    _check_algorithm(algorithm)
    return _ALGORITHMS[algorithm][1]


def compute_hash(content: bytes, algorithm: str = DEFAULT_ALGORITHM) -> bytes:
    """Digest a chunk of the stream."""
    _check_algorithm(algorithm)
    h = _ALGORITHMS[algorithm][0]()
    h.update(content)
    return h.digest()


def combine_hashes(child_hashes: Iterable[bytes], algorithm: str = DEFAULT_ALGORITHM) -> bytes:
    """Compute a parent hash from its children's hashes.

    Hashes are concatenated in the given order, never sorted: the position
    of a child is part of the parent's identity. A single child still
    produces a new digest.
    """
    _check_algorithm(algorithm)
    h = _ALGORITHMS[algorithm][0]()
    for child in child_hashes:
        h.update(child)
    return h.digest()


class MerkleTree:
    """Immutable, append-only arena of nodes.

    Leaves occupy the first positions in stream order, each higher level is
    appended after the one below it, and the root is the last node.
    """

    def __init__(
        self,
        nodes: Sequence[MerkleNode],
        block_size: int,
        algorithm: str = DEFAULT_ALGORITHM,
        base_offset: int = 0,
    ) -> None:
        self._nodes = tuple(nodes)
        self.block_size = block_size
        self.algorithm = algorithm
        self.base_offset = base_offset
        self._leaf_count = sum(
            1 for _ in itertools.takewhile(lambda n: n.is_leaf, self._nodes)
        )

    # ------------------------------------------------------------------
    # Arena access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, index: int) -> MerkleNode:
        return self._nodes[index]

    def __iter__(self) -> Iterator[MerkleNode]:
        return iter(self._nodes)

    @property
    def nodes(self) -> tuple[MerkleNode, ...]:
        return self._nodes

    @property
    def root_index(self) -> int:
        if not self._nodes:
            raise EmptyInputError("tree has no nodes, so it has no root")
        return len(self._nodes) - 1

    @property
    def root(self) -> MerkleNode:
        return self._nodes[self.root_index]

    @property
    def root_hash(self) -> bytes:
        return self.root.hash

    @property
    def leaf_count(self) -> int:
        return self._leaf_count

    @property
    def leaves(self) -> tuple[MerkleNode, ...]:
        return self._nodes[: self.leaf_count]

    def region(self, index: int) -> Region:
        """Byte range of the stream covered by the node at *index*."""
        node = self._nodes[index]
        return Region(offset=node.offset, length=node.length)

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------

    def level_sizes(self) -> list[int]:
        """Number of nodes per level, leaves first."""
        sizes: list[int] = []
        for node in self._nodes:
            if node.depth == len(sizes):
                sizes.append(0)
            sizes[node.depth] += 1
        return sizes

    @staticmethod
    def expected_node_count(leaf_count: int) -> int:
        """Total nodes for *leaf_count* leaves under the halving-with-carry rule.

        The leaf level is always folded at least once, so a single leaf
        yields two nodes.
        """
        if leaf_count <= 0:
            raise EmptyInputError()
        total = level = leaf_count
        while True:
            level = (level + 1) // 2
            total += level
            if level == 1:
                return total

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "algorithm": self.algorithm,
            "block_size": self.block_size,
            "base_offset": self.base_offset,
            "root_hash": self.root_hash.hex(),
            "levels": self.level_sizes(),
            "nodes": [
                {
                    "index": i,
                    "hash": n.hash.hex(),
                    "children": list(n.children),
                    "offset": n.offset,
                    "length": n.length,
                    "depth": n.depth,
                }
                for i, n in enumerate(self._nodes)
            ],
        }

    def to_json(self) -> str:
        """Serialize the tree to a JSON string, hashes as hex."""
        return json.dumps(self.to_dict(), indent=2)
