"""Merkle tree subsystem for chunked file comparison."""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO

from merklediff_core.merkle.builder import MerkleTreeBuilder, chunk_hashes
from merklediff_core.merkle.differ import MerkleTreeDiffer
from merklediff_core.merkle.models import DiffResult, MerkleNode, RefinementResult, Region
from merklediff_core.merkle.refine import RefinementLoop
from merklediff_core.merkle.tree import (
    DEFAULT_ALGORITHM,
    MerkleTree,
    available_algorithms,
    combine_hashes,
    compute_hash,
    digest_size,
)

if TYPE_CHECKING:
    from merklediff_core.transport.base import Asker


def build_tree(
    stream: BinaryIO,
    block_size: int,
    algorithm: str = DEFAULT_ALGORITHM,
    base_offset: int = 0,
) -> MerkleTree:
    """Convenience wrapper around MerkleTreeBuilder.build()."""
    return MerkleTreeBuilder.build(stream, block_size, algorithm, base_offset)


def diff_tree(tree: MerkleTree, asker: Asker) -> DiffResult:
    """Convenience wrapper around MerkleTreeDiffer.diff()."""
    return MerkleTreeDiffer.diff(tree, asker)


__all__ = [
    "DEFAULT_ALGORITHM",
    "DiffResult",
    "MerkleNode",
    "MerkleTree",
    "MerkleTreeBuilder",
    "MerkleTreeDiffer",
    "RefinementLoop",
    "RefinementResult",
    "Region",
    "available_algorithms",
    "build_tree",
    "chunk_hashes",
    "combine_hashes",
    "compute_hash",
    "diff_tree",
    "digest_size",
]
