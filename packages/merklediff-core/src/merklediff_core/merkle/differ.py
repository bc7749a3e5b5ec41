"""Breadth-first challenge/response diff of a Merkle tree against a peer."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from merklediff_core.merkle.models import DiffResult

if TYPE_CHECKING:
    from merklediff_core.merkle.tree import MerkleTree
    from merklediff_core.transport.base import Asker

logger = logging.getLogger(__name__)


class MerkleTreeDiffer:
    """Walks a tree top-down, descending only where the peer disagrees."""

    @staticmethod
    def diff(tree: MerkleTree, asker: Asker) -> DiffResult:
        """Ask the peer about every child of each mismatched node.

        The root itself is never asked. Questions go out one at a time in
        breadth-first, left-to-right order; the peer must walk an
        identically shaped tree in the same order.
        """
        mismatched: list[int] = []
        exchanges = 0
        queue = deque([tree.root_index])

        while queue:
            current = queue.popleft()
            for idx in tree[current].children:
                exchanges += 1
                child = tree[idx]
                if asker.ask(child):
                    continue
                if child.is_leaf:
                    logger.debug("leaf %d mismatched (offset %d)", idx, child.offset)
                    mismatched.append(idx)
                else:
                    queue.append(idx)

        return DiffResult(mismatched=tuple(mismatched), exchanges=exchanges)
