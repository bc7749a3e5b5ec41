"""Ask capability: is this node's hash equal on the other side?"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from merklediff_core.merkle.models import MerkleNode


@runtime_checkable
class Asker(Protocol):
    """One blocking round trip per call; True means the peer agrees."""

    def ask(self, node: MerkleNode) -> bool: ...
