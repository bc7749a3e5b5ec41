"""Data models for the Merkle tree subsystem."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class MerkleNode:
    """A vertex in the arena; ``children`` holds arena indices."""

    hash: bytes
    children: tuple[int, ...] = ()
    offset: int = 0
    length: int = 0
    depth: int = 0

    def __post_init__(self) -> None:
        if len(self.children) > 2:
            raise ValueError(f"a node has at most 2 children, got {len(self.children)}")

    @property
    def is_leaf(self) -> bool:
        return not self.children


@dataclass(frozen=True, slots=True, order=True)
class Region:
    """A byte range of the original stream."""

    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass(frozen=True)
class DiffResult:
    """Result of walking one tree against a peer."""

    mismatched: tuple[int, ...] = ()
    exchanges: int = 0

    @property
    def identical(self) -> bool:
        return not self.mismatched


@dataclass(frozen=True)
class RefinementResult:
    """Regions that still differ at the finest refinement level."""

    regions: tuple[Region, ...] = ()
    exchanges: int = 0

    @property
    def offsets(self) -> list[int]:
        """Every differing byte offset covered by the regions."""
        return [
            offset
            for region in self.regions
            for offset in range(region.offset, region.end)
        ]
