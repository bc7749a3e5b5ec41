"""Re-run the tree diff at finer granularity inside mismatched regions."""

from __future__ import annotations

import io
import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, BinaryIO

from merklediff_core.errors import StreamError
from merklediff_core.merkle.builder import MerkleTreeBuilder, read_block
from merklediff_core.merkle.differ import MerkleTreeDiffer
from merklediff_core.merkle.models import RefinementResult, Region
from merklediff_core.merkle.tree import DEFAULT_ALGORITHM

if TYPE_CHECKING:
    from merklediff_core.transport.base import Asker

logger = logging.getLogger(__name__)


class RefinementLoop:
    """Narrows mismatched regions down through a schedule of block sizes.

    Each step is the same build-then-diff pass used at the top level, run
    over one region's bytes. Both peers must use the same schedule and
    visit regions in the same order, which is ascending offset.
    """

    def __init__(
        self,
        stream: BinaryIO,
        asker: Asker,
        block_sizes: Sequence[int] = (1,),
        algorithm: str = DEFAULT_ALGORITHM,
    ) -> None:
        if not block_sizes:
            raise ValueError("refinement needs at least one block size")
        if any(size <= 0 for size in block_sizes):
            raise ValueError(f"block sizes must be positive, got {list(block_sizes)}")
        self.stream = stream
        self.asker = asker
        self.block_sizes = tuple(block_sizes)
        self.algorithm = algorithm

    def _read_region(self, region: Region) -> bytes:
        try:
            self.stream.seek(region.offset)
        except OSError as e:
            raise StreamError("seek", e) from e
        return read_block(self.stream, region.length)

    def refine_region(self, region: Region, block_size: int) -> tuple[list[Region], int]:
        """Diff one region at *block_size*; return differing sub-regions."""
        data = self._read_region(region)
        tree = MerkleTreeBuilder.build(
            io.BytesIO(data),
            block_size,
            algorithm=self.algorithm,
            base_offset=region.offset,
        )
        result = MerkleTreeDiffer.diff(tree, self.asker)
        return [tree.region(idx) for idx in result.mismatched], result.exchanges

    def run(self, regions: Iterable[Region]) -> RefinementResult:
        current = sorted(regions)
        exchanges = 0
        for block_size in self.block_sizes:
            found: list[Region] = []
            for region in current:
                sub_regions, asked = self.refine_region(region, block_size)
                found.extend(sub_regions)
                exchanges += asked
            logger.debug(
                "refined %d region(s) at block_size=%d into %d",
                len(current),
                block_size,
                len(found),
            )
            current = sorted(found)

        return RefinementResult(regions=tuple(current), exchanges=exchanges)
