"""merklediff core - find differing byte ranges between remote copies of a file."""

from merklediff_core.config import MerkleDiffConfig, load_config
from merklediff_core.errors import EmptyInputError, MerkleDiffError, StreamError, TransportError
from merklediff_core.merkle import MerkleTree, MerkleTreeBuilder, MerkleTreeDiffer, RefinementLoop
from merklediff_core.session import DiffSession, SessionReport, compare_local, compare_remote
from merklediff_core.transport import Asker, InteractiveAsker, NetworkAsker

__version__ = "0.1.0"

__all__ = [
    "Asker",
    "DiffSession",
    "EmptyInputError",
    "InteractiveAsker",
    "MerkleDiffConfig",
    "MerkleDiffError",
    "MerkleTree",
    "MerkleTreeBuilder",
    "MerkleTreeDiffer",
    "NetworkAsker",
    "RefinementLoop",
    "SessionReport",
    "StreamError",
    "TransportError",
    "compare_local",
    "compare_remote",
    "load_config",
]
