from .loader import load_config
from .models import (
    MerkleDiffConfig,
    NetworkConfig,
    RefineConfig,
    TreeConfig,
)

__all__ = [
    "MerkleDiffConfig",
    "NetworkConfig",
    "RefineConfig",
    "TreeConfig",
    "load_config",
]
