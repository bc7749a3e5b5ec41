from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_BLOCK_SIZE = 1024 * 1024


class TreeConfig(BaseModel):
    block_size: int = Field(default=DEFAULT_BLOCK_SIZE, gt=0)
    algorithm: Literal["sha256", "blake2b", "xxh64", "xxh128"] = "sha256"


class RefineConfig(BaseModel):
    enabled: bool = True
    block_sizes: list[int] = Field(default_factory=lambda: [4096, 1])

    @field_validator("block_sizes")
    @classmethod
    def validate_block_sizes(cls, v: list[int]) -> list[int]:
        if not v:
            raise ValueError("block_sizes cannot be empty")
        if any(size <= 0 for size in v):
            raise ValueError("block_sizes must all be positive")
        if any(a <= b for a, b in zip(v, v[1:])):
            raise ValueError("block_sizes must be strictly decreasing")
        return v


class NetworkConfig(BaseModel):
    default_port: int = Field(default=4040, gt=0, lt=65536)
    timeout: float | None = Field(default=None, gt=0)
    backlog: int = Field(default=1, ge=0)


class MerkleDiffConfig(BaseModel):
    tree: TreeConfig = Field(default_factory=TreeConfig)
    refine: RefineConfig = Field(default_factory=RefineConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    log_level: Literal["debug", "info", "warn", "error"] = "warn"

    @model_validator(mode="after")
    def refine_finer_than_tree(self) -> "MerkleDiffConfig":
        if self.refine.enabled and self.refine.block_sizes[0] >= self.tree.block_size:
            raise ValueError(
                f"refine.block_sizes must be smaller than tree.block_size "
                f"({self.tree.block_size}), got {self.refine.block_sizes}"
            )
        return self
