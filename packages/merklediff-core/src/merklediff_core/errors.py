"""Exception taxonomy for a diff session.

Every error is permanent for the session that raised it: nothing is retried
and there is no partial result.
"""

from __future__ import annotations


class MerkleDiffError(Exception):
    """Base class for errors that abort a comparison."""


class StreamError(MerkleDiffError):
    """Wraps an I/O failure on the byte source (open, read, seek)."""

    def __init__(self, operation: str, cause: Exception) -> None:
        self.operation = operation
        super().__init__(f"stream {operation} failed: {cause}")
        self.__cause__ = cause


class TransportError(MerkleDiffError):
    """Wraps a failure on the duplex channel, including short reads."""

    def __init__(self, operation: str, cause: Exception) -> None:
        self.operation = operation
        super().__init__(f"transport {operation} failed: {cause}")
        self.__cause__ = cause


class EmptyInputError(MerkleDiffError):
    """Raised when a tree would have no leaves and therefore no root."""

    def __init__(self, message: str = "cannot build a Merkle tree from empty input") -> None:
        super().__init__(message)
