"""In-memory channel that answers every frame with itself."""

from __future__ import annotations

import io


class EchoChannel(io.RawIOBase):
    """Duplex byte channel whose reads return what was written.

    Under a NetworkAsker this is a self-loopback peer: every question is
    answered with the same hash, so a tree compared against itself has no
    mismatches.
    """

    def __init__(self) -> None:
        super().__init__()
        self._pending = bytearray()

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        self._pending.extend(data)
        return len(data)

    def readinto(self, buffer) -> int:
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        del self._pending[:n]
        return n
