"""Operator-driven asker for manual verification."""

from __future__ import annotations

from typing import TextIO

from rich.console import Console
from rich.prompt import Confirm

from merklediff_core.merkle.models import MerkleNode


class InteractiveAsker:
    """Shows each hash and waits for a human to say whether it matches."""

    def __init__(self, console: Console | None = None, stream: TextIO | None = None) -> None:
        self.console = console or Console()
        self.stream = stream
        self.questions = 0

    def ask(self, node: MerkleNode) -> bool:
        self.questions += 1
        kind = "leaf" if node.is_leaf else f"depth {node.depth}"
        self.console.print(
            f"[dim]#{self.questions}[/dim] [cyan]{node.hash.hex()}[/cyan] "
            f"[dim]({kind}, bytes {node.offset}-{node.offset + node.length - 1})[/dim]"
        )
        return Confirm.ask("Same on the other side?", console=self.console, stream=self.stream)
