"""Transports implementing the Ask capability."""

from merklediff_core.transport.base import Asker
from merklediff_core.transport.interactive import InteractiveAsker
from merklediff_core.transport.loopback import EchoChannel
from merklediff_core.transport.network import (
    NetworkAsker,
    accept_connection,
    open_connection,
    parse_address,
)

__all__ = [
    "Asker",
    "EchoChannel",
    "InteractiveAsker",
    "NetworkAsker",
    "accept_connection",
    "open_connection",
    "parse_address",
]
