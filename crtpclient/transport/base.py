"""Link boundary between the protocol stack and the physical transport.

A link moves whole CRTP packets (header byte plus payload) between the host
and one vehicle. Radio, USB or simulated links live outside this package and
only need to satisfy :class:`Link`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable


@runtime_checkable
class Link(Protocol):
    """Point-to-point packet link.

    Any failure must surface as :class:`crtpclient.errors.LinkError`; it is
    always fatal to the connection using the link.
    """

    async def send(self, data: bytes) -> None:
        """Transmit one packet."""
        ...

    async def receive(self) -> bytes:
        """Wait for the next inbound packet."""
        ...

    async def close(self) -> None:
        """Release the link. Must be safe to call more than once."""
        ...


LinkFactory = Callable[[str], Awaitable[Link]]


__all__ = ["Link", "LinkFactory"]
