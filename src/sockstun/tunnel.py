"""
TCP tunnel through a SOCKS5 proxy.

After a successful CONNECT the control connection carries the tunneled
traffic, so Socks5Tunnel is a thin pass-through over the asyncio streams.
"""

import asyncio

from .address import Endpoint
from .negotiation import close_quietly


class Socks5Tunnel:
    """
    A byte stream to a target, relayed by the proxy.

    remote_address is the target that was requested. local_address is the
    address the proxy reported as bound; it is metadata only and not a socket
    this process owns.
    """

    MAX_BUFFER_SIZE = 65536

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        remote_address: Endpoint,
        local_address: Endpoint,
    ):
        self._reader = reader
        self._writer = writer
        self.remote_address = remote_address
        self.local_address = local_address

    async def read(self, size: int = MAX_BUFFER_SIZE) -> bytes:
        """Read up to size bytes; returns b"" at end of stream."""
        return await self._reader.read(size)

    async def readexactly(self, size: int) -> bytes:
        """Read exactly size bytes."""
        return await self._reader.readexactly(size)

    async def write(self, data: bytes) -> None:
        """Send data through the tunnel."""
        self._writer.write(data)
        await self._writer.drain()

    def close_write(self) -> None:
        """Half-close the tunnel; reading stays possible."""
        self._writer.write_eof()

    async def close(self) -> None:
        """Close the tunnel."""
        await close_quietly(self._writer)

    @property
    def closed(self) -> bool:
        return self._writer.is_closing()

    @property
    def reader(self) -> asyncio.StreamReader:
        """Get the underlying stream reader."""
        return self._reader

    @property
    def writer(self) -> asyncio.StreamWriter:
        """Get the underlying stream writer."""
        return self._writer

    async def __aenter__(self) -> "Socks5Tunnel":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<Socks5Tunnel local={self.local_address} remote={self.remote_address}>"
