"""Shared fixtures: a scriptable SOCKS5 proxy running on localhost."""

import asyncio
import struct
from dataclasses import dataclass, field
from typing import Optional

import pytest_asyncio

from sockstun.config import ClientConfig
from sockstun.protocol import AuthMethod, Reply

# 1.2.3.4:1234
IPV4_SERIALIZED = bytes([0x01, 1, 2, 3, 4, 4, 210])


@dataclass
class Received:
    """What the mock proxy saw from the client."""
    socks_version: Optional[int] = None
    auth_methods: Optional[list[int]] = None
    auth_version: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    request_version: Optional[int] = None
    command: Optional[int] = None
    address: Optional[bytes] = None
    data: bytearray = field(default_factory=bytearray)
    datagrams: list[bytes] = field(default_factory=list)


def address_length(data: bytes, offset: int) -> int:
    """Length of the ATYP + ADDR + PORT block at offset."""
    atyp = data[offset]
    if atyp == 0x01:
        return 1 + 4 + 2
    if atyp == 0x04:
        return 1 + 16 + 2
    return 1 + 1 + data[offset + 1] + 2


class _UdpEcho(asyncio.DatagramProtocol):
    """Relay side of the mock: echoes datagrams back with a relay header."""

    def __init__(self, proxy: "MockProxy"):
        self.proxy = proxy
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.proxy.received.datagrams.append(data)
        header_length = 3 + address_length(data, 3)
        source = self.proxy.udp_source or data[3:header_length]
        self.transport.sendto(b"\x00\x00\x00" + source + data[header_length:], addr)


class MockProxy:
    """
    Minimal SOCKS5 proxy whose answers are set per test.

    After a successful request it echoes every byte it receives. With
    udp=True it also runs a UDP endpoint and reports it as the bound address.
    """

    def __init__(
        self,
        socks_version: int = 0x05,
        auth_method: int = AuthMethod.NO_AUTH,
        auth_version: int = 0x01,
        auth_fails: bool = False,
        reply_version: int = 0x05,
        reply_status: int = Reply.SUCCEEDED,
        bound_address: bytes = IPV4_SERIALIZED,
        udp: bool = False,
        udp_source: Optional[bytes] = None,
        hold_reply: bool = False,
    ):
        self.socks_version = socks_version
        self.auth_method = auth_method
        self.auth_version = auth_version
        self.auth_fails = auth_fails
        self.reply_version = reply_version
        self.reply_status = reply_status
        self.bound_address = bound_address
        self.udp = udp
        self.udp_source = udp_source
        self.hold_reply = hold_reply

        self.received = Received()
        self.connection_count = 0
        self.port: Optional[int] = None
        self._server: Optional[asyncio.Server] = None
        self._udp_transport: Optional[asyncio.DatagramTransport] = None
        self._writers: list[asyncio.StreamWriter] = []

    async def start(self) -> "MockProxy":
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

        if self.udp:
            loop = asyncio.get_running_loop()
            self._udp_transport, _ = await loop.create_datagram_endpoint(
                lambda: _UdpEcho(self), local_addr=("127.0.0.1", 0)
            )
            udp_port = self._udp_transport.get_extra_info("sockname")[1]
            self.bound_address = bytes([0x01, 127, 0, 0, 1]) + struct.pack("!H", udp_port)

        return self

    def config(self, username: Optional[str] = None, password: Optional[str] = None) -> ClientConfig:
        return ClientConfig.from_credentials("127.0.0.1", self.port, username=username, password=password)

    def send_datagram(self, data: bytes, addr: tuple[str, int]) -> None:
        """Send a raw datagram from the relay endpoint."""
        self._udp_transport.sendto(data, addr)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.connection_count += 1
        self._writers.append(writer)
        try:
            await self._serve(reader, writer)
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        received = self.received

        # Method negotiation
        received.socks_version, count = await reader.readexactly(2)
        received.auth_methods = list(await reader.readexactly(count))
        writer.write(bytes([self.socks_version, self.auth_method]))
        await writer.drain()

        # Username/password subnegotiation
        if self.auth_method == AuthMethod.USERNAME_PASSWORD:
            received.auth_version, length = await reader.readexactly(2)
            received.username = (await reader.readexactly(length)).decode("utf-8")
            length = (await reader.readexactly(1))[0]
            received.password = (await reader.readexactly(length)).decode("utf-8")
            writer.write(bytes([self.auth_version, 0x01 if self.auth_fails else 0x00]))
            await writer.drain()

        # Request
        received.request_version, received.command, _, atyp = await reader.readexactly(4)
        if atyp == 0x01:
            addr_data = await reader.readexactly(6)
        elif atyp == 0x04:
            addr_data = await reader.readexactly(18)
        else:
            length = (await reader.readexactly(1))[0]
            addr_data = bytes([length]) + await reader.readexactly(length + 2)
        received.address = bytes([atyp]) + addr_data

        if self.hold_reply:
            # Never answer; wait for the client to hang up
            await reader.read()
            return

        writer.write(bytes([self.reply_version, self.reply_status, 0x00]) + self.bound_address)
        await writer.drain()

        # Echo
        while data := await reader.read(4096):
            received.data += data
            writer.write(data)
            await writer.drain()

    async def close_connections(self) -> None:
        """Drop every control connection, as a proxy going away would."""
        for writer in self._writers:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
        self._writers.clear()

    async def close(self) -> None:
        await self.close_connections()
        if self._udp_transport is not None:
            self._udp_transport.close()
        self._server.close()
        await self._server.wait_closed()


@pytest_asyncio.fixture
async def mock_proxy():
    """Factory fixture: await mock_proxy(**options) to start a proxy."""
    proxies = []

    async def start(**options) -> MockProxy:
        proxy = await MockProxy(**options).start()
        proxies.append(proxy)
        return proxy

    yield start

    for proxy in proxies:
        await proxy.close()
