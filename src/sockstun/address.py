"""
SOCKS5 address codec.

Encodes endpoints into the ATYP/ADDR/PORT layout shared by requests, replies
and UDP relay headers, and decodes them back from a stream or a datagram.
"""

import asyncio
import re
import struct
from dataclasses import dataclass

from .errors import DomainTooLong, UnexpectedEndOfStream, UnrecognizedAddressType
from .protocol import AddressType

_IPV4_PATTERN = re.compile(r"[0-9]{1,3}(?:\.[0-9]{1,3}){3}")
_IPV6_PATTERN = re.compile(r"(?:[0-9a-f]{1,4}:){7}[0-9a-f]{1,4}", re.IGNORECASE)

MAX_DOMAIN_LENGTH = 255


@dataclass(frozen=True)
class Endpoint:
    """A host/port pair as carried in SOCKS5 messages."""
    host: str
    port: int

    def __post_init__(self):
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535")

    @property
    def kind(self) -> AddressType:
        """Address type the host is encoded as."""
        return classify_host(self.host)

    def __str__(self) -> str:
        if self.kind == AddressType.IPV6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def classify_host(host: str) -> AddressType:
    """Determine the SOCKS5 address type for a host string."""
    if _IPV4_PATTERN.fullmatch(host) and all(int(octet) <= 255 for octet in host.split(".")):
        return AddressType.IPV4
    if _IPV6_PATTERN.fullmatch(host):
        return AddressType.IPV6
    return AddressType.DOMAIN


def encode_address(endpoint: Endpoint) -> bytes:
    """
    Encode an endpoint as ATYP + ADDR + PORT.

    Raises:
        DomainTooLong: If a domain name exceeds 255 bytes once UTF-8 encoded
    """
    kind = endpoint.kind

    if kind == AddressType.IPV4:
        octets = [int(octet) for octet in endpoint.host.split(".")]
        addr_data = struct.pack("!4B", *octets)
    elif kind == AddressType.IPV6:
        groups = [int(group, 16) for group in endpoint.host.split(":")]
        addr_data = struct.pack("!8H", *groups)
    else:
        domain_bytes = endpoint.host.encode("utf-8")
        if len(domain_bytes) > MAX_DOMAIN_LENGTH:
            raise DomainTooLong(len(domain_bytes))
        addr_data = struct.pack("!B", len(domain_bytes)) + domain_bytes

    return struct.pack("!B", kind) + addr_data + struct.pack("!H", endpoint.port)


async def read_exactly(reader: asyncio.StreamReader, size: int) -> bytes:
    """
    Read exactly size bytes from the stream.

    Raises:
        UnexpectedEndOfStream: If the stream ends before size bytes arrive
    """
    try:
        return await reader.readexactly(size)
    except asyncio.IncompleteReadError as e:
        raise UnexpectedEndOfStream(size - len(e.partial)) from e


async def read_address(reader: asyncio.StreamReader) -> tuple[Endpoint, int]:
    """
    Read an ATYP + ADDR + PORT block from the stream.

    Returns:
        The decoded endpoint and the number of bytes consumed
    """
    atyp = (await read_exactly(reader, 1))[0]

    if atyp == AddressType.IPV4:
        addr_data = await read_exactly(reader, 4)
        host = ".".join(str(octet) for octet in addr_data)
        consumed = 1 + 4
    elif atyp == AddressType.IPV6:
        addr_data = await read_exactly(reader, 16)
        host = ":".join(f"{group:x}" for group in struct.unpack("!8H", addr_data))
        consumed = 1 + 16
    elif atyp == AddressType.DOMAIN:
        length = (await read_exactly(reader, 1))[0]
        host = (await read_exactly(reader, length)).decode("utf-8")
        consumed = 1 + 1 + length
    else:
        raise UnrecognizedAddressType(atyp)

    port = struct.unpack("!H", await read_exactly(reader, 2))[0]
    return Endpoint(host, port), consumed + 2


async def unpack_address(data: bytes, offset: int = 0) -> tuple[Endpoint, int]:
    """Decode an address block from an in-memory buffer starting at offset."""
    reader = asyncio.StreamReader()
    reader.feed_data(data[offset:])
    reader.feed_eof()
    return await read_address(reader)
