"""SOCKS5 request/reply exchange."""

import asyncio
import struct
from dataclasses import dataclass

import structlog

from .address import Endpoint, encode_address, read_address, read_exactly
from .errors import ProtocolVersionMismatch, ProxyError
from .protocol import RESERVED, SOCKS_VERSION, Command, Reply

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProxyReply:
    """Outcome of a successful request."""
    status: Reply
    bound_endpoint: Endpoint


async def send_request(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    command: Command,
    target: Endpoint,
) -> ProxyReply:
    """
    Send a command over a negotiated connection and read the reply.

    The connection is left open on failure; the caller owns it.

    Args:
        reader: Control connection reader
        writer: Control connection writer
        command: CONNECT or UDP_ASSOCIATE
        target: Endpoint the command applies to

    Raises:
        ProtocolVersionMismatch: If the reply is not a SOCKS5 reply
        ProxyError: If the proxy reports a failure status
    """
    request = struct.pack("!BBB", SOCKS_VERSION, command, RESERVED) + encode_address(target)
    writer.write(request)
    await writer.drain()
    logger.debug("Request sent", command=command.name, target=str(target))

    version, status, _ = struct.unpack("!BBB", await read_exactly(reader, 3))

    if version != SOCKS_VERSION:
        raise ProtocolVersionMismatch(version)

    if status != Reply.SUCCEEDED:
        raise ProxyError.from_status(status)

    bound_endpoint, _ = await read_address(reader)
    logger.debug("Request accepted", command=command.name, bound=str(bound_endpoint))
    return ProxyReply(status=Reply(status), bound_endpoint=bound_endpoint)
