"""
SOCKS5 method negotiation and username/password subnegotiation.

Opens the control connection to the proxy and brings it to the point where a
request can be sent.
"""

import asyncio
import struct

import structlog

from .address import read_exactly
from .config import ClientConfig, PasswordAuth
from .errors import (
    AuthenticationFailed,
    AuthVersionMismatch,
    CredentialTooLong,
    NoAcceptableAuthMethod,
    ProtocolVersionMismatch,
    UnsupportedAuthMethod,
)
from .protocol import AUTH_VERSION, SOCKS_VERSION, AuthMethod

logger = structlog.get_logger(__name__)

MAX_CREDENTIAL_LENGTH = 255


async def negotiate(config: ClientConfig) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """
    Connect to the proxy and complete method negotiation.

    Args:
        config: Proxy location and credentials

    Returns:
        Reader and writer of the authenticated control connection

    Raises:
        ProtocolVersionMismatch: If the proxy does not speak SOCKS5
        NoAcceptableAuthMethod: If the proxy rejects all offered methods
        AuthenticationFailed: If the proxy rejects the credentials
        OSError: If the proxy cannot be reached
    """
    reader, writer = await asyncio.open_connection(config.proxy_host, config.proxy_port)
    logger.debug("Control connection opened", proxy=config.proxy_address)

    try:
        method = await _select_method(reader, writer, config)
        if method == AuthMethod.USERNAME_PASSWORD:
            await _authenticate(reader, writer, config.auth)
    except Exception:
        await close_quietly(writer)
        raise

    return reader, writer


async def _select_method(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    config: ClientConfig,
) -> AuthMethod:
    """Send the greeting and return the method chosen by the proxy."""
    methods = bytes(config.auth_methods)
    writer.write(struct.pack("!BB", SOCKS_VERSION, len(methods)) + methods)
    await writer.drain()

    version, chosen_method = struct.unpack("!BB", await read_exactly(reader, 2))

    if version != SOCKS_VERSION:
        raise ProtocolVersionMismatch(version)

    if chosen_method == AuthMethod.NO_ACCEPTABLE:
        raise NoAcceptableAuthMethod()

    if chosen_method not in config.auth_methods:
        raise UnsupportedAuthMethod(chosen_method)

    logger.debug("Proxy selected auth method", method=AuthMethod(chosen_method).name)
    return AuthMethod(chosen_method)


def encode_credentials(auth: PasswordAuth) -> bytes:
    """
    Build the RFC 1929 username/password request.

    Raises:
        CredentialTooLong: If either field exceeds 255 bytes
    """
    username_bytes = auth.username.encode("utf-8")
    password_bytes = auth.password.encode("utf-8")

    if len(username_bytes) > MAX_CREDENTIAL_LENGTH:
        raise CredentialTooLong("username", len(username_bytes))
    if len(password_bytes) > MAX_CREDENTIAL_LENGTH:
        raise CredentialTooLong("password", len(password_bytes))

    return (
        struct.pack("!BB", AUTH_VERSION, len(username_bytes)) + username_bytes
        + struct.pack("!B", len(password_bytes)) + password_bytes
    )


async def _authenticate(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    auth: PasswordAuth,
) -> None:
    """Perform username/password authentication (RFC 1929)."""
    writer.write(encode_credentials(auth))
    await writer.drain()

    version, status = struct.unpack("!BB", await read_exactly(reader, 2))

    if version != AUTH_VERSION:
        raise AuthVersionMismatch(version)

    if status != 0x00:
        raise AuthenticationFailed(status)

    logger.debug("Authentication successful", username=auth.username)


async def close_quietly(writer: asyncio.StreamWriter) -> None:
    """Close a stream, logging instead of raising on failure."""
    writer.close()
    try:
        await writer.wait_closed()
    except OSError as e:
        logger.debug("Error while closing control connection", error=str(e))
