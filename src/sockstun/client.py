"""
SOCKS5 Client.

Opens TCP tunnels (CONNECT) and UDP relays (UDP ASSOCIATE) through a SOCKS5
proxy, with optional username/password authentication.
"""

import socket
from typing import Optional

import structlog

from .address import Endpoint
from .config import ClientConfig
from .negotiation import close_quietly, negotiate
from .protocol import DEFAULT_PROXY_PORT, Command
from .request import send_request
from .tunnel import Socks5Tunnel
from .udp_relay import UdpRelay

logger = structlog.get_logger(__name__)


class Socks5Client:
    """
    SOCKS5 client bound to one proxy.

    Features:
    - RFC 1928/1929 compliant
    - Username/password authentication
    - CONNECT tunnels and UDP ASSOCIATE relays
    - Async I/O

    Each call opens its own control connection; nothing is pooled or retried.
    """

    DEFAULT_TARGET_HOST = "127.0.0.1"

    def __init__(self, config: ClientConfig):
        """
        Initialize the SOCKS5 client.

        Args:
            config: Proxy configuration including credentials
        """
        self.config = config

    async def connect(self, port: int, host: str = DEFAULT_TARGET_HOST) -> Socks5Tunnel:
        """
        Open a TCP tunnel to host:port through the proxy.

        Args:
            port: Target port
            host: Target hostname or IP address

        Returns:
            The tunnel; its traffic goes to the target

        Raises:
            Socks5Error: If negotiation or the request fails
            OSError: If the proxy cannot be reached
        """
        target = Endpoint(host, port)
        reader, writer = await negotiate(self.config)

        try:
            reply = await send_request(reader, writer, Command.CONNECT, target)
        except Exception:
            await close_quietly(writer)
            raise

        logger.info(
            "Connected through proxy",
            proxy=self.config.proxy_address,
            target=str(target),
            bound=str(reply.bound_endpoint),
        )
        return Socks5Tunnel(reader, writer, remote_address=target, local_address=reply.bound_endpoint)

    def listen_datagram(self, host: str = "0.0.0.0", port: int = 0) -> UdpRelay:
        """
        Bind a UDP socket and start associating it with the proxy.

        Returns immediately; negotiation runs in the background and
        UdpRelay.wait_ready() reports its outcome. Must be called from a
        running event loop.

        Args:
            host: Local address to bind to
            port: Local port to bind to (0 lets the OS choose)

        Raises:
            OSError: If the socket cannot be bound
        """
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            sock.setblocking(False)
            sock.bind((host, port))
            relay = UdpRelay(self.config, sock)
        except Exception:
            sock.close()
            raise

        logger.debug(
            "UDP socket bound",
            proxy=self.config.proxy_address,
            local=str(relay.local_address),
        )
        return relay


async def connect_via_socks5(
    proxy_host: str,
    target_host: str,
    target_port: int,
    proxy_port: int = DEFAULT_PROXY_PORT,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> Socks5Tunnel:
    """
    Convenience function to connect through a SOCKS5 proxy.

    Args:
        proxy_host: Proxy server hostname
        target_host: Target hostname
        target_port: Target port
        proxy_port: Proxy server port
        username: Optional username for authentication
        password: Optional password for authentication

    Returns:
        Connected tunnel
    """
    config = ClientConfig.from_credentials(
        proxy_host,
        proxy_port,
        username=username,
        password=password,
    )
    client = Socks5Client(config)
    return await client.connect(target_port, target_host)
