"""
UDP relay through a SOCKS5 proxy (UDP ASSOCIATE).

The relay owns two resources: a local UDP socket and the TCP control
connection the association was negotiated on. The proxy keeps the association
only while the control connection is open, so the two are always closed
together, including when the control connection hits EOF.
"""

import asyncio
import ipaddress
import socket
from enum import Enum
from typing import Optional

import structlog

from .address import Endpoint, classify_host, encode_address, unpack_address
from .config import ClientConfig
from .errors import RelayClosed
from .negotiation import negotiate
from .protocol import UDP_HEADER_PREFIX, AddressType, Command
from .request import send_request

logger = structlog.get_logger(__name__)


class RelayState(str, Enum):
    """Negotiation progress of a UDP relay."""
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class _DatagramQueue(asyncio.DatagramProtocol):
    """Queues incoming datagrams until the relay asks for them."""

    def __init__(self, maxsize: int):
        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue(maxsize)
        self._closed = False

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        try:
            self._queue.put_nowait(data)
        except asyncio.QueueFull:
            logger.debug("Dropping datagram, receive queue is full", size=len(data))

    def error_received(self, exc: Exception) -> None:
        logger.debug("UDP relay socket error", error=str(exc))

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._closed = True
        self._wake_receiver()

    def _wake_receiver(self) -> None:
        # Receivers only wait on an empty queue, so a full one has none to wake
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def qsize(self) -> int:
        return self._queue.qsize()

    async def get(self) -> bytes:
        if self._closed:
            raise RelayClosed()
        data = await self._queue.get()
        if data is None:
            # Pass the wakeup on to the next waiting receiver
            self._wake_receiver()
            raise RelayClosed()
        return data


def _socket_endpoint(sock: socket.socket) -> Endpoint:
    """Endpoint a bound socket listens on, in a form the codec can encode."""
    host, port = sock.getsockname()[:2]
    if sock.family == socket.AF_INET6:
        host = ipaddress.IPv6Address(host).exploded
    return Endpoint(host, port)


class UdpRelay:
    """
    Datagram socket whose traffic is relayed by a SOCKS5 proxy.

    The relay is created around an already bound socket and starts
    negotiating immediately in a background task. send() and receive() wait
    for that single negotiation, so they can be called right away.

    Must be created while an event loop is running.
    """

    MAX_BUFFER_SIZE = 65536
    MAX_QUEUED_DATAGRAMS = 1024

    def __init__(self, config: ClientConfig, sock: socket.socket):
        """
        Initialize the relay and schedule negotiation.

        Args:
            config: Proxy configuration
            sock: Bound, non-blocking UDP socket; the relay takes ownership
        """
        self._config = config
        self._sock = sock
        self.local_address = _socket_endpoint(sock)
        self.relay_endpoint: Optional[Endpoint] = None
        self._relay_address: Optional[tuple] = None

        self._state = RelayState.PENDING
        self._closed = False
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._protocol: Optional[_DatagramQueue] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._watcher: Optional[asyncio.Task] = None

        self._ready = asyncio.get_running_loop().create_task(self._establish())
        self._ready.add_done_callback(self._retrieve_failure)

    async def _establish(self) -> None:
        """Run UDP ASSOCIATE over a fresh control connection."""
        loop = asyncio.get_running_loop()

        try:
            if self._closed:
                raise RelayClosed("UDP relay closed before negotiation")
            self._transport, self._protocol = await loop.create_datagram_endpoint(
                lambda: _DatagramQueue(self.MAX_QUEUED_DATAGRAMS), sock=self._sock
            )
            self._reader, self._writer = await negotiate(self._config)
            if self._closed:
                raise RelayClosed("UDP relay closed during negotiation")

            reply = await send_request(
                self._reader, self._writer, Command.UDP_ASSOCIATE, self.local_address
            )
            relay_address = await self._resolve_relay(loop, reply.bound_endpoint)
            if self._closed:
                raise RelayClosed("UDP relay closed during negotiation")
        except Exception as e:
            closed_early = self._closed
            self._state = RelayState.FAILED
            logger.warning(
                "UDP relay negotiation failed",
                proxy=self._config.proxy_address,
                error=str(e),
            )
            await self._shutdown(quiet=True)
            if closed_early and not isinstance(e, RelayClosed):
                raise RelayClosed("UDP relay closed during negotiation") from e
            raise

        self.relay_endpoint = reply.bound_endpoint
        self._relay_address = relay_address
        self._state = RelayState.READY
        self._watcher = loop.create_task(self._watch_control())

        logger.info(
            "UDP relay ready",
            proxy=self._config.proxy_address,
            local=str(self.local_address),
            relay=str(self.relay_endpoint),
        )

    @staticmethod
    def _retrieve_failure(task: asyncio.Task) -> None:
        # Failures are re-raised from wait_ready(); don't warn about
        # relays that were never used.
        if not task.cancelled():
            task.exception()

    async def _watch_control(self) -> None:
        """Tear the relay down once the control connection goes away."""
        try:
            while await self._reader.read(self.MAX_BUFFER_SIZE):
                pass
        except OSError as e:
            logger.debug("Control connection error", error=str(e))

        if not self._closed:
            logger.info(
                "Control connection closed, closing UDP relay",
                proxy=self._config.proxy_address,
                relay=str(self.relay_endpoint),
            )
            await self._shutdown(quiet=True)

    async def wait_ready(self) -> None:
        """
        Wait for negotiation to finish.

        Every caller shares the same attempt. Cancelling a waiter does not
        cancel the negotiation.

        Raises:
            Socks5Error: The negotiation failure, for every caller
            OSError: If the proxy could not be reached
        """
        await asyncio.shield(self._ready)

    async def _resolve_relay(self, loop: asyncio.AbstractEventLoop, endpoint: Endpoint) -> tuple:
        """
        Socket address to send datagrams to.

        An all-zero address means the proxy host itself. Host names are
        resolved here, once, so sendto() never blocks on a lookup.
        """
        host = endpoint.host
        try:
            if ipaddress.ip_address(host).is_unspecified:
                host = self._config.proxy_host
        except ValueError:
            pass

        if classify_host(host) != AddressType.DOMAIN:
            return host, endpoint.port

        infos = await loop.getaddrinfo(
            host, endpoint.port, family=self._sock.family, type=socket.SOCK_DGRAM
        )
        return infos[0][4]

    async def send(self, payload: bytes, destination: Endpoint) -> None:
        """
        Send one datagram to destination through the proxy.

        Raises:
            RelayClosed: If the relay has been closed
            DomainTooLong: If destination cannot be encoded
        """
        await self.wait_ready()
        if self._closed:
            raise RelayClosed()

        datagram = UDP_HEADER_PREFIX + encode_address(destination) + bytes(payload)
        self._transport.sendto(datagram, self._relay_address)

    async def receive(self) -> tuple[bytes, Endpoint]:
        """
        Receive one relayed datagram.

        Datagrams with reserved or fragment bytes set are dropped. At most
        MAX_QUEUED_DATAGRAMS wait to be received; further arrivals are
        dropped until the backlog is drained.

        Returns:
            Payload and the endpoint it came from

        Raises:
            RelayClosed: If the relay is or becomes closed
        """
        await self.wait_ready()
        if self._closed:
            raise RelayClosed()

        while True:
            data = await self._protocol.get()
            if data[:3] != UDP_HEADER_PREFIX:
                logger.debug("Dropping datagram with reserved or fragment bits set", size=len(data))
                continue

            source, consumed = await unpack_address(data, 3)
            return data[3 + consumed:], source

    async def receive_into(self, buffer) -> tuple[int, Endpoint]:
        """
        Receive one relayed datagram into a writable buffer.

        Payload bytes beyond the buffer's size are discarded.

        Returns:
            Number of bytes written and the endpoint they came from
        """
        payload, source = await self.receive()
        view = memoryview(buffer).cast("B")
        size = min(len(view), len(payload))
        view[:size] = payload[:size]
        return size, source

    async def close(self) -> None:
        """
        Close the UDP socket and the control connection.

        Both are attempted; the first error is raised afterwards.
        """
        if self._closed:
            return
        await self._shutdown(quiet=False)

    async def _shutdown(self, quiet: bool) -> None:
        self._closed = True
        first_error: Optional[BaseException] = None

        try:
            if self._transport is not None:
                self._transport.close()
            else:
                self._sock.close()
        except OSError as e:
            first_error = e

        writer, self._writer = self._writer, None
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError as e:
                first_error = first_error or e

        watcher = self._watcher
        if watcher is not None and watcher is not asyncio.current_task():
            watcher.cancel()

        if first_error is not None:
            if not quiet:
                raise first_error
            logger.debug("Error while closing UDP relay", error=str(first_error))

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def local_socket(self) -> socket.socket:
        """The UDP socket datagrams are sent and received on."""
        return self._sock

    @property
    def queued_datagrams(self) -> int:
        """Datagrams received from the relay but not yet returned by receive()."""
        if self._protocol is None:
            return 0
        return self._protocol.qsize()

    async def __aenter__(self) -> "UdpRelay":
        await self.wait_ready()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return (
            f"<UdpRelay local={self.local_address} relay={self.relay_endpoint} "
            f"state={self._state.value} closed={self._closed}>"
        )
