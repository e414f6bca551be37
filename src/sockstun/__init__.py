"""
sockstun - SOCKS5 Tunnel Client

Route TCP connections and UDP datagrams through a SOCKS5 proxy:
- CONNECT tunnels exposed as async byte streams
- UDP ASSOCIATE relays tied to their control connection
- Username/password authentication (RFC 1929)
"""

__version__ = "1.0.0"
__author__ = "sockstun Team"

from .address import Endpoint, encode_address, read_address, unpack_address
from .client import Socks5Client, connect_via_socks5
from .config import ClientConfig, NoAuth, PasswordAuth
from .errors import (
    Socks5Error,
    ProtocolVersionMismatch,
    NoAcceptableAuthMethod,
    UnsupportedAuthMethod,
    AuthVersionMismatch,
    AuthenticationFailed,
    EncodingError,
    DomainTooLong,
    CredentialTooLong,
    UnexpectedEndOfStream,
    UnrecognizedAddressType,
    ProxyError,
    UnknownProxyError,
    RelayClosed,
)
from .negotiation import negotiate
from .request import ProxyReply, send_request
from .tunnel import Socks5Tunnel
from .udp_relay import RelayState, UdpRelay

__all__ = [
    "Endpoint",
    "encode_address",
    "read_address",
    "unpack_address",
    "Socks5Client",
    "connect_via_socks5",
    "ClientConfig",
    "NoAuth",
    "PasswordAuth",
    "negotiate",
    "ProxyReply",
    "send_request",
    "Socks5Tunnel",
    "RelayState",
    "UdpRelay",
    # Errors
    "Socks5Error",
    "ProtocolVersionMismatch",
    "NoAcceptableAuthMethod",
    "UnsupportedAuthMethod",
    "AuthVersionMismatch",
    "AuthenticationFailed",
    "EncodingError",
    "DomainTooLong",
    "CredentialTooLong",
    "UnexpectedEndOfStream",
    "UnrecognizedAddressType",
    "ProxyError",
    "UnknownProxyError",
    "RelayClosed",
]
