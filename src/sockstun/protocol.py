"""
SOCKS5 protocol constants.

Values from RFC 1928 (SOCKS5) and RFC 1929 (Username/Password Authentication).
"""

from enum import IntEnum

SOCKS_VERSION = 0x05
AUTH_VERSION = 0x01
RESERVED = 0x00

# Reserved (2 bytes) + fragment number, see RFC 1928 section 7
UDP_HEADER_PREFIX = b"\x00\x00\x00"

DEFAULT_PROXY_PORT = 1080


class AuthMethod(IntEnum):
    """SOCKS5 Authentication Methods (RFC 1928)."""
    NO_AUTH = 0x00
    GSSAPI = 0x01
    USERNAME_PASSWORD = 0x02
    NO_ACCEPTABLE = 0xFF


class Command(IntEnum):
    """SOCKS5 Commands (RFC 1928)."""
    CONNECT = 0x01
    BIND = 0x02
    UDP_ASSOCIATE = 0x03


class AddressType(IntEnum):
    """SOCKS5 Address Types (RFC 1928)."""
    IPV4 = 0x01
    DOMAIN = 0x03
    IPV6 = 0x04


class Reply(IntEnum):
    """SOCKS5 Reply Codes (RFC 1928)."""
    SUCCEEDED = 0x00
    GENERAL_FAILURE = 0x01
    NOT_ALLOWED = 0x02
    NETWORK_UNREACHABLE = 0x03
    HOST_UNREACHABLE = 0x04
    CONNECTION_REFUSED = 0x05
    TTL_EXPIRED = 0x06
    COMMAND_NOT_SUPPORTED = 0x07
    ADDRESS_TYPE_NOT_SUPPORTED = 0x08


REPLY_MESSAGES = {
    Reply.SUCCEEDED: "succeeded",
    Reply.GENERAL_FAILURE: "general SOCKS server failure",
    Reply.NOT_ALLOWED: "connection not allowed by ruleset",
    Reply.NETWORK_UNREACHABLE: "Network unreachable",
    Reply.HOST_UNREACHABLE: "Host unreachable",
    Reply.CONNECTION_REFUSED: "Connection refused",
    Reply.TTL_EXPIRED: "TTL expired",
    Reply.COMMAND_NOT_SUPPORTED: "Command not supported",
    Reply.ADDRESS_TYPE_NOT_SUPPORTED: "Address type not supported",
}

UNKNOWN_REPLY_MESSAGE = "unknown SOCKS error"


def reply_message(status: int) -> str:
    """Return the human readable message for a reply status byte."""
    return REPLY_MESSAGES.get(status, UNKNOWN_REPLY_MESSAGE)
