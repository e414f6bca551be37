"""
SOCKS5 client exceptions.

Every protocol failure raised by sockstun derives from Socks5Error, so callers
can catch a single type while still telling the failure modes apart.
"""

from typing import Optional

from .protocol import REPLY_MESSAGES, reply_message


class Socks5Error(Exception):
    """Base class for SOCKS5 client errors."""


class ProtocolVersionMismatch(Socks5Error):
    """Raised when the proxy answers with a SOCKS version other than 5."""

    def __init__(self, version: int):
        super().__init__(f"unsupported SOCKS version number: {version}")
        self.version = version


class NoAcceptableAuthMethod(Socks5Error):
    """Raised when the proxy rejects every offered authentication method."""

    def __init__(self):
        super().__init__("no acceptable authentication methods")


class UnsupportedAuthMethod(Socks5Error):
    """Raised when the proxy selects a method the client did not offer."""

    def __init__(self, method: int):
        super().__init__(f"proxy selected an authentication method that was not offered: {method}")
        self.method = method


class AuthVersionMismatch(Socks5Error):
    """Raised when the subnegotiation reply carries an unknown version."""

    def __init__(self, version: int):
        super().__init__(f"unsupported authentication version number: {version}")
        self.version = version


class AuthenticationFailed(Socks5Error):
    """Raised when the proxy rejects the username/password."""

    def __init__(self, status: Optional[int] = None):
        super().__init__("authentication failed")
        self.status = status


class EncodingError(Socks5Error, ValueError):
    """Raised when a value cannot be represented on the wire."""


class DomainTooLong(EncodingError):
    """Domain names are length-prefixed with a single byte."""

    def __init__(self, length: int):
        super().__init__(f"domain name is {length} bytes long, the maximum is 255")
        self.length = length


class CredentialTooLong(EncodingError):
    """Usernames and passwords are length-prefixed with a single byte."""

    def __init__(self, field: str, length: int):
        super().__init__(f"{field} is {length} bytes long, the maximum is 255")
        self.field = field
        self.length = length


class UnexpectedEndOfStream(Socks5Error, EOFError):
    """Raised when the proxy closes the stream in the middle of a message."""

    def __init__(self, missing: int):
        super().__init__(f"reached EOF but we expected to read {missing} more bytes")
        self.missing = missing


class UnrecognizedAddressType(Socks5Error):
    """Raised when an address carries a type byte outside RFC 1928."""

    def __init__(self, address_type: int):
        super().__init__(f"unexpected address type: {address_type}")
        self.address_type = address_type


class ProxyError(Socks5Error):
    """Raised when the proxy answers a request with a failure status."""

    def __init__(self, status: int):
        super().__init__(reply_message(status))
        self.status = status

    @classmethod
    def from_status(cls, status: int) -> "ProxyError":
        """Build the error matching a reply status byte."""
        if status in REPLY_MESSAGES:
            return cls(status)
        return UnknownProxyError(status)


class UnknownProxyError(ProxyError):
    """Raised for reply status codes outside the RFC 1928 table."""


class RelayClosed(Socks5Error):
    """Raised when using a UDP relay that has been closed."""

    def __init__(self, message: str = "UDP relay is closed"):
        super().__init__(message)
