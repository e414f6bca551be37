"""Tests for the SOCKS5 address codec."""

import asyncio

import pytest

from sockstun.address import (
    Endpoint,
    classify_host,
    encode_address,
    read_address,
    read_exactly,
    unpack_address,
)
from sockstun.errors import DomainTooLong, UnexpectedEndOfStream, UnrecognizedAddressType
from sockstun.protocol import AddressType


def stream_of(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


class TestEncodeAddress:
    """Tests for encode_address."""

    def test_ipv4(self):
        """Test IPv4 hosts encode as four octets."""
        assert encode_address(Endpoint("1.2.3.4", 1234)) == bytes([0x01, 1, 2, 3, 4, 4, 210])

    def test_ipv6(self):
        """Test IPv6 hosts encode as eight big-endian groups."""
        encoded = encode_address(Endpoint("102:304:506:708:90a:b0c:d0e:f10", 5678))
        assert encoded == bytes([0x04, *range(1, 17), 22, 46])

    def test_domain(self):
        """Test domain names are length-prefixed."""
        encoded = encode_address(Endpoint("example.com", 3106))
        assert encoded == b"\x03\x0bexample.com\x0c\x22"

    def test_domain_utf8(self):
        """Test the length prefix counts UTF-8 bytes, not characters."""
        encoded = encode_address(Endpoint("bücher.de", 80))
        assert encoded[1] == len("bücher.de".encode("utf-8"))
        assert encoded[2:-2].decode("utf-8") == "bücher.de"

    def test_domain_at_limit(self):
        """Test a 255 byte domain is accepted."""
        encoded = encode_address(Endpoint("a" * 255, 80))
        assert encoded[1] == 255
        assert len(encoded) == 1 + 1 + 255 + 2

    def test_domain_too_long(self):
        """Test domains over 255 bytes are rejected, not truncated."""
        with pytest.raises(DomainTooLong) as exc_info:
            encode_address(Endpoint("a" * 256, 80))
        assert exc_info.value.length == 256

    def test_domain_too_long_is_value_error(self):
        """Test encoding errors can be caught as ValueError."""
        with pytest.raises(ValueError):
            encode_address(Endpoint("é" * 200, 80))


class TestClassifyHost:
    """Tests for host classification."""

    @pytest.mark.parametrize("host,expected", [
        ("127.0.0.1", AddressType.IPV4),
        ("255.255.255.255", AddressType.IPV4),
        ("300.1.1.1", AddressType.DOMAIN),
        ("1.2.3", AddressType.DOMAIN),
        ("1.2.3.4.example", AddressType.DOMAIN),
        ("fe80:0:0:0:0:0:0:1", AddressType.IPV6),
        ("FE80:0:0:0:0:0:0:ABCD", AddressType.IPV6),
        ("fe80::1", AddressType.DOMAIN),
        ("1.2.3.4\n", AddressType.DOMAIN),
        ("\u0661.\u0662.\u0663.\u0664", AddressType.DOMAIN),
        ("fe80:0:0:0:0:0:0:1\n", AddressType.DOMAIN),
        ("localhost", AddressType.DOMAIN),
    ])
    def test_classify(self, host, expected):
        """Test the address type chosen for each host form."""
        assert classify_host(host) == expected
        assert Endpoint(host, 80).kind == expected

    def test_invalid_port(self):
        """Test ports outside 0-65535 are rejected."""
        with pytest.raises(ValueError):
            Endpoint("localhost", 65536)
        with pytest.raises(ValueError):
            Endpoint("localhost", -1)


class TestReadAddress:
    """Tests for read_address and unpack_address."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("endpoint,consumed", [
        (Endpoint("1.2.3.4", 1234), 7),
        (Endpoint("102:304:506:708:90a:b0c:d0e:f10", 5678), 19),
        (Endpoint("example.com", 3106), 15),
        (Endpoint("0.0.0.0", 0), 7),
        (Endpoint("1.2.3.4\n", 80), 12),
    ])
    async def test_round_trip(self, endpoint, consumed):
        """Test decoding an encoded endpoint gives it back."""
        decoded, size = await unpack_address(encode_address(endpoint))
        assert decoded == endpoint
        assert size == consumed

    @pytest.mark.asyncio
    async def test_ipv6_formatting(self):
        """Test IPv6 groups are rendered as lowercase hex without padding."""
        data = bytes([0x04] + [0] * 15 + [0xAB, 0, 80])
        endpoint, _ = await unpack_address(data)
        assert endpoint == Endpoint("0:0:0:0:0:0:0:ab", 80)

    @pytest.mark.asyncio
    async def test_offset_and_trailing_data(self):
        """Test decoding starts at offset and leaves trailing bytes alone."""
        data = b"\x00\x00\x00" + encode_address(Endpoint("example.com", 53)) + b"payload"
        endpoint, consumed = await unpack_address(data, 3)
        assert endpoint == Endpoint("example.com", 53)
        assert data[3 + consumed:] == b"payload"

    @pytest.mark.asyncio
    async def test_stream_left_positioned(self):
        """Test read_address consumes exactly the address block."""
        reader = stream_of(encode_address(Endpoint("1.2.3.4", 80)) + b"rest")
        await read_address(reader)
        assert await reader.read() == b"rest"

    @pytest.mark.asyncio
    async def test_unrecognized_type(self):
        """Test unknown address types are rejected."""
        with pytest.raises(UnrecognizedAddressType) as exc_info:
            await unpack_address(bytes([0x02, 1, 2, 3, 4, 0, 80]))
        assert exc_info.value.address_type == 0x02

    @pytest.mark.asyncio
    async def test_truncated_address(self):
        """Test a short address fails instead of returning partial data."""
        with pytest.raises(UnexpectedEndOfStream) as exc_info:
            await unpack_address(bytes([0x01, 1, 2]))
        assert exc_info.value.missing == 2

    @pytest.mark.asyncio
    async def test_truncated_port(self):
        """Test a missing port byte fails."""
        with pytest.raises(UnexpectedEndOfStream):
            await unpack_address(bytes([0x01, 1, 2, 3, 4, 0]))

    @pytest.mark.asyncio
    async def test_truncated_domain(self):
        """Test a domain shorter than its length prefix fails."""
        with pytest.raises(UnexpectedEndOfStream):
            await unpack_address(b"\x03\x0bexample")


class TestReadExactly:
    """Tests for read_exactly."""

    @pytest.mark.asyncio
    async def test_waits_for_all_bytes(self):
        """Test partial writes are assembled before returning."""
        reader = asyncio.StreamReader()

        async def feed():
            for chunk in (b"ab", b"c", b"de"):
                await asyncio.sleep(0)
                reader.feed_data(chunk)

        feeder = asyncio.create_task(feed())
        assert await read_exactly(reader, 5) == b"abcde"
        await feeder

    @pytest.mark.asyncio
    async def test_eof(self):
        """Test EOF before the requested size raises."""
        with pytest.raises(UnexpectedEndOfStream) as exc_info:
            await read_exactly(stream_of(b"abc"), 5)
        assert exc_info.value.missing == 2
        assert "expected to read 2 more bytes" in str(exc_info.value)
        assert isinstance(exc_info.value, EOFError)
