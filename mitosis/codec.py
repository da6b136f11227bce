"""RLP encoding and Keccak-256 hashing."""

from __future__ import annotations

from typing import Union

from Crypto.Hash import keccak

RLPItem = Union[bytes, list]


class RLPDecodeError(ValueError):
    """Raised when input is not valid canonical RLP."""


def keccak256(*args: bytes) -> bytes:
    """Return the Keccak-256 digest of the concatenated arguments."""
    h = keccak.new(digest_bits=256)
    for part in args:
        h.update(bytes(part))
    return h.digest()


def encode_uint(value: int) -> bytes:
    """Encode a non-negative integer as minimal big-endian bytes (0 -> b'')."""
    if value < 0:
        raise ValueError("cannot encode a negative integer")
    if value == 0:
        return b""
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def decode_uint(data: bytes) -> int:
    """Decode minimal big-endian bytes into an integer."""
    if data[:1] == b"\x00":
        raise RLPDecodeError("integer has leading zero bytes")
    return int.from_bytes(data, "big")


def _length_prefix(length: int, offset: int) -> bytes:
    if length < 56:
        return bytes([offset + length])
    encoded = encode_uint(length)
    return bytes([offset + 55 + len(encoded)]) + encoded


def rlp_encode(item) -> bytes:
    """Encode bytes, non-negative ints, strings and nested lists as RLP."""
    if isinstance(item, bool):
        item = int(item)
    if isinstance(item, int):
        item = encode_uint(item)
    elif isinstance(item, str):
        item = item.encode("utf-8")
    if isinstance(item, (bytes, bytearray, memoryview)):
        raw = bytes(item)
        if len(raw) == 1 and raw[0] < 0x80:
            return raw
        return _length_prefix(len(raw), 0x80) + raw
    if isinstance(item, (list, tuple)):
        payload = b"".join(rlp_encode(elem) for elem in item)
        return _length_prefix(len(payload), 0xC0) + payload
    raise TypeError(f"cannot RLP-encode {type(item).__name__}")


def _read_length(data: bytes, pos: int, size_len: int) -> int:
    end = pos + size_len
    if end > len(data):
        raise RLPDecodeError("input too short for length")
    raw = data[pos:end]
    if raw[0] == 0:
        raise RLPDecodeError("length has leading zero bytes")
    length = int.from_bytes(raw, "big")
    if length < 56:
        raise RLPDecodeError("non-canonical long length")
    return length


def _decode_item(data: bytes, pos: int) -> tuple[RLPItem, int]:
    if pos >= len(data):
        raise RLPDecodeError("unexpected end of input")
    prefix = data[pos]
    if prefix < 0x80:
        return data[pos:pos + 1], pos + 1
    if prefix < 0xB8:
        length = prefix - 0x80
        start = pos + 1
        end = start + length
        if end > len(data):
            raise RLPDecodeError("string exceeds input")
        if length == 1 and data[start] < 0x80:
            raise RLPDecodeError("non-canonical single byte")
        return data[start:end], end
    if prefix < 0xC0:
        size_len = prefix - 0xB7
        length = _read_length(data, pos + 1, size_len)
        start = pos + 1 + size_len
        end = start + length
        if end > len(data):
            raise RLPDecodeError("string exceeds input")
        return data[start:end], end
    if prefix < 0xF8:
        length = prefix - 0xC0
        start = pos + 1
    else:
        size_len = prefix - 0xF7
        length = _read_length(data, pos + 1, size_len)
        start = pos + 1 + size_len
    end = start + length
    if end > len(data):
        raise RLPDecodeError("list exceeds input")
    items = []
    cursor = start
    while cursor < end:
        item, cursor = _decode_item(data, cursor)
        items.append(item)
    if cursor != end:
        raise RLPDecodeError("list content overflows its length")
    return items, end


def rlp_decode(data: bytes) -> RLPItem:
    """Decode one RLP item; the whole input must be consumed."""
    data = bytes(data)
    item, end = _decode_item(data, 0)
    if end != len(data):
        raise RLPDecodeError("trailing bytes after RLP item")
    return item