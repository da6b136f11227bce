"""Cross-shard transactions and application data payloads."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, replace
from typing import Any, Optional

from .codec import RLPDecodeError, decode_uint, keccak256, rlp_decode, rlp_encode

ADDRESS_LENGTH = 20
HASH_LENGTH = 32


def _as_bytes(item, what: str) -> bytes:
    if isinstance(item, list):
        raise RLPDecodeError(f"{what}: expected a string, got a list")
    return bytes(item)


def _as_uint(item, bits: int, what: str) -> int:
    value = decode_uint(_as_bytes(item, what))
    if value >> bits:
        raise RLPDecodeError(f"{what}: integer overflows {bits} bits")
    return value


def _as_fixed(item, size: int, what: str) -> bytes:
    raw = _as_bytes(item, what)
    if len(raw) != size:
        raise RLPDecodeError(f"{what}: expected {size} bytes, got {len(raw)}")
    return raw


def _as_list(item, length: Optional[int], what: str) -> list:
    if not isinstance(item, list):
        raise RLPDecodeError(f"{what}: expected a list")
    if length is not None and len(item) != length:
        raise RLPDecodeError(f"{what}: expected {length} elements, got {len(item)}")
    return item


def _fixed(value, size: int, what: str) -> bytes:
    raw = bytes(value)
    if len(raw) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(raw)}")
    return raw


def _hex(raw: bytes) -> str:
    return "0x" + bytes(raw).hex()


def _unhex(text: Any, size: int, what: str) -> bytes:
    if not isinstance(text, str) or text[:2] not in ("0x", "0X"):
        raise ValueError(f"{what}: expected a 0x-prefixed hex string")
    try:
        raw = bytes.fromhex(text[2:])
    except ValueError as exc:
        raise ValueError(f"{what}: invalid hex") from exc
    if len(raw) != size:
        raise ValueError(f"{what}: expected {size} bytes, got {len(raw)}")
    return raw


def _b64(raw: bytes) -> str:
    return base64.b64encode(bytes(raw)).decode("ascii")


def _unb64(text: Any, what: str) -> bytes:
    if text is None:
        return b""
    if not isinstance(text, str):
        raise ValueError(f"{what}: expected a base64 string")
    return base64.b64decode(text, validate=True)


def _json_uint(obj: dict, key: str, bits: int) -> int:
    value = obj.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0 or value >> bits:
        raise ValueError(f"{key}: expected an unsigned {bits}-bit integer")
    return value


def _json_object(obj: Any, what: str) -> dict:
    if not isinstance(obj, dict):
        raise ValueError(f"{what}: expected a JSON object")
    return obj


def _load_json(data) -> dict:
    if not data:
        raise ValueError("empty input")
    return _json_object(json.loads(data), "document")


def _dump_json(obj: dict) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode("utf-8")


@dataclass
class DataTemplate:
    """Application parameters carried in a transaction's data field."""

    parameter1: int = 0
    parameter2: str = ""
    parameter3: bytes = b""

    def to_bytes(self) -> bytes:
        return rlp_encode([self.parameter1, self.parameter2.encode("utf-8"), bytes(self.parameter3)])

    @classmethod
    def from_bytes(cls, data: bytes) -> "DataTemplate":
        p1, p2, p3 = _as_list(rlp_decode(data), 3, "data template")
        return cls(
            _as_uint(p1, 32, "parameter1"),
            _as_bytes(p2, "parameter2").decode("utf-8"),
            _as_bytes(p3, "parameter3"),
        )


@dataclass
class Transaction:
    """A value transfer between accounts, possibly across shards."""

    from_shard: int
    from_addr: bytes
    to_shard: int
    to_addr: bytes
    value: int
    data: bytes = b""
    hash: bytes = bytes(HASH_LENGTH)

    def __post_init__(self) -> None:
        self.from_addr = _fixed(self.from_addr, ADDRESS_LENGTH, "from_addr")
        self.to_addr = _fixed(self.to_addr, ADDRESS_LENGTH, "to_addr")
        self.data = bytes(self.data)
        self.hash = _fixed(self.hash, HASH_LENGTH, "hash")

    @classmethod
    def create(cls, from_shard: int, to_shard: int, from_addr: bytes, to_addr: bytes,
               value: int, data: bytes = b"") -> "Transaction":
        """Build a transaction and fill in its hash."""
        tx = cls(from_shard, from_addr, to_shard, to_addr, value, data)
        tx.hash = tx.compute_hash()
        return tx

    def compute_hash(self) -> bytes:
        """Keccak-256 of the transaction; the data payload is not part of the digest."""
        return keccak256(rlp_encode([
            self.from_shard, self.from_addr, self.to_shard, self.to_addr,
            self.value, b"", bytes(HASH_LENGTH),
        ]))

    def _rlp_item(self) -> list:
        return [self.from_shard, self.from_addr, self.to_shard, self.to_addr,
                self.value, self.data, self.hash]

    @classmethod
    def _from_rlp_item(cls, item) -> "Transaction":
        fs, fa, ts, ta, value, data, digest = _as_list(item, 7, "transaction")
        return cls(
            _as_uint(fs, 32, "from shard"),
            _as_fixed(fa, ADDRESS_LENGTH, "from address"),
            _as_uint(ts, 32, "to shard"),
            _as_fixed(ta, ADDRESS_LENGTH, "to address"),
            _as_uint(value, 64, "value"),
            _as_bytes(data, "data"),
            _as_fixed(digest, HASH_LENGTH, "hash"),
        )

    def to_bytes(self) -> bytes:
        return rlp_encode(self._rlp_item())

    @classmethod
    def from_bytes(cls, data: bytes) -> "Transaction":
        return cls._from_rlp_item(rlp_decode(data))

    def _json_fields(self) -> dict:
        return {
            "FromShard": self.from_shard,
            "FromAddr": _hex(self.from_addr),
            "ToShard": self.to_shard,
            "ToAddr": _hex(self.to_addr),
            "Value": self.value,
            "Data": _b64(self.data),
            "Hash": _hex(self.hash),
        }

    @classmethod
    def _from_json_fields(cls, obj) -> "Transaction":
        obj = _json_object(obj, "transaction")
        zero_addr = _hex(bytes(ADDRESS_LENGTH))
        return cls(
            _json_uint(obj, "FromShard", 32),
            _unhex(obj.get("FromAddr", zero_addr), ADDRESS_LENGTH, "FromAddr"),
            _json_uint(obj, "ToShard", 32),
            _unhex(obj.get("ToAddr", zero_addr), ADDRESS_LENGTH, "ToAddr"),
            _json_uint(obj, "Value", 64),
            _unb64(obj.get("Data"), "Data"),
            _unhex(obj.get("Hash", _hex(bytes(HASH_LENGTH))), HASH_LENGTH, "Hash"),
        )

    def to_json(self) -> bytes:
        return _dump_json(self._json_fields())

    @classmethod
    def from_json(cls, data) -> "Transaction":
        return cls._from_json_fields(_load_json(data))

    def copy(self) -> "Transaction":
        return replace(self)