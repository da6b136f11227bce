"""Block headers and the subset of their fields covered by the block hash."""

from __future__ import annotations

from dataclasses import dataclass, field

from .bitmap import Bitmap
from .codec import keccak256, rlp_decode, rlp_encode
from .transaction import (
    HASH_LENGTH,
    _as_bytes,
    _as_fixed,
    _as_list,
    _as_uint,
    _b64,
    _fixed,
    _hex,
    _json_object,
    _json_uint,
    _unb64,
    _unhex,
)

_ZERO_HASH = bytes(HASH_LENGTH)


@dataclass
class HeaderForHash:
    """The header fields that determine the block hash."""

    shard_id: int = 0
    prev_block_hash: bytes = _ZERO_HASH
    height: int = 0
    outbound_dst_bitmap: Bitmap = field(default_factory=Bitmap)
    tx_root: bytes = _ZERO_HASH
    state_root: bytes = _ZERO_HASH
    timestamp: int = 0

    def __post_init__(self) -> None:
        self.prev_block_hash = _fixed(self.prev_block_hash, HASH_LENGTH, "prev_block_hash")
        self.tx_root = _fixed(self.tx_root, HASH_LENGTH, "tx_root")
        self.state_root = _fixed(self.state_root, HASH_LENGTH, "state_root")
        if not isinstance(self.outbound_dst_bitmap, Bitmap):
            self.outbound_dst_bitmap = Bitmap(self.outbound_dst_bitmap)

    def _items(self) -> list:
        return [self.shard_id, self.prev_block_hash, self.height,
                bytes(self.outbound_dst_bitmap), self.tx_root, self.state_root, self.timestamp]

    @staticmethod
    def _parse_items(item) -> dict:
        shard, prev, height, bitmap, tx_root, state_root, ts = _as_list(item, 7, "header")
        return {
            "shard_id": _as_uint(shard, 32, "shard id"),
            "prev_block_hash": _as_fixed(prev, HASH_LENGTH, "prev block hash"),
            "height": _as_uint(height, 32, "height"),
            "outbound_dst_bitmap": Bitmap(_as_bytes(bitmap, "outbound bitmap")),
            "tx_root": _as_fixed(tx_root, HASH_LENGTH, "tx root"),
            "state_root": _as_fixed(state_root, HASH_LENGTH, "state root"),
            "timestamp": _as_uint(ts, 64, "timestamp"),
        }

    def compute_hash(self) -> bytes:
        """Keccak-256 of the RLP encoding of the hashed fields."""
        return keccak256(rlp_encode(HeaderForHash._items(self)))

    def to_bytes(self) -> bytes:
        return rlp_encode(self._items())

    @classmethod
    def from_bytes(cls, data: bytes) -> "HeaderForHash":
        return cls(**HeaderForHash._parse_items(rlp_decode(data)))


@dataclass
class Header(HeaderForHash):
    """A block header with its hash and aggregated signature."""

    hash: bytes = _ZERO_HASH
    sign_bitmap: Bitmap = field(default_factory=Bitmap)
    signature: bytes = b""

    def __post_init__(self) -> None:
        super().__post_init__()
        self.hash = _fixed(self.hash, HASH_LENGTH, "hash")
        self.signature = bytes(self.signature)
        if not isinstance(self.sign_bitmap, Bitmap):
            self.sign_bitmap = Bitmap(self.sign_bitmap)

    @classmethod
    def create(cls, shard_id: int, height: int, prev_block_hash: bytes, state_root: bytes,
               tx_root: bytes, outbound_bitmap, timestamp: int) -> "Header":
        """Build an unsigned header and fill in its hash."""
        header = cls(shard_id=shard_id, prev_block_hash=prev_block_hash, height=height,
                     outbound_dst_bitmap=outbound_bitmap, tx_root=tx_root,
                     state_root=state_root, timestamp=timestamp)
        header.hash = header.compute_hash()
        return header

    def get_hash(self) -> bytes:
        """Recompute the hash from the current field values."""
        return self.compute_hash()

    def _rlp_item(self) -> list:
        return [HeaderForHash._items(self), self.hash, bytes(self.sign_bitmap), self.signature]

    @classmethod
    def _from_rlp_item(cls, item) -> "Header":
        inner, digest, sign_bitmap, signature = _as_list(item, 4, "header")
        return cls(
            **HeaderForHash._parse_items(inner),
            hash=_as_fixed(digest, HASH_LENGTH, "hash"),
            sign_bitmap=Bitmap(_as_bytes(sign_bitmap, "sign bitmap")),
            signature=_as_bytes(signature, "signature"),
        )

    def to_bytes(self) -> bytes:
        return rlp_encode(self._rlp_item())

    @classmethod
    def from_bytes(cls, data: bytes) -> "Header":
        return cls._from_rlp_item(rlp_decode(data))

    def _json_fields(self) -> dict:
        return {
            "ShardId": self.shard_id,
            "PrevBlockHash": _hex(self.prev_block_hash),
            "Height": self.height,
            "OutboundDstBitmap": _b64(self.outbound_dst_bitmap),
            "TxRoot": _hex(self.tx_root),
            "StateRoot": _hex(self.state_root),
            "TimeStamp": self.timestamp,
            "Hash": _hex(self.hash),
            "SignBitMap": _b64(self.sign_bitmap),
            "Signature": _b64(self.signature),
        }

    @classmethod
    def _from_json_fields(cls, obj) -> "Header":
        obj = _json_object(obj, "header")
        zero = _hex(_ZERO_HASH)
        return cls(
            shard_id=_json_uint(obj, "ShardId", 32),
            prev_block_hash=_unhex(obj.get("PrevBlockHash", zero), HASH_LENGTH, "PrevBlockHash"),
            height=_json_uint(obj, "Height", 32),
            outbound_dst_bitmap=Bitmap(_unb64(obj.get("OutboundDstBitmap"), "OutboundDstBitmap")),
            tx_root=_unhex(obj.get("TxRoot", zero), HASH_LENGTH, "TxRoot"),
            state_root=_unhex(obj.get("StateRoot", zero), HASH_LENGTH, "StateRoot"),
            timestamp=_json_uint(obj, "TimeStamp", 64),
            hash=_unhex(obj.get("Hash", zero), HASH_LENGTH, "Hash"),
            sign_bitmap=Bitmap(_unb64(obj.get("SignBitMap"), "SignBitMap")),
            signature=_unb64(obj.get("Signature"), "Signature"),
        )

    def copy(self) -> "Header":
        """Return an independent copy. The signer bitmap is not carried over."""
        return Header(
            shard_id=self.shard_id,
            prev_block_hash=self.prev_block_hash,
            height=self.height,
            outbound_dst_bitmap=self.outbound_dst_bitmap.copy(),
            tx_root=self.tx_root,
            state_root=self.state_root,
            timestamp=self.timestamp,
            hash=self.hash,
            signature=self.signature,
        )