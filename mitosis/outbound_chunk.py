"""Transactions sent from one shard to another, with their inclusion proof."""

from __future__ import annotations

from dataclasses import dataclass, field

from .codec import rlp_decode, rlp_encode
from .derive_sha import get_chunk_root
from .transaction import (
    HASH_LENGTH,
    Transaction,
    _as_bytes,
    _as_fixed,
    _as_list,
    _b64,
    _dump_json,
    _fixed,
    _hex,
    _json_object,
    _load_json,
    _unb64,
    _unhex,
)
from .trie import Trie


@dataclass
class OutboundChunk:
    """Transactions from the block ``block_hash`` destined for one shard."""

    block_hash: bytes = bytes(HASH_LENGTH)
    txs: list[Transaction] = field(default_factory=list)
    chunk_proof: list[bytes] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.block_hash = _fixed(self.block_hash, HASH_LENGTH, "block_hash")
        self.txs = list(self.txs)
        self.chunk_proof = [bytes(p) for p in self.chunk_proof]

    def _rlp_item(self) -> list:
        return [self.block_hash, [tx._rlp_item() for tx in self.txs], list(self.chunk_proof)]

    @classmethod
    def _from_rlp_item(cls, item) -> "OutboundChunk":
        block_hash, txs, proof = _as_list(item, 3, "outbound chunk")
        return cls(
            _as_fixed(block_hash, HASH_LENGTH, "block hash"),
            [Transaction._from_rlp_item(tx) for tx in _as_list(txs, None, "txs")],
            [_as_bytes(p, "chunk proof") for p in _as_list(proof, None, "chunk proof")],
        )

    def to_bytes(self) -> bytes:
        return rlp_encode(self._rlp_item())

    @classmethod
    def from_bytes(cls, data: bytes) -> "OutboundChunk":
        return cls._from_rlp_item(rlp_decode(data))

    def _json_fields(self) -> dict:
        return {
            "BlockHash": _hex(self.block_hash),
            "Txs": [tx._json_fields() for tx in self.txs],
            "ChunkProof": [_b64(p) for p in self.chunk_proof],
        }

    @classmethod
    def _from_json_fields(cls, obj) -> "OutboundChunk":
        obj = _json_object(obj, "outbound chunk")
        return cls(
            _unhex(obj.get("BlockHash", _hex(bytes(HASH_LENGTH))), HASH_LENGTH, "BlockHash"),
            [Transaction._from_json_fields(tx) for tx in obj.get("Txs") or []],
            [_unb64(p, "ChunkProof") for p in obj.get("ChunkProof") or []],
        )

    def _to_json(self) -> bytes:
        return _dump_json(self._json_fields())

    @classmethod
    def _from_json(cls, data) -> "OutboundChunk":
        return cls._from_json_fields(_load_json(data))

    def copy(self) -> "OutboundChunk":
        return OutboundChunk(self.block_hash, [tx.copy() for tx in self.txs], list(self.chunk_proof))

    def root(self) -> bytes:
        """Merkle root over the hashes of the chunk's transactions."""
        return get_chunk_root(self.txs, Trie())