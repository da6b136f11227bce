"""Shard blocks: a header, own transactions and inbound cross-shard chunks."""

from __future__ import annotations

from dataclasses import dataclass, field

from .codec import rlp_decode, rlp_encode
from .header import Header
from .outbound_chunk import OutboundChunk
from .transaction import Transaction, _as_list, _dump_json, _load_json


@dataclass
class Block:
    """A block of one shard."""

    header: Header = field(default_factory=Header)
    transactions: list[Transaction] = field(default_factory=list)
    inbound_chunks: list[OutboundChunk] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.transactions = list(self.transactions)
        self.inbound_chunks = list(self.inbound_chunks)

    def to_json(self) -> bytes:
        fields = self.header._json_fields()
        fields["Transactions"] = [tx._json_fields() for tx in self.transactions]
        fields["InboundChunk"] = [chunk._json_fields() for chunk in self.inbound_chunks]
        return _dump_json(fields)

    @classmethod
    def from_json(cls, data) -> "Block":
        obj = _load_json(data)
        return cls(
            Header._from_json_fields(obj),
            [Transaction._from_json_fields(tx) for tx in obj.get("Transactions") or []],
            [OutboundChunk._from_json_fields(c) for c in obj.get("InboundChunk") or []],
        )

    def _rlp_item(self) -> list:
        return [
            self.header._rlp_item(),
            [tx._rlp_item() for tx in self.transactions],
            [chunk._rlp_item() for chunk in self.inbound_chunks],
        ]

    @classmethod
    def _from_rlp_item(cls, item) -> "Block":
        header, txs, chunks = _as_list(item, 3, "block")
        return cls(
            Header._from_rlp_item(header),
            [Transaction._from_rlp_item(tx) for tx in _as_list(txs, None, "transactions")],
            [OutboundChunk._from_rlp_item(c) for c in _as_list(chunks, None, "inbound chunks")],
        )

    def to_bytes(self) -> bytes:
        return rlp_encode(self._rlp_item())

    @classmethod
    def from_bytes(cls, data: bytes) -> "Block":
        return cls._from_rlp_item(rlp_decode(data))

    def copy(self) -> "Block":
        return Block(
            self.header.copy(),
            [tx.copy() for tx in self.transactions],
            [chunk.copy() for chunk in self.inbound_chunks],
        )