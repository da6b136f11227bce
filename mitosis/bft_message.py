"""Consensus messages exchanged during the BFT rounds."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from .bitmap import Bitmap
from .block import Block
from .codec import rlp_decode, rlp_encode
from .transaction import HASH_LENGTH, _as_bytes, _as_fixed, _as_list, _as_uint, _fixed


class MessageType(IntEnum):
    PREPARE = 0
    PREPARE_VOTE = 1
    PRECOMMIT = 2
    PRECOMMIT_VOTE = 3
    COMMIT = 4
    COMMIT_VOTE = 5


@dataclass
class BFTMessage:
    """A proposal or vote for a block, with the sender's signature and signer bitmap."""

    message_type: MessageType
    block_num: int
    block_hash: bytes
    block: Block = field(default_factory=Block)
    sender_sig: bytes = b""
    sender_pubkey_bitmap: Bitmap = field(default_factory=Bitmap)

    def __post_init__(self) -> None:
        self.message_type = MessageType(self.message_type)
        self.block_hash = _fixed(self.block_hash, HASH_LENGTH, "block_hash")
        self.sender_sig = bytes(self.sender_sig)
        if not isinstance(self.sender_pubkey_bitmap, Bitmap):
            self.sender_pubkey_bitmap = Bitmap(self.sender_pubkey_bitmap)

    @classmethod
    def create(cls, message_type: MessageType, block: Block, sign: bytes, bitmap) -> "BFTMessage":
        """Build a message about ``block``, taking its height and hash from the header."""
        return cls(message_type, block.header.height, block.header.hash, block, sign, bitmap)

    def to_bytes(self) -> bytes:
        return rlp_encode([
            int(self.message_type), self.block_num, self.block_hash,
            self.block._rlp_item(), self.sender_sig, bytes(self.sender_pubkey_bitmap),
        ])

    @classmethod
    def from_bytes(cls, data: bytes) -> "BFTMessage":
        kind, num, digest, block, sig, bitmap = _as_list(rlp_decode(data), 6, "bft message")
        return cls(
            MessageType(_as_uint(kind, 8, "message type")),
            _as_uint(num, 32, "block number"),
            _as_fixed(digest, HASH_LENGTH, "block hash"),
            Block._from_rlp_item(block),
            _as_bytes(sig, "signature"),
            Bitmap(_as_bytes(bitmap, "pubkey bitmap")),
        )

    def copy(self) -> "BFTMessage":
        return BFTMessage(
            self.message_type,
            self.block_num,
            self.block_hash,
            self.block.copy(),
            self.sender_sig,
            self.sender_pubkey_bitmap.copy(),
        )