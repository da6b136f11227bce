"""Merkle roots over transaction and chunk lists."""

from __future__ import annotations

from typing import Iterable, Protocol

from .codec import rlp_encode

_CHUNK_KEY_BASE = 1001


class Hasher(Protocol):
    def reset(self) -> None: ...

    def update(self, key: bytes, value: bytes) -> None: ...

    def hash(self) -> bytes: ...


def get_chunk_root(txs: Iterable, hasher: Hasher) -> bytes:
    """Root over transaction hashes, keyed by RLP-encoded position starting at 1."""
    hasher.reset()
    for index, tx in enumerate(txs, start=1):
        hasher.update(rlp_encode(index), tx.hash)
    return hasher.hash()


def get_block_tx_root(chunks: Iterable, hasher: Hasher) -> bytes:
    """Root over chunk roots, keyed by RLP-encoded position starting at 1001."""
    hasher.reset()
    for index, chunk in enumerate(chunks, start=_CHUNK_KEY_BASE):
        hasher.update(rlp_encode(index), chunk.root())
    return hasher.hash()