"""Bloom filter of known trie nodes and contract code, filled from a database."""

from __future__ import annotations

import logging
import math
import threading
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

HASH_LENGTH = 32
CODE_PREFIX = b"c"
_HASH_COUNT = 4
_MASK64 = (1 << 64) - 1


def _code_hash(key: bytes) -> Optional[bytes]:
    if key.startswith(CODE_PREFIX) and len(key) == len(CODE_PREFIX) + HASH_LENGTH:
        return key[len(CODE_PREFIX):]
    return None


class _BloomFilter:
    """A bit-array bloom filter indexed by 64-bit hashes."""

    def __init__(self, bits: int, k: int):
        self.m = bits
        self.k = k
        self.n = 0
        self._bits = bytearray((bits + 7) // 8)

    def _indices(self, value: int):
        low = value & 0xFFFFFFFF
        step = (value >> 32) | 1
        for i in range(self.k):
            yield ((low + i * step) & _MASK64) % self.m

    def add(self, value: int) -> None:
        for idx in self._indices(value):
            self._bits[idx >> 3] |= 1 << (idx & 7)
        self.n += 1

    def contains(self, value: int) -> bool:
        return all(self._bits[idx >> 3] & (1 << (idx & 7)) for idx in self._indices(value))

    def false_positive_probability(self) -> float:
        return (1.0 - math.exp(-self.k * self.n / self.m)) ** self.k


class SyncBloom:
    """Answers "maybe present" / "definitely absent" for node and code hashes.

    The filter populates itself from ``database`` in a background thread; until
    that finishes every query reports possible presence.
    """

    def __init__(self, memory: int, database: Iterable[bytes]):
        if memory <= 0:
            raise ValueError("bloom memory must be positive")
        self._bloom: Optional[_BloomFilter] = _BloomFilter(memory * 1024 * 1024 * 8, _HASH_COUNT)
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._closed = threading.Event()
        logger.info("Allocated fast sync bloom: %d bytes", memory * 1024 * 1024)
        self._thread = threading.Thread(target=self._init, args=(database,), daemon=True)
        self._thread.start()

    @staticmethod
    def _key_value(hash: bytes) -> int:
        return int.from_bytes(bytes(hash)[:8], "big")

    def _init(self, database: Iterable[bytes]) -> None:
        for key in list(database):
            if self._closed.is_set():
                break
            key = bytes(key)
            if len(key) == HASH_LENGTH:
                digest = key
            else:
                digest = _code_hash(key)
                if digest is None:
                    continue
            with self._lock:
                if self._bloom is not None:
                    self._bloom.add(self._key_value(digest))
        if self._closed.is_set():
            return
        with self._lock:
            if self._bloom is not None:
                logger.info("Initialized state bloom: items=%d errorrate=%g",
                            self._bloom.n, self._bloom.false_positive_probability())
        self._ready.set()

    def add(self, hash: bytes) -> None:
        """Insert a node or code hash."""
        if self._closed.is_set():
            return
        with self._lock:
            if self._bloom is not None:
                self._bloom.add(self._key_value(hash))

    def contains(self, hash: bytes) -> bool:
        """False only if the hash is definitely absent; True while initializing."""
        if not self._ready.is_set():
            return True
        with self._lock:
            if self._bloom is None:
                return True
            return self._bloom.contains(self._key_value(hash))

    def false_positive_probability(self) -> float:
        """Current estimated false-positive rate."""
        with self._lock:
            if self._bloom is None:
                return 0.0
            return self._bloom.false_positive_probability()

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until initialization completes; return whether it did."""
        return self._ready.wait(timeout)

    def close(self) -> None:
        """Stop initialization and release the filter."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._thread.join()
        with self._lock:
            if self._bloom is not None:
                logger.info("Deallocated state bloom: items=%d errorrate=%g",
                            self._bloom.n, self._bloom.false_positive_probability())
            self._ready.clear()
            self._bloom = None