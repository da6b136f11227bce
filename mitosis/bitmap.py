"""Compact bit sets indexed by validator or shard number."""

from __future__ import annotations

from typing import Optional


class Bitmap(bytearray):
    """A little-endian bit set: bit ``x`` lives in byte ``x // 8`` at position ``x % 8``."""

    @classmethod
    def with_capacity(cls, length: int) -> "Bitmap":
        """Return an all-clear bitmap able to hold ``length`` bits."""
        return cls((length + 7) // 8)

    def has_key(self, x: int) -> bool:
        """Return whether bit ``x`` is set."""
        return bool(self[x >> 3] & (1 << (x % 8)))

    def set_key(self, x: int) -> None:
        """Set bit ``x``."""
        self[x >> 3] |= 1 << (x % 8)

    def merge(self, other: "Bitmap") -> Optional[list[int]]:
        """OR ``other`` into this bitmap and return the bits that were newly set.

        Bitmaps of different lengths are not merged and None is returned.
        """
        if len(self) != len(other):
            return None
        new_keys: list[int] = []
        for i, (mine, theirs) in enumerate(zip(bytes(self), bytes(other))):
            diff = theirs & ~mine
            self[i] = mine | theirs
            new_keys.extend(i * 8 + bit for bit in range(8) if (diff >> bit) & 1)
        return new_keys

    def elements(self) -> list[int]:
        """Return the set bits in increasing order."""
        return [i * 8 + bit for i, byte in enumerate(self) for bit in range(8) if (byte >> bit) & 1]

    def size(self) -> int:
        """Return the number of set bits."""
        return sum(bin(byte).count("1") for byte in self)

    def copy(self) -> "Bitmap":
        """Return an independent copy."""
        return Bitmap(self)

    def __str__(self) -> str:
        return "[" + ",".join(str(byte) for byte in self) + "]"