"""An append-only trie that hashes subtrees as soon as they are complete."""

from __future__ import annotations

from enum import Enum, auto
from typing import MutableMapping, Optional

from .codec import keccak256, rlp_decode, rlp_encode
from .nodes import TERMINATOR, binary_to_compact, keybytes_to_binary, prefix_len
from .trie import EMPTY_ROOT


class CommitDisabledError(Exception):
    """Raised when committing a stack trie that has no database."""

    def __init__(self) -> None:
        super().__init__("no database for committing")


class _Kind(Enum):
    EMPTY = auto()
    BRANCH = auto()
    EXT = auto()
    LEAF = auto()
    HASHED = auto()


class StackTrie:
    """A trie that expects keys in increasing order.

    Once a subtree can no longer receive inserts it is hashed (and written to
    ``db`` if one is given) and its memory released. The resulting root hash is
    identical to that of a :class:`~mitosis.trie.Trie` holding the same data.
    """

    def __init__(self, db: Optional[MutableMapping[bytes, bytes]] = None):
        self.db = db
        self._kind = _Kind.EMPTY
        self._key = b""
        self._val = b""
        self._offset = 0
        self._children: list[Optional[StackTrie]] = [None, None]

    @classmethod
    def _spawn(cls, db, kind: _Kind, offset: int, key: bytes = b"",
               val: bytes = b"", child: Optional["StackTrie"] = None) -> "StackTrie":
        node = cls(db)
        node._kind = kind
        node._offset = offset
        node._key = bytes(key)
        node._val = bytes(val)
        node._children[0] = child
        return node

    def update(self, key: bytes, value: bytes) -> None:
        """Insert ``value`` under ``key``; keys must arrive in increasing order."""
        if not value:
            raise ValueError("deletion not supported")
        bits = keybytes_to_binary(bytes(key))[:-1]
        self._insert(bits, bytes(value))

    def reset(self) -> None:
        """Return to an empty trie and detach from the database."""
        self.db = None
        self._kind = _Kind.EMPTY
        self._key = b""
        self._val = b""
        self._offset = 0
        self._children = [None, None]

    def _diff_index(self, key: bytes) -> int:
        return prefix_len(self._key, key[self._offset:])

    def _insert(self, key: bytes, value: bytes) -> None:
        kind = self._kind
        if kind is _Kind.BRANCH:
            idx = key[self._offset]
            for sibling in reversed(self._children[:idx]):
                if sibling is not None:
                    sibling._hash()
                    break
            child = self._children[idx]
            if child is None:
                child = StackTrie(self.db)
                child._offset = self._offset + 1
                self._children[idx] = child
            child._insert(key, value)
        elif kind is _Kind.EXT:
            self._insert_into_ext(key, value)
        elif kind is _Kind.LEAF:
            self._insert_into_leaf(key, value)
        elif kind is _Kind.EMPTY:
            self._kind = _Kind.LEAF
            self._key = key[self._offset:]
            self._val = value
        else:
            raise ValueError("trying to insert into a hashed node (keys out of order)")

    def _insert_into_ext(self, key: bytes, value: bytes) -> None:
        diff = self._diff_index(key)
        if diff == len(self._key):
            self._children[0]._insert(key, value)
            return
        if self._offset + diff >= len(key):
            raise ValueError("key is a prefix of an existing key")
        if diff < len(self._key) - 1:
            orig = self._spawn(self.db, _Kind.EXT, self._offset + diff + 1,
                               key=self._key[diff + 1:], child=self._children[0])
        else:
            orig = self._children[0]
        orig._hash()
        if diff == 0:
            self._children[0] = None
            parent = self
            self._kind = _Kind.BRANCH
        else:
            parent = self._spawn(self.db, _Kind.BRANCH, self._offset + diff)
            self._children[0] = parent
        start = self._offset + diff + 1
        new_leaf = self._spawn(self.db, _Kind.LEAF, start, key=key[start:], val=value)
        parent._children[self._key[diff]] = orig
        parent._children[key[self._offset + diff]] = new_leaf
        self._key = self._key[:diff]

    def _insert_into_leaf(self, key: bytes, value: bytes) -> None:
        diff = self._diff_index(key)
        if diff >= len(self._key):
            raise ValueError("trying to insert into existing key")
        if self._offset + diff >= len(key):
            raise ValueError("key is a prefix of an existing key")
        if diff == 0:
            self._kind = _Kind.BRANCH
            parent = self
            self._children[0] = None
        else:
            self._kind = _Kind.EXT
            parent = self._spawn(self.db, _Kind.BRANCH, self._offset + diff)
            self._children[0] = parent
        start = self._offset + diff + 1
        orig = self._spawn(self.db, _Kind.LEAF, start, key=self._key[diff + 1:], val=self._val)
        orig._hash()
        parent._children[self._key[diff]] = orig
        parent._children[key[self._offset + diff]] = self._spawn(
            self.db, _Kind.LEAF, start, key=key[start:], val=value)
        self._key = self._key[:diff]
        self._val = b""

    def _ref(self):
        """The node as a parent references it: a hash, or its embedded structure."""
        if len(self._val) < 32:
            return rlp_decode(self._val)
        return self._val

    def _hash(self) -> None:
        kind = self._kind
        if kind is _Kind.HASHED:
            return
        if kind is _Kind.BRANCH:
            refs = []
            for i, child in enumerate(self._children):
                if child is None:
                    refs.append(b"")
                    continue
                child._hash()
                refs.append(child._ref())
                self._children[i] = None
            refs.append(b"")
            encoded = rlp_encode(refs)
        elif kind is _Kind.EXT:
            child = self._children[0]
            child._hash()
            encoded = rlp_encode([binary_to_compact(self._key), child._ref()])
            self._children[0] = None
        elif kind is _Kind.LEAF:
            compact = binary_to_compact(self._key + bytes([TERMINATOR]))
            encoded = rlp_encode([compact, self._val])
        else:
            self._val = EMPTY_ROOT
            self._key = b""
            self._kind = _Kind.HASHED
            return
        self._key = b""
        self._kind = _Kind.HASHED
        if len(encoded) < 32:
            self._val = encoded
            return
        self._val = keccak256(encoded)
        if self.db is not None:
            self.db[self._val] = encoded

    def hash(self) -> bytes:
        """Hash the whole trie and return the root hash."""
        self._hash()
        if len(self._val) != 32:
            return keccak256(self._val)
        return self._val

    def commit(self) -> bytes:
        """Hash the trie, write the root node to the database and return its hash."""
        if self.db is None:
            raise CommitDisabledError()
        self._hash()
        if len(self._val) != 32:
            root = keccak256(self._val)
            self.db[root] = self._val
            return root
        return self._val