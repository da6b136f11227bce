"""Binary Merkle Patricia trie backed by a key-value mapping."""

from __future__ import annotations

from typing import Callable, MutableMapping, Optional

from .codec import keccak256
from .nodes import (
    TERMINATOR,
    FullNode,
    HashNode,
    NodeFlag,
    ShortNode,
    ValueNode,
    compact_to_binary,
    decode_node,
    encode_node,
    hash_node,
    keybytes_to_binary,
    prefix_len,
)

EMPTY_ROOT = bytes.fromhex("56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421")
EMPTY_STATE = keccak256(b"")

LeafCallback = Callable[[bytes, bytes, bytes], None]


class MissingNodeError(Exception):
    """A node referenced by hash is not present in the database."""

    def __init__(self, node_hash: bytes, path: bytes):
        super().__init__(f"missing trie node {node_hash.hex()} (path {path.hex()})")
        self.node_hash = node_hash
        self.path = path


def _dirty() -> NodeFlag:
    return NodeFlag(None, True)


class Trie:
    """A Merkle trie; nodes are loaded from ``db`` on demand."""

    def __init__(self, root: Optional[bytes] = None,
                 db: Optional[MutableMapping[bytes, bytes]] = None):
        self.db = db
        self._root = None
        if root and any(root) and bytes(root) != EMPTY_ROOT:
            if db is None:
                raise ValueError("a database is required to open a non-empty root")
            self._root = self._resolve_hash(HashNode(root), b"")

    def _resolve_hash(self, n: HashNode, prefix: bytes):
        blob = self.db.get(bytes(n)) if self.db is not None else None
        if not blob:
            raise MissingNodeError(bytes(n), bytes(prefix))
        return decode_node(bytes(n), blob)

    def _resolve(self, n, prefix: bytes):
        if isinstance(n, HashNode):
            return self._resolve_hash(n, prefix)
        return n

    def get(self, key: bytes) -> Optional[bytes]:
        """Return the value stored under ``key`` or None."""
        value, newroot, resolved = self._get(self._root, keybytes_to_binary(key), 0)
        if resolved:
            self._root = newroot
        return None if value is None else bytes(value)

    def _get(self, n, key: bytes, pos: int):
        if n is None:
            return None, None, False
        if isinstance(n, ValueNode):
            return n, n, False
        if isinstance(n, ShortNode):
            if key[pos:pos + len(n.key)] != n.key:
                return None, n, False
            value, nn, resolved = self._get(n.val, key, pos + len(n.key))
            if resolved:
                n = n.copy()
                n.val = nn
            return value, n, resolved
        if isinstance(n, FullNode):
            value, nn, resolved = self._get(n.children[key[pos]], key, pos + 1)
            if resolved:
                n = n.copy()
                n.children[key[pos]] = nn
            return value, n, resolved
        if isinstance(n, HashNode):
            child = self._resolve_hash(n, key[:pos])
            value, nn, _ = self._get(child, key, pos)
            return value, nn, True
        raise TypeError(f"invalid node: {n!r}")

    def try_get_node(self, path: bytes):
        """Return (encoded node, resolved count) for a compact-encoded path."""
        item, newroot, resolved = self._get_node(self._root, compact_to_binary(path), 0)
        if resolved > 0:
            self._root = newroot
        return item, resolved

    def _get_node(self, n, path: bytes, pos: int):
        if pos >= len(path):
            if n is None:
                return None, None, 0
            digest = n if isinstance(n, HashNode) else getattr(getattr(n, "flags", None), "hash", None)
            if digest is None:
                raise ValueError("non-consensus node")
            blob = self.db.get(bytes(digest)) if self.db is not None else None
            if blob is None:
                raise MissingNodeError(bytes(digest), bytes(path))
            return blob, n, 1
        if n is None or isinstance(n, ValueNode):
            return None, None, 0
        if isinstance(n, ShortNode):
            if path[pos:pos + len(n.key)] != n.key:
                return None, n, 0
            item, nn, resolved = self._get_node(n.val, path, pos + len(n.key))
            if resolved > 0:
                n = n.copy()
                n.val = nn
            return item, n, resolved
        if isinstance(n, FullNode):
            item, nn, resolved = self._get_node(n.children[path[pos]], path, pos + 1)
            if resolved > 0:
                n = n.copy()
                n.children[path[pos]] = nn
            return item, n, resolved
        if isinstance(n, HashNode):
            child = self._resolve_hash(n, path[:pos])
            item, nn, resolved = self._get_node(child, path, pos)
            return item, nn, resolved + 1
        raise TypeError(f"invalid node: {n!r}")

    def update(self, key: bytes, value: bytes) -> None:
        """Store ``value`` under ``key``; an empty value deletes the key."""
        k = keybytes_to_binary(key)
        if value:
            _, self._root = self._insert(self._root, b"", k, ValueNode(value))
        else:
            _, self._root = self._delete(self._root, b"", k)

    def update_node(self, key: bytes, node) -> None:
        """Place ``node`` at the compact-encoded path ``key``."""
        _, self._root = self._insert_node(self._root, b"", compact_to_binary(key), node)

    def _insert(self, n, prefix: bytes, key: bytes, value):
        if not key:
            if isinstance(n, ValueNode):
                return n != value, value
            return True, value
        if isinstance(n, ShortNode):
            m = prefix_len(key, n.key)
            if m == len(n.key):
                dirty, nn = self._insert(n.val, prefix + key[:m], key[m:], value)
                if not dirty:
                    return False, n
                return True, ShortNode(n.key, nn, _dirty())
            branch = FullNode(flags=_dirty())
            _, branch.children[n.key[m]] = self._insert(
                None, prefix + n.key[:m + 1], n.key[m + 1:], n.val)
            _, branch.children[key[m]] = self._insert(
                None, prefix + key[:m + 1], key[m + 1:], value)
            if m == 0:
                return True, branch
            return True, ShortNode(key[:m], branch, _dirty())
        if isinstance(n, FullNode):
            dirty, nn = self._insert(n.children[key[0]], prefix + key[:1], key[1:], value)
            if not dirty:
                return False, n
            n = n.copy()
            n.flags = _dirty()
            n.children[key[0]] = nn
            return True, n
        if n is None:
            return True, ShortNode(key, value, _dirty())
        if isinstance(n, HashNode):
            rn = self._resolve_hash(n, prefix)
            dirty, nn = self._insert(rn, prefix, key, value)
            if not dirty:
                return False, rn
            return True, nn
        raise TypeError(f"invalid node: {n!r}")

    def _insert_node(self, n, prefix: bytes, key: bytes, val):
        if not key:
            return True, val
        if isinstance(n, ShortNode):
            m = prefix_len(key, n.key)
            if m == len(n.key):
                dirty, nn = self._insert_node(n.val, prefix + key[:m], key[m:], val)
                if not dirty:
                    return False, n
                return True, ShortNode(n.key, nn, _dirty())
            branch = FullNode(flags=_dirty())
            _, branch.children[n.key[m]] = self._insert(
                None, prefix + n.key[:m + 1], n.key[m + 1:], n.val)
            _, branch.children[key[m]] = self._insert_node(
                None, prefix + key[:m + 1], key[m + 1:], val)
            if m == 0:
                return True, branch
            return True, ShortNode(key[:m], branch, _dirty())
        if isinstance(n, FullNode):
            dirty, nn = self._insert_node(n.children[key[0]], prefix + key[:1], key[1:], val)
            if not dirty:
                return False, n
            n = n.copy()
            n.flags = _dirty()
            n.children[key[0]] = nn
            return True, n
        if n is None:
            return True, ShortNode(key, val, _dirty())
        raise TypeError(f"invalid node: {n!r}")

    def delete(self, key: bytes) -> None:
        """Remove any value stored under ``key``."""
        _, self._root = self._delete(self._root, b"", keybytes_to_binary(key))

    def _delete(self, n, prefix: bytes, key: bytes):
        if isinstance(n, ShortNode):
            m = prefix_len(key, n.key)
            if m < len(n.key):
                return False, n
            if m == len(key):
                return True, None
            dirty, child = self._delete(n.val, prefix + key[:len(n.key)], key[len(n.key):])
            if not dirty:
                return False, n
            if isinstance(child, ShortNode):
                return True, ShortNode(n.key + child.key, child.val, _dirty())
            return True, ShortNode(n.key, child, _dirty())
        if isinstance(n, FullNode):
            dirty, nn = self._delete(n.children[key[0]], prefix + key[:1], key[1:])
            if not dirty:
                return False, n
            n = n.copy()
            n.flags = _dirty()
            n.children[key[0]] = nn
            remaining = [i for i, child in enumerate(n.children) if child is not None]
            if len(remaining) == 1:
                pos = remaining[0]
                if pos != TERMINATOR:
                    cnode = self._resolve(n.children[pos], prefix)
                    if isinstance(cnode, ShortNode):
                        return True, ShortNode(bytes([pos]) + cnode.key, cnode.val, _dirty())
                return True, ShortNode(bytes([pos]), n.children[pos], _dirty())
            return True, n
        if isinstance(n, ValueNode):
            return True, None
        if n is None:
            return False, None
        if isinstance(n, HashNode):
            rn = self._resolve_hash(n, prefix)
            dirty, nn = self._delete(rn, prefix, key)
            if not dirty:
                return False, rn
            return True, nn
        raise TypeError(f"invalid node: {n!r}")

    def hash(self) -> bytes:
        """Return the root hash without writing to the database."""
        if self._root is None:
            return EMPTY_ROOT
        hashed, cached = hash_node(self._root, True)
        self._root = cached
        return bytes(hashed)

    def commit(self, on_leaf: Optional[LeafCallback] = None) -> bytes:
        """Write all dirty nodes to the database and return the root hash."""
        if self.db is None:
            raise ValueError("commit called on trie without a database")
        if self._root is None:
            return EMPTY_ROOT
        root_hash = self.hash()
        if isinstance(self._root, (ShortNode, FullNode)) and not self._root.flags.dirty:
            return root_hash
        self._root = self._store(self._root, on_leaf)
        return root_hash

    def _store(self, n, on_leaf: Optional[LeafCallback]):
        if not isinstance(n, (ShortNode, FullNode)):
            return n
        if not n.flags.dirty:
            return n.flags.hash if n.flags.hash is not None else n
        flags = NodeFlag(n.flags.hash, False)
        if isinstance(n, ShortNode):
            stored = ShortNode(n.key, self._store(n.val, on_leaf), flags)
            leaves = [stored.val] if isinstance(stored.val, ValueNode) else []
        else:
            stored = FullNode([self._store(child, on_leaf) for child in n.children], flags)
            value = stored.children[TERMINATOR]
            leaves = [value] if value is not None else []
        if flags.hash is None:
            return stored
        self.db[bytes(flags.hash)] = encode_node(stored)
        if on_leaf is not None:
            for leaf in leaves:
                on_leaf(b"", bytes(leaf), bytes(flags.hash))
        return flags.hash

    def reset(self) -> None:
        """Drop the root node."""
        self._root = None