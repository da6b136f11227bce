"""Binary Merkle trie nodes, key encodings and node hashing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from .codec import keccak256, rlp_decode, rlp_encode

TERMINATOR = 2
_TERM_FLAG = 0x20


class ValueNode(bytes):
    """A stored value."""


class HashNode(bytes):
    """A reference to a node by its hash."""


@dataclass
class NodeFlag:
    hash: Optional[HashNode] = None
    dirty: bool = False


@dataclass
class ShortNode:
    key: bytes
    val: "Node"
    flags: NodeFlag = field(default_factory=NodeFlag)

    def copy(self) -> "ShortNode":
        return ShortNode(self.key, self.val, NodeFlag(self.flags.hash, self.flags.dirty))


@dataclass
class FullNode:
    children: list = field(default_factory=lambda: [None, None, None])
    flags: NodeFlag = field(default_factory=NodeFlag)

    def copy(self) -> "FullNode":
        return FullNode(list(self.children), NodeFlag(self.flags.hash, self.flags.dirty))


Node = Union[None, ValueNode, HashNode, ShortNode, FullNode]


def keybytes_to_binary(key: bytes) -> bytes:
    """Expand key bytes into bits (most significant first) plus a terminator."""
    return bytes((b >> (7 - i)) & 1 for b in key for i in range(8)) + bytes([TERMINATOR])


def _pack_bits(bits: bytes) -> bytes:
    return bytes(
        int("".join(str(bit) for bit in bits[i:i + 8]), 2) for i in range(0, len(bits), 8)
    )


def binary_to_keybytes(bits: bytes) -> bytes:
    """Pack a bit path (optionally terminated) back into key bytes."""
    if has_term_bin(bits):
        bits = bits[:-1]
    if len(bits) % 8:
        raise ValueError("can't convert bit path of odd length to key bytes")
    return _pack_bits(bits)


def binary_to_compact(bits: bytes) -> bytes:
    """Compact a bit path: a header byte (terminator flag, pad count) then packed bits."""
    term = has_term_bin(bits)
    if term:
        bits = bits[:-1]
    pad = (-len(bits)) % 8
    header = (_TERM_FLAG if term else 0) | pad
    return bytes([header]) + _pack_bits(bytes(bits) + bytes(pad))


def compact_to_binary(compact: bytes) -> bytes:
    """Inverse of binary_to_compact."""
    if not compact:
        return b""
    header = compact[0]
    bits = bytes((b >> (7 - i)) & 1 for b in compact[1:] for i in range(8))
    pad = header & 0x07
    if pad:
        bits = bits[:-pad]
    if header & _TERM_FLAG:
        bits += bytes([TERMINATOR])
    return bits


def has_term_bin(bits: bytes) -> bool:
    return len(bits) > 0 and bits[-1] == TERMINATOR


def prefix_len(a: bytes, b: bytes) -> int:
    length = 0
    for x, y in zip(a, b):
        if x != y:
            break
        length += 1
    return length


def _ref(node: Node):
    if node is None:
        return b""
    if isinstance(node, (ValueNode, HashNode)):
        return bytes(node)
    if node.flags.hash is not None:
        return bytes(node.flags.hash)
    return _structure(node)


def _structure(node) -> list:
    if isinstance(node, ShortNode):
        return [binary_to_compact(node.key), _ref(node.val)]
    if isinstance(node, FullNode):
        value = node.children[TERMINATOR]
        return [_ref(node.children[0]), _ref(node.children[1]), bytes(value) if value else b""]
    raise TypeError(f"cannot encode {type(node).__name__}")


def encode_node(node) -> bytes:
    """RLP-encode a short or full node, children referenced by hash or inline."""
    return rlp_encode(_structure(node))


def _decode_ref(item) -> Node:
    if isinstance(item, list):
        if len(rlp_encode(item)) >= 32:
            raise ValueError("oversized embedded node")
        return _decode_structure(None, item)
    if len(item) == 0:
        return None
    if len(item) == 32:
        return HashNode(item)
    raise ValueError(f"invalid RLP string size {len(item)} (want 0 or 32)")


def _decode_structure(hash: Optional[bytes], elems: list):
    flags = NodeFlag(HashNode(hash) if hash else None, False)
    if len(elems) == 2:
        key = compact_to_binary(elems[0])
        if isinstance(elems[0], list):
            raise ValueError("invalid short node key")
        if has_term_bin(key):
            if isinstance(elems[1], list):
                raise ValueError("invalid value node")
            return ShortNode(key, ValueNode(elems[1]), flags)
        return ShortNode(key, _decode_ref(elems[1]), flags)
    if len(elems) == 3:
        value = elems[2]
        if isinstance(value, list):
            raise ValueError("invalid full node value")
        children = [_decode_ref(elems[0]), _decode_ref(elems[1]), ValueNode(value) if value else None]
        return FullNode(children, flags)
    raise ValueError(f"invalid number of list elements: {len(elems)}")


def decode_node(hash: Optional[bytes], data: bytes):
    """Parse an encoded node; ``hash`` is cached on the result."""
    if not data:
        raise ValueError("unexpected end of buffer")
    elems = rlp_decode(data)
    if not isinstance(elems, list):
        raise ValueError("node is not an RLP list")
    return _decode_structure(hash, elems)


def hash_node(node: Node, force: bool = False):
    """Return (hashed, cached): the reference form of ``node`` and a copy with hashes cached.

    Nodes whose encoding is under 32 bytes are returned inline unless ``force``.
    """
    if not isinstance(node, (ShortNode, FullNode)):
        return node, node
    if node.flags.hash is not None:
        return node.flags.hash, node
    if isinstance(node, ShortNode):
        hashed_child, cached_child = hash_node(node.val)
        collapsed = ShortNode(node.key, hashed_child)
        cached = ShortNode(node.key, cached_child, NodeFlag(None, node.flags.dirty))
    else:
        pairs = [hash_node(child) for child in node.children[:TERMINATOR]]
        value = node.children[TERMINATOR]
        collapsed = FullNode([h for h, _ in pairs] + [value])
        cached = FullNode([c for _, c in pairs] + [value], NodeFlag(None, node.flags.dirty))
    encoded = encode_node(collapsed)
    if len(encoded) < 32 and not force:
        return collapsed, cached
    digest = HashNode(keccak256(encoded))
    cached.flags.hash = digest
    return digest, cached