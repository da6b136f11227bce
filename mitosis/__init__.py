"""Binary Merkle Patricia tries, trie sync and RLP-encoded block types for a sharded blockchain."""

__version__ = "0.1.0"