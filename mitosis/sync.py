"""Scheduler that reconstructs a trie node by node from its root hash."""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Callable, MutableMapping, Optional

from .nodes import (
    FullNode,
    HashNode,
    ShortNode,
    ValueNode,
    binary_to_compact,
    binary_to_keybytes,
    decode_node,
    has_term_bin,
)
from .syncbloom import CODE_PREFIX, SyncBloom
from .trie import EMPTY_ROOT, EMPTY_STATE

MAX_FETCHES_PER_DEPTH = 16384

_ZERO_HASH = bytes(32)

LeafCallback = Callable[[bytes, bytes, bytes], None]


class NotRequestedError(Exception):
    """Raised when processing data for a hash that was never requested."""

    def __init__(self) -> None:
        super().__init__("not requested")


class AlreadyProcessedError(Exception):
    """Raised when processing data for a hash that was already filled."""

    def __init__(self) -> None:
        super().__init__("already processed")


@dataclass(frozen=True)
class SyncResult:
    """Retrieved data together with the hash it was requested by."""

    hash: bytes
    data: bytes


@dataclass(eq=False)
class _Request:
    path: bytes
    hash: bytes
    code: bool = False
    data: Optional[bytes] = None
    parents: list = field(default_factory=list)
    deps: int = 0
    callback: Optional[LeafCallback] = None


def new_sync_path(path: bytes) -> list[bytes]:
    """Convert an expanded bit path into its compact network form.

    Paths shorter than 64 bits become a single compact item; longer ones are
    split into the packed first 64 bits and the compacted remainder.
    """
    path = bytes(path)
    if len(path) < 64:
        return [binary_to_compact(path)]
    return [binary_to_keybytes(path[:64]), binary_to_compact(path[64:])]


def _has_parent(parent: Optional[bytes]) -> bool:
    return parent is not None and bytes(parent) != _ZERO_HASH


class Sync:
    """Hands out unknown node and code hashes, accepts their data and
    rebuilds the trie until nothing is missing."""

    def __init__(self, root: bytes, database: MutableMapping[bytes, bytes],
                 callback: Optional[LeafCallback] = None,
                 bloom: Optional[SyncBloom] = None):
        self.database = database
        self.bloom = bloom
        self._nodes: dict[bytes, bytes] = {}
        self._codes: dict[bytes, bytes] = {}
        self._node_reqs: dict[bytes, _Request] = {}
        self._code_reqs: dict[bytes, _Request] = {}
        self._queue: list[tuple[int, int, bytes]] = []
        self._counter = itertools.count()
        self._fetches: dict[int, int] = {}
        self.add_sub_trie(root, b"", None, callback)

    def _maybe_known(self, hash: bytes) -> bool:
        return self.bloom is None or self.bloom.contains(hash)

    def _link_parent(self, req: _Request, parent: Optional[bytes], what: str) -> None:
        if not _has_parent(parent):
            return
        ancestor = self._node_reqs.get(bytes(parent))
        if ancestor is None:
            raise ValueError(f"{what} ancestor not found: {bytes(parent).hex()}")
        ancestor.deps += 1
        req.parents.append(ancestor)

    def add_sub_trie(self, root: bytes, path: Optional[bytes] = None,
                     parent: Optional[bytes] = None,
                     callback: Optional[LeafCallback] = None) -> None:
        """Register a trie rooted at ``root`` below the node ``parent``."""
        root = bytes(root)
        if root == EMPTY_ROOT or root in self._nodes:
            return
        if self._maybe_known(root) and self.database.get(root):
            return
        req = _Request(path=bytes(path or b""), hash=root, callback=callback)
        self._link_parent(req, parent, "sub-trie")
        self._schedule(req)

    def add_code_entry(self, hash: bytes, path: Optional[bytes] = None,
                       parent: Optional[bytes] = None) -> None:
        """Schedule a raw code blob that is stored as is, not parsed as a node."""
        hash = bytes(hash)
        if hash == EMPTY_STATE or hash in self._codes:
            return
        if self._maybe_known(hash) and self.database.get(CODE_PREFIX + hash):
            return
        req = _Request(path=bytes(path or b""), hash=hash, code=True)
        self._link_parent(req, parent, "raw-entry")
        self._schedule(req)

    def missing(self, limit: int = 0) -> tuple[list[bytes], list[list[bytes]], list[bytes]]:
        """Return up to ``limit`` (0 for no limit) hashes to fetch next.

        The result is (node hashes, their sync paths, code hashes).
        """
        node_hashes: list[bytes] = []
        node_paths: list[list[bytes]] = []
        code_hashes: list[bytes] = []
        while self._queue and (limit == 0 or len(node_hashes) + len(code_hashes) < limit):
            neg_prio, _, hash = self._queue[0]
            depth = (-neg_prio) >> 56
            if self._fetches.get(depth, 0) > MAX_FETCHES_PER_DEPTH:
                break
            heapq.heappop(self._queue)
            self._fetches[depth] = self._fetches.get(depth, 0) + 1
            req = self._node_reqs.get(hash)
            if req is not None:
                node_hashes.append(hash)
                node_paths.append(new_sync_path(req.path))
            else:
                code_hashes.append(hash)
        return node_hashes, node_paths, code_hashes

    def process(self, result: SyncResult) -> None:
        """Feed retrieved data for a requested hash."""
        hash = bytes(result.hash)
        node_req = self._node_reqs.get(hash)
        code_req = self._code_reqs.get(hash)
        if node_req is None and code_req is None:
            raise NotRequestedError()
        filled = False
        if code_req is not None and code_req.data is None:
            filled = True
            code_req.data = bytes(result.data)
            self._commit(code_req)
        if node_req is not None and node_req.data is None:
            filled = True
            node = decode_node(hash, bytes(result.data))
            node_req.data = bytes(result.data)
            requests = self._children(node_req, node)
            if not requests and node_req.deps == 0:
                self._commit(node_req)
            else:
                node_req.deps += len(requests)
                for child in requests:
                    self._schedule(child)
        if not filled:
            raise AlreadyProcessedError()

    def commit(self, batch: MutableMapping[bytes, bytes]) -> None:
        """Flush completed nodes and codes into ``batch``."""
        for key, value in self._nodes.items():
            batch[key] = value
            if self.bloom is not None:
                self.bloom.add(key)
        for key, value in self._codes.items():
            batch[CODE_PREFIX + key] = value
            if self.bloom is not None:
                self.bloom.add(key)
        self._nodes = {}
        self._codes = {}

    def pending(self) -> int:
        """Number of entries still waiting for download or completion."""
        return len(self._node_reqs) + len(self._code_reqs)

    def _schedule(self, req: _Request) -> None:
        reqset = self._code_reqs if req.code else self._node_reqs
        old = reqset.get(req.hash)
        if old is not None:
            old.parents.extend(req.parents)
            return
        reqset[req.hash] = req
        prio = len(req.path) << 56
        for i, element in enumerate(req.path[:14]):
            prio |= (15 - element) << (52 - i * 4)
        heapq.heappush(self._queue, (-prio, next(self._counter), req.hash))

    def _children(self, req: _Request, node) -> list[_Request]:
        if isinstance(node, ShortNode):
            key = node.key[:-1] if has_term_bin(node.key) else node.key
            children = [(req.path + key, node.val)]
        elif isinstance(node, FullNode):
            children = [(req.path + bytes([i]), child)
                        for i, child in enumerate(node.children) if child is not None]
        else:
            raise TypeError(f"unknown node: {node!r}")
        requests = []
        for path, child in children:
            if req.callback is not None and isinstance(child, ValueNode):
                req.callback(path, bytes(child), req.hash)
            if not isinstance(child, HashNode):
                continue
            hash = bytes(child)
            if hash in self._nodes:
                continue
            if self._maybe_known(hash) and self.database.get(hash):
                continue
            requests.append(_Request(path=path, hash=hash, parents=[req],
                                     callback=req.callback))
        return requests

    def _commit(self, req: _Request) -> None:
        stack = [req]
        while stack:
            current = stack.pop()
            if current.code:
                self._codes[current.hash] = current.data
                self._code_reqs.pop(current.hash, None)
            else:
                self._nodes[current.hash] = current.data
                self._node_reqs.pop(current.hash, None)
            depth = len(current.path)
            self._fetches[depth] = self._fetches.get(depth, 0) - 1
            for parent in current.parents:
                parent.deps -= 1
                if parent.deps == 0:
                    stack.append(parent)