import random

import pytest

from mitosis.codec import keccak256
from mitosis.nodes import (
    FullNode,
    HashNode,
    ShortNode,
    binary_to_compact,
    binary_to_keybytes,
    compact_to_binary,
    decode_node,
)
from mitosis.sync import (
    AlreadyProcessedError,
    NotRequestedError,
    Sync,
    SyncResult,
    new_sync_path,
)
from mitosis.syncbloom import SyncBloom
from mitosis.trie import EMPTY_ROOT, EMPTY_STATE, Trie


@pytest.fixture(scope="module")
def source():
    db = {}
    trie = Trie(None, db)
    content = {}
    for i in range(255):
        for key, val in ((bytes([1, i]), bytes([i])), (bytes([2, i]), bytes([i]))):
            content[key] = val
            trie.update(key, val)
        for j in range(3, 13):
            key, val = bytes([j, i]), bytes([j, i])
            content[key] = val
            trie.update(key, val)
    root = trie.commit()
    return db, root, content


@pytest.fixture
def bloom():
    b = SyncBloom(1, {})
    assert b.wait_ready(5)
    yield b
    b.close()


def is_consistent(db, root):
    if root not in db:
        return True
    stack = [root]
    while stack:
        h = stack.pop()
        blob = db.get(h)
        if not blob:
            return False
        pending = [decode_node(h, blob)]
        while pending:
            n = pending.pop()
            if isinstance(n, ShortNode):
                children = [n.val]
            elif isinstance(n, FullNode):
                children = n.children
            else:
                continue
            for c in children:
                if isinstance(c, HashNode):
                    stack.append(bytes(c))
                elif isinstance(c, (ShortNode, FullNode)):
                    pending.append(c)
    return True


def removal_detected(db, node, root):
    value = db.pop(node)
    try:
        return not is_consistent(db, root)
    finally:
        db[node] = value


def assert_contents(db, root, content):
    assert is_consistent(db, root)
    trie = Trie(root, db)
    for key, val in content.items():
        assert trie.get(key) == val


def flush(sched, diskdb):
    batch = {}
    sched.commit(batch)
    diskdb.update(batch)


def test_empty_sync(bloom):
    empty_a = Trie(None, {})
    empty_b = Trie(EMPTY_ROOT, {})
    for trie in (empty_a, empty_b):
        sched = Sync(trie.hash(), {}, None, bloom)
        assert sched.missing(1) == ([], [], [])
        assert sched.pending() == 0


@pytest.mark.parametrize("count,bypath", [(1, False), (100, False), (1, True), (100, True)])
def test_iterative_sync(source, bloom, count, bypath):
    src_db, root, content = source
    src_trie = Trie(root, src_db)
    diskdb = {}
    sched = Sync(root, diskdb, None, bloom)
    while True:
        nodes, paths, codes = sched.missing(count)
        if not nodes and not codes:
            break
        results = []
        if bypath:
            for path in paths:
                data, _ = src_trie.try_get_node(path[0])
                results.append(SyncResult(keccak256(data), data))
            results += [SyncResult(h, src_db[h]) for h in codes]
        else:
            results = [SyncResult(h, src_db[h]) for h in nodes + codes]
        for result in results:
            sched.process(result)
        flush(sched, diskdb)
    assert sched.pending() == 0
    assert_contents(diskdb, root, content)


def test_iterative_delayed_sync(source, bloom):
    src_db, root, content = source
    diskdb = {}
    sched = Sync(root, diskdb, None, bloom)
    nodes, _, codes = sched.missing(10000)
    queue = nodes + codes
    while queue:
        results = [SyncResult(h, src_db[h]) for h in queue[: len(queue) // 2 + 1]]
        for result in results:
            sched.process(result)
        flush(sched, diskdb)
        nodes, _, codes = sched.missing(10000)
        queue = queue[len(results):] + nodes + codes
    assert_contents(diskdb, root, content)


@pytest.mark.parametrize("count", [1, 100])
def test_iterative_random_sync(source, bloom, count):
    src_db, root, content = source
    rng = random.Random(count)
    diskdb = {}
    sched = Sync(root, diskdb, None, bloom)
    nodes, _, codes = sched.missing(count)
    queue = set(nodes + codes)
    while queue:
        order = sorted(queue)
        rng.shuffle(order)
        for h in order:
            sched.process(SyncResult(h, src_db[h]))
        flush(sched, diskdb)
        nodes, _, codes = sched.missing(count)
        queue = set(nodes + codes)
    assert_contents(diskdb, root, content)


def test_iterative_random_delayed_sync(source, bloom):
    src_db, root, content = source
    rng = random.Random(7)
    diskdb = {}
    sched = Sync(root, diskdb, None, bloom)
    nodes, _, codes = sched.missing(10000)
    queue = set(nodes + codes)
    while queue:
        order = sorted(queue)
        rng.shuffle(order)
        chosen = order[: len(order) // 2 + 1]
        for h in chosen:
            sched.process(SyncResult(h, src_db[h]))
        flush(sched, diskdb)
        queue.difference_update(chosen)
        nodes, _, codes = sched.missing(10000)
        queue.update(nodes + codes)
    assert_contents(diskdb, root, content)


def test_duplicate_avoidance_sync(source, bloom):
    src_db, root, content = source
    diskdb = {}
    sched = Sync(root, diskdb, None, bloom)
    nodes, _, codes = sched.missing(0)
    queue = nodes + codes
    requested = set()
    while queue:
        for h in queue:
            assert h not in requested
            requested.add(h)
        for h in queue:
            sched.process(SyncResult(h, src_db[h]))
        flush(sched, diskdb)
        nodes, _, codes = sched.missing(0)
        queue = nodes + codes
    assert_contents(diskdb, root, content)


def test_incomplete_sync(source, bloom):
    src_db, root, _ = source
    diskdb = {}
    sched = Sync(root, diskdb, None, bloom)
    added = []
    consistent = []
    nodes, _, codes = sched.missing(1)
    queue = nodes + codes
    while queue:
        results = [SyncResult(h, src_db[h]) for h in queue]
        for result in results:
            sched.process(result)
        flush(sched, diskdb)
        for result in results:
            added.append(result.hash)
            consistent.append(is_consistent(diskdb, result.hash))
        nodes, _, codes = sched.missing(1)
        queue = nodes + codes
    assert len(added) > 1
    assert all(consistent)
    detected = [removal_detected(diskdb, node, added[0]) for node in added[1:]]
    assert len(detected) == len(added) - 1
    assert all(detected)


def test_sync_ordering(source, bloom):
    src_db, root, content = source
    diskdb = {}
    sched = Sync(root, diskdb, None, bloom)
    nodes, paths, _ = sched.missing(1)
    queue = list(nodes)
    reqs = list(paths)
    while queue:
        for h in queue:
            sched.process(SyncResult(h, src_db[h]))
        flush(sched, diskdb)
        nodes, paths, _ = sched.missing(1)
        queue = list(nodes)
        reqs += paths
    assert_contents(diskdb, root, content)
    assert len(reqs) > 1
    for first, second in zip(reqs, reqs[1:]):
        assert len(first) == 1 and len(second) == 1
        assert compact_to_binary(first[0]) <= compact_to_binary(second[0])


def test_sync_without_bloom(source):
    src_db, root, content = source
    diskdb = {}
    sched = Sync(root, diskdb)
    while True:
        nodes, _, codes = sched.missing(0)
        if not nodes and not codes:
            break
        for h in nodes + codes:
            sched.process(SyncResult(h, src_db[h]))
        flush(sched, diskdb)
    assert_contents(diskdb, root, content)


def test_already_known_root_is_not_scheduled(source):
    src_db, root, _ = source
    sched = Sync(root, dict(src_db))
    assert sched.missing(0) == ([], [], [])


def test_process_errors(source):
    src_db, root, _ = source
    sched = Sync(root, {})
    with pytest.raises(NotRequestedError):
        sched.process(SyncResult(bytes(32), b"\xc0"))
    nodes, _, _ = sched.missing(1)
    assert nodes == [root]
    sched.process(SyncResult(root, src_db[root]))
    with pytest.raises(AlreadyProcessedError):
        sched.process(SyncResult(root, src_db[root]))


def test_code_entry_roundtrip():
    code = b"some contract code"
    code_hash = keccak256(code)
    sched = Sync(EMPTY_ROOT, {})
    sched.add_code_entry(EMPTY_STATE)
    assert sched.pending() == 0
    sched.add_code_entry(code_hash)
    assert sched.pending() == 1
    nodes, paths, codes = sched.missing(0)
    assert (nodes, paths, codes) == ([], [], [code_hash])
    sched.process(SyncResult(code_hash, code))
    assert sched.pending() == 0
    batch = {}
    sched.commit(batch)
    assert batch == {b"c" + code_hash: code}


def test_known_code_is_skipped():
    code = b"known code"
    code_hash = keccak256(code)
    sched = Sync(EMPTY_ROOT, {b"c" + code_hash: code})
    sched.add_code_entry(code_hash)
    assert sched.pending() == 0


def test_unknown_parent_rejected():
    sched = Sync(EMPTY_ROOT, {})
    with pytest.raises(ValueError):
        sched.add_sub_trie(b"\x11" * 32, b"", b"\x22" * 32, None)


def test_leaf_callback_sees_all_values():
    src_db = {}
    trie = Trie(None, src_db)
    content = {bytes([k]): bytes([k]) * 32 for k in range(20)}
    for key, val in content.items():
        trie.update(key, val)
    root = trie.commit()

    seen = {}

    def on_leaf(path, leaf, parent):
        seen[binary_to_keybytes(path)] = leaf

    diskdb = {}
    sched = Sync(root, diskdb, on_leaf)
    while True:
        nodes, _, codes = sched.missing(0)
        if not nodes and not codes:
            break
        for h in nodes + codes:
            sched.process(SyncResult(h, src_db[h]))
        flush(sched, diskdb)
    assert seen == content
    assert_contents(diskdb, root, content)


def test_leaf_callback_error_propagates():
    src_db = {}
    trie = Trie(None, src_db)
    for k in range(4):
        trie.update(bytes([k]), bytes([k]) * 32)
    root = trie.commit()

    def on_leaf(path, leaf, parent):
        raise RuntimeError("boom")

    sched = Sync(root, {}, on_leaf)
    with pytest.raises(RuntimeError):
        while True:
            nodes, _, _ = sched.missing(0)
            if not nodes:
                break
            for h in nodes:
                sched.process(SyncResult(h, src_db[h]))


def test_new_sync_path_short():
    path = bytes([1, 0, 1])
    assert new_sync_path(path) == [binary_to_compact(path)]
    assert compact_to_binary(new_sync_path(path)[0]) == path


def test_new_sync_path_long():
    head = bytes([0, 0, 0, 0, 0, 0, 0, 1] * 8)
    tail = bytes([1, 1, 0])
    result = new_sync_path(head + tail)
    assert result == [bytes([1] * 8), binary_to_compact(tail)]
    assert compact_to_binary(result[1]) == tail