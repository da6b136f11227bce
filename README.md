# mitosis

Data structures for a sharded blockchain, all encoded with RLP and hashed
with Keccak-256:

- `mitosis.codec`: `rlp_encode`, `rlp_decode` (strict, canonical input only,
  raising `RLPDecodeError`), `encode_uint`, `decode_uint` and `keccak256`.
- `mitosis.nodes`: the node types of a binary trie (`ValueNode`, `HashNode`,
  `ShortNode`, `FullNode`), key encodings (`keybytes_to_binary`,
  `binary_to_compact`, `compact_to_binary`, ...), `encode_node`,
  `decode_node` and `hash_node`.
- `mitosis.trie.Trie`: a Merkle Patricia trie over a binary (one bit per
  step) key path, with `get`, `update`, `delete`, `hash`, `commit`,
  `try_get_node`, `update_node` and `reset`. Nodes are read from and written
  to any mutable mapping of `bytes` to `bytes`. A node referenced by hash but
  absent from the mapping raises `MissingNodeError`.
- `mitosis.stacktrie.StackTrie`: a trie for keys inserted in increasing
  order. It hashes finished subtrees straight away and gives the same root
  hash as `Trie` for the same data. Deleting is not supported, and
  `commit` without a database raises `CommitDisabledError`.
- `mitosis.sync.Sync`: a scheduler that rebuilds a trie node by node from its
  root hash. `missing` hands out hashes to fetch (shallow paths first, then
  in path order), `process` takes a `SyncResult`, `commit` flushes finished
  nodes into a mapping. Unrequested or repeated data raises
  `NotRequestedError` or `AlreadyProcessedError`.
- `mitosis.syncbloom.SyncBloom`: a bloom filter of known node and code
  hashes that fills itself from an iterable of database keys in a
  background thread; until that is done `contains` answers `True`.
- Block types: `Bitmap`, `Transaction` and `DataTemplate`, `HeaderForHash`
  and `Header`, `OutboundChunk`, `Block`, `BFTMessage` with `MessageType`,
  and the root helpers `get_chunk_root` and `get_block_tx_root` in
  `mitosis.derive_sha`.

## Installing

```
pip install .
```

The test suite needs the `test` extra (`pip install ".[test]"`) and runs
under pytest.

## The trie

```python
from mitosis.trie import Trie

db = {}
trie = Trie(None, db)
trie.update(b"doe", b"reindeer")
trie.update(b"dog", b"puppy")
assert trie.get(b"dog") == b"puppy"

root = trie.commit()          # writes nodes into db
reopened = Trie(root, db)
assert reopened.get(b"doe") == b"reindeer"
```

An empty value passed to `update` deletes the key. `hash` computes the root
without writing anything; `commit` needs a database.

Keys inserted in increasing order can be hashed with a stack trie, which
gives the same root:

```python
from mitosis.stacktrie import StackTrie

st = StackTrie()
st.update(bytes.fromhex("01"), b"one")
st.update(bytes.fromhex("02"), b"two")
root = st.hash()
```

## Syncing a trie

```python
from mitosis.sync import Sync, SyncResult

source = db                   # a database holding a committed trie
target = {}
sched = Sync(root, target)
while True:
    nodes, paths, codes = sched.missing(0)
    if not nodes and not codes:
        break
    for h in nodes:
        sched.process(SyncResult(h, source[h]))
    sched.commit(target)
```

Code entries added with `add_code_entry` are stored under the key
`b"c" + hash`.

## Block types

```python
from mitosis.transaction import Transaction
from mitosis.outbound_chunk import OutboundChunk
from mitosis.block import Block
from mitosis.header import Header
from mitosis.bitmap import Bitmap

tx = Transaction.create(1, 2, bytes(20), bytes(20), 1000, b"")
assert Transaction.from_bytes(tx.to_bytes()) == tx
assert Transaction.from_json(tx.to_json()) == tx

chunk = OutboundChunk(bytes(32), [tx, tx], [b"\x01"])
chunk_root = chunk.root()

header = Header.create(1, 0, bytes(32), bytes(32), bytes(32), Bitmap(), 0)
block = Block(header, [tx], [chunk])
assert Block.from_bytes(block.to_bytes()) == block

signers = Bitmap.with_capacity(16)
signers.set_key(3)
assert signers.has_key(3)
```

A transaction's hash covers its shards, addresses and value, not its data
payload. `Header.copy` does not carry over the signer bitmap.

## What it does not do

The package holds data structures only. It has no networking, no peer
discovery, no consensus engine driving the `BFTMessage` rounds, no signing,
no command-line program and no on-disk storage: databases are plain mappings
supplied by the caller.