import json

import pytest
from hypothesis import given, strategies as st

from mitosis.codec import RLPDecodeError, rlp_encode
from mitosis.transaction import DataTemplate, Transaction

FROM_ADDR = bytes([0x01, 0x02, 0x03, 0x04, 0x05, 0x06, 0x07, 0x08, 0x09, 0x10,
                   0x11, 0x12, 0x13, 0x14, 0x15, 0x16, 0x17, 0x18, 0x19, 0x20])
TO_ADDR = bytes([0x00, 0x02, 0x03, 0x04, 0x05, 0x06, 0x07, 0x08, 0x09, 0x10,
                 0x11, 0x12, 0x13, 0x14, 0x15, 0x16, 0x17, 0x18, 0x19, 0x20])


def _tx():
    return Transaction.create(1, 1, FROM_ADDR, TO_ADDR, 1000, b"")


def test_data_template_round_trip():
    data = DataTemplate(10000, "parameter2", bytes(20))
    assert DataTemplate.from_bytes(data.to_bytes()) == data


def test_data_template_rejects_wrong_shape():
    with pytest.raises(RLPDecodeError):
        DataTemplate.from_bytes(rlp_encode([1, b"x"]))


def test_unsigned_transaction_json_round_trip():
    tx = _tx()
    assert Transaction.from_json(tx.to_json()) == tx


def test_unsigned_transaction_binary_round_trip():
    tx = _tx()
    assert Transaction.from_bytes(tx.to_bytes()) == tx


def test_json_layout():
    tx = _tx()
    obj = json.loads(tx.to_json())
    assert list(obj) == ["FromShard", "FromAddr", "ToShard", "ToAddr", "Value", "Data", "Hash"]
    assert obj["FromAddr"] == "0x0102030405060708091011121314151617181920"
    assert obj["Value"] == 1000
    assert obj["Data"] == ""
    assert obj["Hash"] == "0x" + tx.hash.hex()


def test_hash_matches_compute_hash():
    tx = _tx()
    assert tx.hash == tx.compute_hash()
    assert len(tx.hash) == 32


def test_hash_excludes_data_payload():
    plain = Transaction.create(1, 2, FROM_ADDR, TO_ADDR, 5, b"")
    loaded = Transaction.create(1, 2, FROM_ADDR, TO_ADDR, 5, b"\x01\x02\x03\x04")
    assert plain.hash == loaded.hash


def test_hash_depends_on_value_and_shards():
    base = Transaction.create(1, 2, FROM_ADDR, TO_ADDR, 5)
    assert Transaction.create(1, 2, FROM_ADDR, TO_ADDR, 6).hash != base.hash
    assert Transaction.create(2, 1, FROM_ADDR, TO_ADDR, 5).hash != base.hash


def test_copy_is_equal_and_independent():
    tx = Transaction.create(1, 2, FROM_ADDR, TO_ADDR, 1, b"\x01\x02")
    clone = tx.copy()
    assert clone == tx
    clone.value = 99
    assert tx.value == 1


def test_from_json_empty_input():
    with pytest.raises(ValueError):
        Transaction.from_json(b"")


def test_from_json_bad_address_length():
    obj = json.loads(_tx().to_json())
    obj["FromAddr"] = "0x0102"
    with pytest.raises(ValueError):
        Transaction.from_json(json.dumps(obj))


def test_from_bytes_truncated():
    data = _tx().to_bytes()
    with pytest.raises(RLPDecodeError):
        Transaction.from_bytes(data[:-1])


def test_from_bytes_wrong_field_count():
    with pytest.raises(RLPDecodeError):
        Transaction.from_bytes(rlp_encode([1, FROM_ADDR]))


def test_constructor_rejects_short_address():
    with pytest.raises(ValueError):
        Transaction(1, b"\x01", 1, TO_ADDR, 1)


@given(
    st.integers(0, 2**32 - 1),
    st.integers(0, 2**32 - 1),
    st.binary(min_size=20, max_size=20),
    st.binary(min_size=20, max_size=20),
    st.integers(0, 2**64 - 1),
    st.binary(max_size=64),
)
def test_round_trips(from_shard, to_shard, from_addr, to_addr, value, data):
    tx = Transaction.create(from_shard, to_shard, from_addr, to_addr, value, data)
    assert Transaction.from_bytes(tx.to_bytes()) == tx
    assert Transaction.from_json(tx.to_json()) == tx