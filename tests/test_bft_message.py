import pytest

from mitosis.bft_message import BFTMessage, MessageType
from mitosis.bitmap import Bitmap
from mitosis.block import Block
from mitosis.codec import RLPDecodeError, rlp_decode, rlp_encode
from mitosis.header import Header
from mitosis.transaction import Transaction


def _block():
    header = Header.create(2, 5, bytes(32), bytes(32), bytes(32), Bitmap(b"\x01"), 1_700_000_000)
    tx = Transaction.create(2, 3, b"\x11" * 20, b"\x22" * 20, 7, b"")
    return Block(header, [tx], [])


def _message(kind=MessageType.PREPARE):
    bitmap = Bitmap.with_capacity(16)
    bitmap.set_key(4)
    return BFTMessage.create(kind, _block(), b"signature-bytes", bitmap)


def test_create_takes_height_and_hash_from_block():
    msg = _message()
    assert msg.block_num == msg.block.header.height
    assert msg.block_hash == msg.block.header.hash


def test_round_trip():
    msg = _message(MessageType.PRECOMMIT_VOTE)
    assert BFTMessage.from_bytes(msg.to_bytes()) == msg


@pytest.mark.parametrize("kind, wire", [(MessageType.PREPARE, b""), (MessageType.COMMIT_VOTE, b"\x05")])
def test_message_type_on_wire(kind, wire):
    assert rlp_decode(_message(kind).to_bytes())[0] == wire


def test_unknown_message_type_rejected():
    fields = rlp_decode(_message().to_bytes())
    fields[0] = b"\x09"
    with pytest.raises(ValueError):
        BFTMessage.from_bytes(rlp_encode(fields))


def test_copy_is_equal_and_independent():
    msg = _message(MessageType.COMMIT)
    clone = msg.copy()
    assert clone == msg
    clone.sender_pubkey_bitmap.set_key(0)
    clone.block.transactions[0].value = 0
    assert msg.sender_pubkey_bitmap.elements() == [4]
    assert msg.block.transactions[0].value == 7


def test_from_bytes_wrong_shape():
    with pytest.raises(RLPDecodeError):
        BFTMessage.from_bytes(rlp_encode([0, 1]))