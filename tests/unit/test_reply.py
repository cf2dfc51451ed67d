"""Reply / Entry views over retrieved buffers."""

from __future__ import annotations

import pytest

from kvds.db.reply import REPLY_ERROR, REPLY_NOT_FOUND, REPLY_OK, Entry, Reply
from kvds.utils.bytes import U64_MAX, encode_u64


def test_single_value_views() -> None:
    r = Reply.value(encode_u64(U64_MAX))
    assert r.ok() and bool(r)
    assert r.uint() == r.uint64() == U64_MAX
    assert r.int() == r.int64() == -1
    assert Reply.value(b"hello").string() == "hello"


def test_short_and_empty_buffers_read_as_zero() -> None:
    assert Reply.value(b"\x01\x02").uint64() == 0
    assert Reply.missing().int() == 0
    assert Reply.missing().string() == ""
    assert Reply.missing().bytes() is None


def test_pairs_state() -> None:
    assert Reply.pairs([]).state == REPLY_NOT_FOUND
    r = Reply.pairs([(b"a", b"1")])
    assert r.state == REPLY_OK
    assert r.data == [b"a", b"1"]


def test_error_keeps_message() -> None:
    assert Reply.error("disk on fire").state == "disk on fire"
    assert Reply.error("").state == REPLY_ERROR
    assert not Reply.error("x").not_found()


@pytest.mark.parametrize("message", [REPLY_OK, REPLY_NOT_FOUND])
def test_error_message_never_reads_as_status(message: str) -> None:
    r = Reply.error(message)
    assert not r.ok()
    assert not r.not_found()
    assert r.state == f"{REPLY_ERROR}: {message}"


def test_pair_views() -> None:
    r = Reply.pairs([(b"a", encode_u64(1)), (b"b", encode_u64(2)), (b"a", encode_u64(3))])
    assert r.kv_len() == 3
    assert [e.key for e in r] == [b"a", b"b", b"a"]
    assert r.dict() == {b"a": encode_u64(3), b"b": encode_u64(2)}
    assert [e.uint64() for e in r.list()] == [1, 2, 3]

    seen = []
    assert r.kv_each(lambda k, v: seen.append(k)) == 3
    assert seen == [b"a", b"b", b"a"]


def test_entry_scalar_views() -> None:
    e = Entry(b"k", "é".encode("utf-8"))
    assert e.string() == "é"
    assert Entry(b"k", encode_u64(U64_MAX)).int() == -1
    assert Entry(b"k", b"").uint64() == 0


def test_buffers_are_copies() -> None:
    src = bytearray(b"v")
    r = Reply.value(src)
    src[0] = ord("x")
    assert r.bytes() == b"v"
