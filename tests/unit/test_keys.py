"""
Composite key layout: namespace tags, separators and order-index decomposition.
"""

from __future__ import annotations

import pytest

from kvds.db.keys import (
    SEP,
    SEPARATOR,
    Namespace,
    bucket_prefix,
    hash_key,
    split_zorder_key,
    zorder_key,
    zscore_key,
)
from kvds.utils.bytes import encode_u64


def test_tag_values_are_stable() -> None:
    assert Namespace.HASH == 0x1E
    assert Namespace.ZSET_KEY == 0x1F
    assert Namespace.ZSET_SCORE == 0x1D
    assert SEPARATOR == 0x1C
    assert Namespace.HASH.tag == b"\x1e"


def test_hash_key_layout() -> None:
    assert hash_key("user", b"name") == b"\x1euser\x1cname"
    assert hash_key(b"user", b"name") == hash_key("user", b"name")
    assert hash_key("user", b"name").startswith(bucket_prefix(Namespace.HASH, "user"))


def test_zset_key_layout() -> None:
    assert zscore_key("z", b"m") == b"\x1dz\x1cm"
    assert zorder_key("z", 100, b"m") == b"\x1fz\x1c" + encode_u64(100) + SEP + b"m"


def test_order_keys_sort_by_score_then_member() -> None:
    keys = [
        zorder_key("z", 100, b"a"),
        zorder_key("z", 50, b"b"),
        zorder_key("z", 50, b"a"),
        zorder_key("z", 1 << 32, b"a"),
    ]
    assert sorted(keys) == [keys[2], keys[1], keys[0], keys[3]]


def test_namespaces_do_not_overlap_for_same_name() -> None:
    prefixes = {bucket_prefix(ns, "x") for ns in Namespace}
    assert len(prefixes) == len(Namespace)


@pytest.mark.parametrize("member", [b"", b"plain", b"has\x1csep", b"\x1c\x1c"])
def test_split_order_key_uses_fixed_offsets(member: bytes) -> None:
    prefix_len = len(bucket_prefix(Namespace.ZSET_KEY, "z"))
    key = zorder_key("z", 42, member)
    got_member, score = split_zorder_key(key, prefix_len)
    assert got_member == member
    assert score == encode_u64(42)


@pytest.mark.parametrize("key", [b"\x1fz\x1c", b"\x1fz\x1c" + encode_u64(1), b"\x1fz\x1c" + encode_u64(1) + b"x"])
def test_split_order_key_rejects_malformed(key: bytes) -> None:
    with pytest.raises(ValueError):
        split_zorder_key(key, 3)
