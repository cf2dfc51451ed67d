from __future__ import annotations

"""
Key layout for hashmaps and sorted sets
=======================================

Every structure shares one flat, ordered key space. A single namespace tag
byte partitions it; a separator byte delimits the variable-length parts.

    HASH       := 0x1E | name | 0x1C | member                        -> value
    ZSET_SCORE := 0x1D | name | 0x1C | member                        -> score:u64be
    ZSET_KEY   := 0x1F | name | 0x1C | score:u64be | 0x1C | member   -> b""

ZSET_SCORE is the direct index (member → score). ZSET_KEY is the order index:
because the score is fixed-width big-endian, plain byte order over the keys of
one set is (score, member) order.

Tag values match existing data files and must never change.

Separator caveat
----------------
Parts are delimited, not length-prefixed. A bucket name that contains 0x1C
can alias another bucket's keys (name b"a\\x1cb" vs name b"a" + member
b"b..."). Members may contain any byte: the order-index split below locates
the member by fixed offset, never by searching for the separator.
"""

from enum import IntEnum
from typing import Tuple, Union

from ..utils.bytes import U64_BYTES, concat, encode_u64, str_to_bytes

Name = Union[str, bytes]


class Namespace(IntEnum):
    ZSET_SCORE = 0x1D
    HASH = 0x1E
    ZSET_KEY = 0x1F

    @property
    def tag(self) -> bytes:
        return bytes((int(self),))


SEPARATOR = 0x1C
SEP = bytes((SEPARATOR,))

if len({int(ns) for ns in Namespace} | {SEPARATOR}) != len(Namespace) + 1:
    raise RuntimeError("namespace tags and separator must be distinct bytes")


def name_bytes(name: Name) -> bytes:
    return name if isinstance(name, bytes) else str_to_bytes(name)


def bucket_prefix(ns: Namespace, name: Name) -> bytes:
    """`tag | name | sep`: every key of one structure starts with this."""
    return concat(ns.tag, name_bytes(name), SEP)


# --- hashmap -----------------------------------------------------------------


def hash_key(name: Name, member: bytes) -> bytes:
    return concat(Namespace.HASH.tag, name_bytes(name), SEP, member)


# --- sorted set --------------------------------------------------------------


def zscore_key(name: Name, member: bytes) -> bytes:
    """Direct-index key (member → score)."""
    return concat(Namespace.ZSET_SCORE.tag, name_bytes(name), SEP, member)


def zorder_key(name: Name, score: int, member: bytes) -> bytes:
    """Order-index key for (score, member)."""
    return concat(bucket_prefix(Namespace.ZSET_KEY, name), encode_u64(score), SEP, member)


def split_zorder_key(key: bytes, prefix_len: int) -> Tuple[bytes, bytes]:
    """
    Decompose an order-index key into `(member, score_bytes)`.

    `prefix_len` is `len(bucket_prefix(Namespace.ZSET_KEY, name))`. The score is
    the next 8 bytes, then one separator, then the member (which may itself
    contain the separator byte).
    """
    score_end = prefix_len + U64_BYTES
    if len(key) <= score_end or key[score_end] != SEPARATOR:
        raise ValueError("malformed order-index key")
    return key[score_end + 1 :], key[prefix_len:score_end]


__all__ = [
    "Namespace",
    "SEPARATOR",
    "SEP",
    "Name",
    "name_bytes",
    "bucket_prefix",
    "hash_key",
    "zscore_key",
    "zorder_key",
    "split_zorder_key",
]
