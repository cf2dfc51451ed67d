from __future__ import annotations

"""
KV interface for ordered byte-keyed stores
==========================================

Backend-agnostic Key–Value protocols consumed by the hashmap and sorted-set
engines. Backends (sqlite, rocksdb) implement these; this file is *pure
interface + helpers* and contains no I/O.

Ordering
--------
Keys are raw bytes compared lexicographically (memcmp). Every range in this
module is half-open: `start` inclusive, `limit` exclusive, either side may be
None for "unbounded".

Iteration
---------
`iterate(start, limit, reverse=False)` yields `(key, value)` pairs ascending,
or descending when `reverse=True`. Pairs are copies; callers may keep them
after the iterator is closed. `iter_prefix(prefix)` is the ascending special
case over `prefix_range(prefix)`.

Batching
--------
`KV.batch()` returns a context manager. Operations inside it are applied
atomically and in submission order when the block exits without exception:

>>> with kv.batch() as b:
...     b.delete(old_key)
...     b.put(new_key, b"")

Errors
------
Backend failures surface as `kvds.errors.StoreError`, with the backend message
kept verbatim.
"""

from typing import Iterable, Iterator, Optional, Protocol, Tuple, runtime_checkable


# ---------------------------------------------------------------------------
# Range helpers
# ---------------------------------------------------------------------------


def prefix_successor(prefix: bytes) -> Optional[bytes]:
    """
    Smallest byte string strictly greater than every key starting with `prefix`.
    None if no such bound exists (empty prefix, or all bytes 0xFF).

    Example: b"ab\\x01" -> b"ab\\x02"; b"a\\xff" -> b"b"; b"\\xff\\xff" -> None
    """
    p = bytearray(prefix)
    for i in range(len(p) - 1, -1, -1):
        if p[i] != 0xFF:
            p[i] += 1
            del p[i + 1 :]
            return bytes(p)
    return None


def prefix_range(prefix: bytes) -> Tuple[Optional[bytes], Optional[bytes]]:
    """Half-open `[start, limit)` covering exactly the keys that start with `prefix`."""
    return (prefix or None), prefix_successor(prefix)


# ---------------------------------------------------------------------------
# KV protocols & Batch
# ---------------------------------------------------------------------------


@runtime_checkable
class ReadOnlyKV(Protocol):
    """Minimal read-only KV surface."""

    def get(self, key: bytes) -> Optional[bytes]:
        """Fetch value or None if missing."""
        ...

    def has(self, key: bytes) -> bool:
        ...

    def iterate(
        self,
        start: Optional[bytes] = None,
        limit: Optional[bytes] = None,
        reverse: bool = False,
    ) -> Iterator[Tuple[bytes, bytes]]:
        """Iterate `(key, value)` over `[start, limit)` in key order (or reversed)."""
        ...

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class Batch(Protocol):
    """
    A write-batch context manager. The backend applies every queued operation
    atomically, in order, when the context exits without exception. If an
    exception escapes, nothing is applied.
    """

    def put(self, key: bytes, value: bytes) -> None: ...
    def delete(self, key: bytes) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "Batch": ...
    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...


@runtime_checkable
class KV(ReadOnlyKV, Protocol):
    """Full RW KV surface."""

    def put(self, key: bytes, value: bytes) -> None:
        """Persist (key, value). Overwrites if exists."""
        ...

    def delete(self, key: bytes) -> None:
        """Remove key if present (idempotent)."""
        ...

    def batch(self) -> Batch:
        ...


# ---------------------------------------------------------------------------
# Portable helpers built atop the interface
# ---------------------------------------------------------------------------


def iter_prefixed(kv: ReadOnlyKV, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
    start, limit = prefix_range(prefix)
    return kv.iterate(start, limit)


def keys_with_prefix(kv: ReadOnlyKV, prefix: bytes) -> Iterator[bytes]:
    for k, _ in iter_prefixed(kv, prefix):
        yield k


def put_many(kv: KV, items: Iterable[Tuple[bytes, bytes]]) -> None:
    """Write many keys using a single batch."""
    with kv.batch() as b:
        for k, v in items:
            b.put(k, v)


def delete_many(kv: KV, keys: Iterable[bytes]) -> None:
    """Delete many keys using a single batch."""
    with kv.batch() as b:
        for k in keys:
            b.delete(k)


__all__ = [
    "ReadOnlyKV",
    "KV",
    "Batch",
    "prefix_successor",
    "prefix_range",
    "iter_prefixed",
    "keys_with_prefix",
    "put_many",
    "delete_many",
]
