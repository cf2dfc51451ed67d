from __future__ import annotations

"""
Hashmap engine
==============

Named buckets of `member -> value`, stored in the HASH namespace of an ordered
KV (see `kvds.db.keys`). One bucket is one contiguous key range, so listing a
bucket is a range scan and members come back in byte order.

Reads never raise for store failures: they return a `Reply` whose state is the
backend message. Writes raise `StoreError` (or `ValidationError` /
`CounterOverflow` for bad input), and nothing is written when they do.

Scans
-----
- `scan(name, key_start, limit)`: members strictly greater than `key_start`,
  ascending. An empty `key_start` lists from the beginning of the bucket.
- `prefix_scan(name, member_prefix, limit)`: like `scan(name, member_prefix)`
  but restricted to members that start with `member_prefix`.
- `reverse_scan(name, key_start, limit)`: members strictly less than
  `key_start`, descending. An empty `key_start` lists from the end.

`limit <= 0` means "no limit". An empty listing is reported as `not_found`.
"""

from typing import List, Sequence

from ..errors import StoreError
from ..logging import get_logger, op_scope
from ..utils.bytes import concat, decode_u64, encode_u64
from .keys import Name, Namespace, bucket_prefix, hash_key
from .kv import KV, delete_many, keys_with_prefix, prefix_successor
from .ops import Pairs, apply_step, collect, pairwise
from .reply import Reply

log = get_logger(__name__)


class HashMap:
    """Hashmap operations over a shared KV handle. Safe to share across threads."""

    __slots__ = ("kv",)

    def __init__(self, kv: KV) -> None:
        self.kv = kv

    # --- point ops ---

    def set(self, name: Name, member: bytes, value: bytes) -> None:
        with op_scope("hash.set", bucket=name):
            self.kv.put(hash_key(name, member), value)

    def get(self, name: Name, member: bytes) -> Reply:
        try:
            v = self.kv.get(hash_key(name, member))
        except StoreError as e:
            return Reply.error(e.message)
        return Reply.missing() if v is None else Reply.value(v)

    def has(self, name: Name, member: bytes) -> bool:
        try:
            return self.kv.has(hash_key(name, member))
        except StoreError as e:
            log.warning("has: store error read as absent", extra={"bucket": name, "reason": e.message})
            return False

    def delete(self, name: Name, member: bytes) -> None:
        """Remove one member; deleting an absent member is a no-op."""
        with op_scope("hash.delete", bucket=name):
            self.kv.delete(hash_key(name, member))

    # --- counters ---

    def increment(self, name: Name, member: bytes, step: int) -> int:
        """
        Add signed `step` to the member's u64 counter and return the new value.

        A missing member (or a value shorter than 8 bytes) counts as 0.
        Raises CounterOverflow if the result would leave [0, 2^64-1].
        """
        key = hash_key(name, member)
        with op_scope("hash.increment", bucket=name):
            raw = self.kv.get(key)
            current = decode_u64(raw) if raw is not None else 0
            new = apply_step(current, step)
            self.kv.put(key, encode_u64(new))
        return new

    def get_int(self, name: Name, member: bytes) -> int:
        """Counter value; 0 when missing, too short, or unreadable."""
        try:
            raw = self.kv.get(hash_key(name, member))
        except StoreError as e:
            log.warning("get_int: store error read as 0", extra={"bucket": name, "reason": e.message})
            return 0
        return decode_u64(raw) if raw is not None else 0

    # --- multi ops ---

    def multi_set(self, name: Name, pairs: Pairs) -> None:
        """
        Write `[m0, v0, m1, v1, ...]` (or a mapping) in one atomic batch.

        A repeated member keeps its last value.
        """
        items = pairwise(pairs)
        prefix = bucket_prefix(Namespace.HASH, name)
        with op_scope("hash.multi_set", bucket=name, count=len(items)):
            with self.kv.batch() as b:
                for member, value in items:
                    b.put(concat(prefix, member), value)

    def multi_get(self, name: Name, members: Sequence[bytes]) -> Reply:
        """
        Present members as pairs, in request order. A member that cannot be read
        is skipped like a missing one.
        """
        prefix = bucket_prefix(Namespace.HASH, name)
        found = []
        for member in members:
            try:
                v = self.kv.get(concat(prefix, member))
            except StoreError as e:
                log.warning("multi_get: skipping unreadable member", extra={"bucket": name, "reason": e.message})
                continue
            if v is not None:
                found.append((member, v))
        return Reply.pairs(found)

    def multi_delete(self, name: Name, members: Sequence[bytes]) -> None:
        prefix = bucket_prefix(Namespace.HASH, name)
        with op_scope("hash.multi_delete", bucket=name, count=len(members)):
            delete_many(self.kv, (concat(prefix, m) for m in members))

    def delete_bucket(self, name: Name) -> int:
        """
        Remove every member of the bucket in one batch; returns how many.

        Members written concurrently with this call may survive it.
        """
        prefix = bucket_prefix(Namespace.HASH, name)
        with op_scope("hash.delete_bucket", bucket=name):
            keys: List[bytes] = list(keys_with_prefix(self.kv, prefix))
            if keys:
                delete_many(self.kv, keys)
            log.debug("bucket deleted", extra={"removed": len(keys)})
        return len(keys)

    # --- scans ---

    def scan(self, name: Name, key_start: bytes, limit: int) -> Reply:
        prefix = bucket_prefix(Namespace.HASH, name)
        # k + b"\x00" is the smallest key strictly greater than k.
        start = concat(prefix, key_start, b"\x00") if key_start else prefix
        return self._forward(prefix, start, prefix_successor(prefix), limit)

    def prefix_scan(self, name: Name, member_prefix: bytes, limit: int) -> Reply:
        prefix = bucket_prefix(Namespace.HASH, name)
        full = concat(prefix, member_prefix)
        start = concat(full, b"\x00") if member_prefix else prefix
        return self._forward(prefix, start, prefix_successor(full), limit)

    def reverse_scan(self, name: Name, key_start: bytes, limit: int) -> Reply:
        prefix = bucket_prefix(Namespace.HASH, name)
        upper = concat(prefix, key_start) if key_start else prefix_successor(prefix)
        n = len(prefix)
        rows = self.kv.iterate(prefix, upper, reverse=True)
        return collect(rows, limit, lambda k, v: (k[n:], v))

    def _forward(self, prefix: bytes, start: bytes, upper, limit: int) -> Reply:
        n = len(prefix)
        rows = self.kv.iterate(start, upper)
        return collect(rows, limit, lambda k, v: (k[n:], v))

    def __repr__(self) -> str:
        return f"HashMap(kv={self.kv!r})"


__all__ = ["HashMap"]
