from __future__ import annotations

"""
Sorted-set engine
=================

Named sets of `member -> score` (score: unsigned 64-bit), kept in two indexes
of the same ordered KV (layout in `kvds.db.keys`):

- direct index  (ZSET_SCORE): member -> score:u64be, for point lookups
- order index   (ZSET_KEY):   score:u64be | sep | member -> b"", for range scans

Every mutation computes the delta against the currently stored score (old order
key to drop, new keys to write) and submits it as one atomic batch, deleting
the old order key before writing the new one. After any completed call each
scored member therefore has exactly one order-index entry, and a member with no
score has none.

Concurrency
-----------
Mutations read the old score, then write a batch. Two callers mutating the
same `(name, member)` at the same time can both read the same old score and
leave a stale order-index entry behind. Serialize writes per `(name, member)`
(a per-key lock or a single writer) when that can happen. `delete_bucket` may
race with concurrent writers the same way: entries written while it collects
keys survive it.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import MissingTarget, StoreError
from ..logging import get_logger, op_scope
from ..utils.bytes import U64_MAX, concat, decode_u64, encode_u64
from .kv import KV, Batch, delete_many, keys_with_prefix, prefix_successor
from .keys import (
    Name,
    Namespace,
    bucket_prefix,
    split_zorder_key,
    zorder_key,
    zscore_key,
)
from .ops import Pairs, apply_step, check_u64, collect, pairwise
from .reply import Reply

log = get_logger(__name__)


class SortedSet:
    """Sorted-set operations over a shared KV handle (see module notes on races)."""

    __slots__ = ("kv",)

    def __init__(self, kv: KV) -> None:
        self.kv = kv

    # --- internals ---

    def _score(self, name: Name, member: bytes) -> Optional[int]:
        raw = self.kv.get(zscore_key(name, member))
        return None if raw is None else decode_u64(raw)

    @staticmethod
    def _stage(b: Batch, name: Name, member: bytes, old: Optional[int], new: int) -> None:
        if old is not None:
            b.delete(zorder_key(name, old, member))
        b.put(zscore_key(name, member), encode_u64(new))
        b.put(zorder_key(name, new, member), b"")

    def _write(self, name: Name, member: bytes, old: Optional[int], new: int) -> None:
        with self.kv.batch() as b:
            self._stage(b, name, member, old, new)
        log.debug("score written", extra={"old": old, "new": new})

    # --- point ops ---

    def set(self, name: Name, member: bytes, score: int) -> None:
        """Set the member's score; a no-op when it already has that score."""
        check_u64(score)
        with op_scope("zset.set", bucket=name):
            old = self._score(name, member)
            if old != score:
                self._write(name, member, old, score)

    def get(self, name: Name, member: bytes) -> int:
        """Current score, or 0 when the member is absent or unreadable."""
        try:
            score = self._score(name, member)
        except StoreError as e:
            log.warning("get: store error read as 0", extra={"bucket": name, "reason": e.message})
            return 0
        return 0 if score is None else score

    def has(self, name: Name, member: bytes) -> bool:
        try:
            return self.kv.has(zscore_key(name, member))
        except StoreError as e:
            log.warning("has: store error read as absent", extra={"bucket": name, "reason": e.message})
            return False

    def increment(self, name: Name, member: bytes, step: int) -> int:
        """
        Add signed `step` to the score (absent counts as 0); returns the new score.

        Raises CounterOverflow, before writing anything, if the result would
        leave [0, 2^64-1].
        """
        with op_scope("zset.increment", bucket=name):
            old = self._score(name, member)
            new = apply_step(0 if old is None else old, step)
            if old != new:
                self._write(name, member, old, new)
        return new

    def delete(self, name: Name, member: bytes) -> None:
        """Remove the member from both indexes; MissingTarget if it has no score."""
        with op_scope("zset.delete", bucket=name):
            old = self._score(name, member)
            if old is None:
                raise MissingTarget(name, member)
            with self.kv.batch() as b:
                b.delete(zscore_key(name, member))
                b.delete(zorder_key(name, old, member))

    # --- multi ops ---

    def multi_set(self, name: Name, pairs: Pairs) -> None:
        """
        Apply `[m0, s0, m1, s1, ...]` (or a mapping) in one atomic batch.

        Every score is validated before anything is read or written. A member
        repeated in the same call is diffed against the score staged for it
        earlier in the call, so the last score wins and exactly one order-index
        entry survives.
        """
        items = pairwise(pairs)
        for _, score in items:
            check_u64(score)
        with op_scope("zset.multi_set", bucket=name, count=len(items)):
            staged: Dict[bytes, Optional[int]] = {}
            plan: List[Tuple[bytes, Optional[int], int]] = []
            for member, score in items:
                member = bytes(member)
                if member not in staged:
                    staged[member] = self._score(name, member)
                old = staged[member]
                if old != score:
                    plan.append((member, old, score))
                    staged[member] = score
            if not plan:
                return
            with self.kv.batch() as b:
                for member, old, new in plan:
                    self._stage(b, name, member, old, new)
            log.debug("scores written", extra={"changed": len(plan)})

    def multi_get(self, name: Name, members: Sequence[bytes]) -> Reply:
        """`(member, score:u64be)` pairs for the members that have a score."""
        found = []
        for member in members:
            try:
                raw = self.kv.get(zscore_key(name, member))
            except StoreError as e:
                log.warning("multi_get: skipping unreadable member", extra={"bucket": name, "reason": e.message})
                continue
            if raw is not None:
                found.append((member, raw))
        return Reply.pairs(found)

    def multi_delete(self, name: Name, members: Sequence[bytes]) -> int:
        """
        Remove every listed member that currently has a score, in one batch.

        Members without a score, or whose score cannot be read, are skipped.
        Returns the number removed; raises StoreError if the batch fails.
        """
        with op_scope("zset.multi_delete", bucket=name):
            doomed: Dict[bytes, int] = {}
            for member in members:
                member = bytes(member)
                if member in doomed:
                    continue
                try:
                    old = self._score(name, member)
                except StoreError as e:
                    log.warning("multi_delete: skipping unreadable member", extra={"reason": e.message})
                    continue
                if old is not None:
                    doomed[member] = old
            if doomed:
                with self.kv.batch() as b:
                    for member, old in doomed.items():
                        b.delete(zscore_key(name, member))
                        b.delete(zorder_key(name, old, member))
            log.debug("members deleted", extra={"removed": len(doomed)})
        return len(doomed)

    def delete_bucket(self, name: Name) -> int:
        """Drop both indexes of the set in one batch; returns the member count."""
        with op_scope("zset.delete_bucket", bucket=name):
            direct = list(keys_with_prefix(self.kv, bucket_prefix(Namespace.ZSET_SCORE, name)))
            order = list(keys_with_prefix(self.kv, bucket_prefix(Namespace.ZSET_KEY, name)))
            if direct or order:
                delete_many(self.kv, direct + order)
            log.debug("bucket deleted", extra={"removed": len(direct)})
        return len(direct)

    # --- scans ---

    def scan(self, name: Name, key_start: bytes, score_start: Optional[int], limit: int) -> Reply:
        """
        Ascending `(member, score)` pairs in (score, member) order.

        With an empty `key_start` the listing starts at the first entry scoring
        `>= score_start`; otherwise strictly after `(score_start, key_start)`.
        `score_start=None` means the minimum score.
        """
        prefix = bucket_prefix(Namespace.ZSET_KEY, name)
        score = 0 if score_start is None else check_u64(score_start, "score_start")
        if key_start:
            start = concat(zorder_key(name, score, key_start), b"\x00")
        else:
            start = concat(prefix, encode_u64(score))
        rows = self.kv.iterate(start, prefix_successor(prefix))
        return collect(rows, limit, _order_entry(len(prefix)))

    def reverse_scan(self, name: Name, key_start: bytes, score_start: Optional[int], limit: int) -> Reply:
        """
        Descending mirror of `scan`: with an empty `key_start` the listing starts
        at the last entry scoring `<= score_start`, otherwise strictly before
        `(score_start, key_start)`. `score_start=None` means the maximum score.
        """
        prefix = bucket_prefix(Namespace.ZSET_KEY, name)
        score = U64_MAX if score_start is None else check_u64(score_start, "score_start")
        if key_start:
            upper = zorder_key(name, score, key_start)
        else:
            upper = prefix_successor(concat(prefix, encode_u64(score)))
        rows = self.kv.iterate(prefix, upper, reverse=True)
        return collect(rows, limit, _order_entry(len(prefix)))

    def __repr__(self) -> str:
        return f"SortedSet(kv={self.kv!r})"


def _order_entry(prefix_len: int):
    def emit(key: bytes, _value: bytes) -> Optional[Tuple[bytes, bytes]]:
        try:
            member, score = split_zorder_key(key, prefix_len)
        except ValueError:
            log.warning("skipping malformed order-index key", extra={"key": key})
            return None
        return member, score

    return emit


__all__ = ["SortedSet"]
