from __future__ import annotations

"""
RocksDB-backed KV (optional)
============================

High-throughput ordered KV using python-rocksdb when available. Importing this
module without the binding installed raises ImportError; `kvds.db.open_kv`
checks `prefer_rocks()` before routing here.

Features
- Binary keys & values (bytes in, bytes out)
- Range iteration via iterator seek / seek_for_prev, forward or reversed
- Atomic batches using WriteBatch (applied in submission order)
- Tuned defaults: block cache, Bloom filter, LZ4 compression

Corruption
----------
The store is opened with `paranoid_checks=True`. If that open reports
corruption and `recover=True`, it is retried once with `paranoid_checks=False`,
which lets RocksDB skip damaged files instead of refusing to open.

Install
-------
    pip install python-rocksdb
"""

import os
import threading
from typing import Iterator, Optional, Tuple, Union

import rocksdb  # type: ignore[import-not-found]
from rocksdb import errors as rocks_errors  # type: ignore[import-not-found]

from ..errors import StoreCorrupted, StoreError, wrap_store_errors
from ..logging import get_logger
from .kv import KV, Batch, prefix_range

log = get_logger(__name__)

# Status errors from the binding (all derive from rocksdb.errors.Error) plus
# OS-level failures. Programming errors such as TypeError propagate unchanged.
_ERRORS = (rocks_errors.Error, OSError)


def _is_corruption(exc: BaseException) -> bool:
    return isinstance(exc, rocks_errors.Corruption) or "corruption" in str(exc).lower()


class RocksBatch(Batch):
    __slots__ = ("_kv", "_wb", "_open")

    def __init__(self, kv: "RocksKV") -> None:
        self._kv = kv
        self._wb = rocksdb.WriteBatch()
        self._open = False

    def __enter__(self) -> "RocksBatch":
        if self._open:
            raise RuntimeError("batch already open")
        self._open = True
        return self

    def put(self, key: bytes, value: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._wb.put(bytes(key), bytes(value))

    def delete(self, key: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._wb.delete(bytes(key))

    def commit(self) -> None:
        if not self._open:
            return
        wb, self._wb = self._wb, rocksdb.WriteBatch()
        self._open = False
        if wb.count():
            self._kv._write(wb)

    def rollback(self) -> None:
        self._wb = rocksdb.WriteBatch()
        self._open = False

    def __exit__(self, et, ev, tb) -> Optional[bool]:
        if et is None:
            self.commit()
        else:
            self.rollback()
        return None


class RocksKV(KV):
    """RocksDB-backed KV satisfying the KV / ReadOnlyKV protocols."""

    __slots__ = ("_db", "_ro", "_lock")

    def __init__(self, db: "rocksdb.DB", read_only: bool) -> None:
        self._db = db
        self._ro = read_only
        self._lock = threading.Lock()

    # --- ReadOnlyKV ---

    def get(self, key: bytes) -> Optional[bytes]:
        with wrap_store_errors("get", _ERRORS):
            v = self._db.get(bytes(key))
        return None if v is None else bytes(v)

    def has(self, key: bytes) -> bool:
        return self.get(key) is not None

    def iterate(
        self,
        start: Optional[bytes] = None,
        limit: Optional[bytes] = None,
        reverse: bool = False,
    ) -> Iterator[Tuple[bytes, bytes]]:
        with wrap_store_errors("iterate", _ERRORS):
            it = self._db.iteritems()
            if reverse:
                if limit is None:
                    it.seek_to_last()
                else:
                    it.seek_for_prev(limit)
                cursor = reversed(it)
            else:
                if start is None:
                    it.seek_to_first()
                else:
                    it.seek(start)
                cursor = it
        while True:
            with wrap_store_errors("iterate", _ERRORS):
                try:
                    k, v = next(cursor)
                except StopIteration:
                    return
            k = bytes(k)
            if reverse:
                if limit is not None and k >= limit:
                    continue  # seek_for_prev lands on `limit` itself when present
                if start is not None and k < start:
                    return
            elif limit is not None and k >= limit:
                return
            yield k, bytes(v)

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        start, limit = prefix_range(prefix)
        return self.iterate(start, limit)

    def close(self) -> None:
        with wrap_store_errors("close", _ERRORS):
            close = getattr(self._db, "close", None)
            if close is not None:
                close()
        self._db = None

    # --- KV ---

    def put(self, key: bytes, value: bytes) -> None:
        self._check_writable()
        with wrap_store_errors("put", _ERRORS):
            self._db.put(bytes(key), bytes(value))

    def delete(self, key: bytes) -> None:
        self._check_writable()
        with wrap_store_errors("delete", _ERRORS):
            self._db.delete(bytes(key))

    def batch(self) -> RocksBatch:
        self._check_writable()
        return RocksBatch(self)

    def _write(self, wb: "rocksdb.WriteBatch") -> None:
        with self._lock, wrap_store_errors("write", _ERRORS):
            self._db.write(wb)

    def _check_writable(self) -> None:
        if self._ro:
            raise StoreError("DB is read-only", retryable=False)


def _default_options(*, create: bool, paranoid: bool = True) -> "rocksdb.Options":
    opts = rocksdb.Options()
    opts.create_if_missing = create
    opts.paranoid_checks = paranoid
    opts.max_open_files = 512
    opts.compression = rocksdb.CompressionType.lz4_compression
    opts.table_factory = rocksdb.BlockBasedTableFactory(
        block_cache=rocksdb.LRUCache(256 * 1024 * 1024),
        block_size=16 * 1024,
        filter_policy=rocksdb.BloomFilterPolicy(10),
    )
    # No fixed prefix extractor: bucket names vary in length, so range scans
    # rely on total-order seeks.
    return opts


def open_rocks_kv(
    path: Union[str, "os.PathLike[str]"],
    *,
    create: bool = True,
    readonly: bool = False,
    recover: bool = True,
) -> RocksKV:
    """
    Open a RocksDB KV at `path` (a directory).

    Raises StoreCorrupted if the store is damaged and recovery is disabled or
    fails; StoreError for any other open failure.
    """
    db_path = os.fspath(path)
    if create and not readonly:
        os.makedirs(os.path.abspath(db_path), exist_ok=True)

    try:
        db = rocksdb.DB(db_path, _default_options(create=create), read_only=readonly)
    except _ERRORS as e:
        if not _is_corruption(e):
            raise StoreError(str(e), retryable=False, op="open", path=db_path).with_cause(e) from e
        if not recover:
            raise StoreCorrupted(str(e), path=db_path).with_cause(e) from e
        log.warning("rocksdb store reports corruption; attempting recovery", extra={"path": db_path})
        try:
            db = rocksdb.DB(
                db_path,
                _default_options(create=create, paranoid=False),
                read_only=readonly,
            )
        except _ERRORS as e2:
            raise StoreCorrupted(str(e2), path=db_path).with_cause(e2) from e2
        log.warning("recovered corrupt rocksdb store", extra={"path": db_path})

    log.debug("opened rocksdb store", extra={"path": db_path, "readonly": readonly})
    return RocksKV(db, read_only=readonly)


__all__ = [
    "open_rocks_kv",
    "RocksKV",
    "RocksBatch",
]
