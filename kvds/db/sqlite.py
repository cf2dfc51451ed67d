from __future__ import annotations

"""
SQLite-backed KV store
======================

Embedded ordered KV on stdlib `sqlite3` (BLOB keys & values), implementing the
`KV` / `ReadOnlyKV` / `Batch` protocols from `kvds.db.kv`.

- Table schema: kv(k BLOB PRIMARY KEY, v BLOB NOT NULL)
- Keys/values are raw bytes; BLOB comparison is memcmp, so `ORDER BY k` is the
  lexicographic byte order the engines rely on.
- Range iteration pages through the table with keyset pagination
  (`k > last ORDER BY k LIMIT n`), so no cursor stays open between pages.

Batches
-------
Operations are queued in memory and applied on commit inside one
`BEGIN IMMEDIATE ... COMMIT` transaction, in submission order.

Threading
---------
One connection shared across threads (`check_same_thread=False`); every
statement runs under an internal lock, so point ops and batch commits are
individually atomic.

Corruption
----------
If opening reports a corrupt database and `recover=True`, the damaged file is
moved aside to `<path>.corrupt`, a fresh store is created at `path`, and every
row that can still be read from the damaged file is copied into it.
"""

import os
import sqlite3
import threading
from typing import Iterator, List, Optional, Tuple, Union

from ..errors import StoreCorrupted, StoreError, wrap_store_errors
from ..logging import get_logger
from .kv import KV, Batch, prefix_range

log = get_logger(__name__)

PathLike = Union[str, bytes, "os.PathLike[str]", "os.PathLike[bytes]"]

DEFAULT_PRAGMAS = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "temp_store": "MEMORY",
    "mmap_size": 256 * 1024 * 1024,
    "cache_size": -256 * 1024,  # negative = KiB
}

_ERRORS = (sqlite3.Error,)
_PAGE = 256
_SQLITE_CORRUPT = 11
_SQLITE_NOTADB = 26


def _apply_pragmas(conn: sqlite3.Connection, pragmas: Optional[dict] = None) -> None:
    p = dict(DEFAULT_PRAGMAS)
    if pragmas:
        p.update(pragmas)
    cur = conn.cursor()
    cur.execute("PRAGMA journal_mode=%s" % p["journal_mode"])
    cur.execute("PRAGMA synchronous=%s" % p["synchronous"])
    cur.execute("PRAGMA temp_store=%s" % p["temp_store"])
    cur.execute("PRAGMA mmap_size=%d" % int(p["mmap_size"]))
    cur.execute("PRAGMA cache_size=%d" % int(p["cache_size"]))
    cur.close()


def _migrate(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
            k BLOB PRIMARY KEY,
            v BLOB NOT NULL
        )
        """
    )


def _is_corruption(exc: BaseException) -> bool:
    if not isinstance(exc, sqlite3.DatabaseError):
        return False
    if getattr(exc, "sqlite_errorcode", None) in (_SQLITE_CORRUPT, _SQLITE_NOTADB):
        return True
    msg = str(exc).lower()
    return "malformed" in msg or "not a database" in msg or "corrupt" in msg


def _normalize_path(path: PathLike) -> str:
    path_str = os.fsdecode(path)
    if path_str.startswith("sqlite:///"):
        path_str = path_str[len("sqlite:///") :]
    return path_str or ":memory:"


def _connect(path_str: str, *, uri: bool = False) -> sqlite3.Connection:
    return sqlite3.connect(
        path_str,
        detect_types=0,
        isolation_level=None,      # autocommit; batches BEGIN explicitly
        check_same_thread=False,   # shared across threads under SQLiteKV._lock
        uri=uri,
    )


def _open_connection(
    path_str: str,
    *,
    pragmas: Optional[dict] = None,
    create: bool = True,
    readonly: bool = False,
) -> sqlite3.Connection:
    if readonly:
        # Plain mode=ro still reads the -wal file of a live writer.
        conn = _connect(f"file:{path_str}?mode=ro", uri=True)
        try:
            conn.execute("PRAGMA query_only=ON")
            conn.execute("SELECT 1 FROM kv LIMIT 1").fetchall()
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    if not create and path_str != ":memory:" and not os.path.exists(path_str):
        raise StoreError(f"SQLite KV not found at {path_str}", retryable=False, path=path_str)

    conn = _connect(path_str)
    try:
        _apply_pragmas(conn, pragmas)
        _migrate(conn)
        # Touch the table so a damaged file fails here rather than on first use.
        conn.execute("SELECT k FROM kv ORDER BY k LIMIT 1").fetchall()
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def _salvage_rows(src_path: str, dst: sqlite3.Connection) -> int:
    """Copy every readable row of a damaged store into `dst`; returns the count."""
    salvaged = 0
    try:
        src = _connect(f"file:{src_path}?mode=ro", uri=True)
    except sqlite3.Error:
        return 0
    try:
        cur = src.execute("SELECT k, v FROM kv")
        dst.execute("BEGIN IMMEDIATE")
        try:
            for k, v in cur:
                dst.execute(
                    "INSERT OR REPLACE INTO kv(k, v) VALUES(?, ?)",
                    (bytes(k), bytes(v)),
                )
                salvaged += 1
        except sqlite3.DatabaseError as e:
            # Stop at the first unreadable page; keep what was copied so far.
            log.warning("salvage stopped early", extra={"salvaged": salvaged, "reason": str(e)})
        dst.execute("COMMIT")
    except sqlite3.DatabaseError as e:
        if dst.in_transaction:
            dst.execute("COMMIT")
        log.warning("nothing salvageable from damaged store", extra={"reason": str(e)})
    finally:
        src.close()
    return salvaged


def _recover(path_str: str, pragmas: Optional[dict]) -> sqlite3.Connection:
    aside = path_str + ".corrupt"
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(path_str + suffix):
            os.replace(path_str + suffix, aside + suffix)
    conn = _open_connection(path_str, pragmas=pragmas, create=True)
    n = _salvage_rows(aside, conn)
    log.warning(
        "recovered corrupt sqlite store",
        extra={"path": path_str, "moved_to": aside, "salvaged": n},
    )
    return conn


class SQLiteBatch(Batch):
    __slots__ = ("_kv", "_ops", "_open")

    def __init__(self, kv: "SQLiteKV") -> None:
        self._kv = kv
        self._ops: List[Tuple[bytes, Optional[bytes]]] = []
        self._open = False

    def __enter__(self) -> "SQLiteBatch":
        if self._open:
            raise RuntimeError("batch already open (nested batches not supported)")
        self._open = True
        return self

    def put(self, key: bytes, value: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._ops.append((bytes(key), bytes(value)))

    def delete(self, key: bytes) -> None:
        if not self._open:
            raise RuntimeError("batch not open")
        self._ops.append((bytes(key), None))

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self) -> None:
        if not self._open:
            return
        ops, self._ops = self._ops, []
        self._open = False
        if ops:
            self._kv._apply(ops)

    def rollback(self) -> None:
        self._ops = []
        self._open = False

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return None


class SQLiteKV(KV):
    """
    SQLite-backed KV. Use `open_sqlite_kv(path)` to construct.
    """

    __slots__ = ("_conn", "_lock", "_path")

    def __init__(self, conn: sqlite3.Connection, path: str = ":memory:") -> None:
        self._conn = conn
        self._lock = threading.RLock()
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    # --- ReadOnlyKV ---

    def get(self, key: bytes) -> Optional[bytes]:
        with self._lock, wrap_store_errors("get", _ERRORS):
            row = self._conn.execute("SELECT v FROM kv WHERE k = ?", (bytes(key),)).fetchone()
        return bytes(row[0]) if row is not None else None

    def has(self, key: bytes) -> bool:
        with self._lock, wrap_store_errors("has", _ERRORS):
            row = self._conn.execute("SELECT 1 FROM kv WHERE k = ? LIMIT 1", (bytes(key),)).fetchone()
        return row is not None

    def iterate(
        self,
        start: Optional[bytes] = None,
        limit: Optional[bytes] = None,
        reverse: bool = False,
    ) -> Iterator[Tuple[bytes, bytes]]:
        """
        Yield `(key, value)` over `[start, limit)`, ascending or descending.

        Pages of `_PAGE` rows are fetched under the lock; between pages other
        threads may write, so long iterations are not snapshot-consistent.
        """
        lo: Tuple[str, Optional[bytes]] = (">=", start)
        hi: Tuple[str, Optional[bytes]] = ("<", limit)
        order = "DESC" if reverse else "ASC"
        while True:
            where, args = [], []
            for op, bound in (lo, hi):
                if bound is not None:
                    where.append(f"k {op} ?")
                    args.append(bytes(bound))
            sql = "SELECT k, v FROM kv"
            if where:
                sql += " WHERE " + " AND ".join(where)
            sql += f" ORDER BY k {order} LIMIT {_PAGE}"
            with self._lock, wrap_store_errors("iterate", _ERRORS):
                rows = self._conn.execute(sql, args).fetchall()
            for k, v in rows:
                yield bytes(k), bytes(v)
            if len(rows) < _PAGE:
                return
            last = bytes(rows[-1][0])
            if reverse:
                hi = ("<", last)
            else:
                lo = (">", last)

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        start, limit = prefix_range(prefix)
        return self.iterate(start, limit)

    def close(self) -> None:
        with self._lock, wrap_store_errors("close", _ERRORS):
            self._conn.close()

    # --- KV ---

    def put(self, key: bytes, value: bytes) -> None:
        with self._lock, wrap_store_errors("put", _ERRORS):
            self._conn.execute(
                "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v",
                (bytes(key), bytes(value)),
            )

    def delete(self, key: bytes) -> None:
        with self._lock, wrap_store_errors("delete", _ERRORS):
            self._conn.execute("DELETE FROM kv WHERE k = ?", (bytes(key),))

    def batch(self) -> SQLiteBatch:
        return SQLiteBatch(self)

    def _apply(self, ops: List[Tuple[bytes, Optional[bytes]]]) -> None:
        with self._lock, wrap_store_errors("write", _ERRORS):
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                for k, v in ops:
                    if v is None:
                        self._conn.execute("DELETE FROM kv WHERE k = ?", (k,))
                    else:
                        self._conn.execute(
                            "INSERT INTO kv(k, v) VALUES(?, ?) ON CONFLICT(k) DO UPDATE SET v=excluded.v",
                            (k, v),
                        )
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")


def open_sqlite_kv(
    path: PathLike,
    *,
    pragmas: Optional[dict] = None,
    create: bool = True,
    readonly: bool = False,
    recover: bool = True,
) -> SQLiteKV:
    """
    Open (or create) a SQLite KV at `path`.

    - `readonly=True` opens with `mode=ro` and `query_only`; it sees a live writer's WAL.
    - `create=False` raises StoreError if the file does not exist.
    - `recover=True` attempts a recovery-open when the file is corrupt;
      otherwise (or if recovery fails) StoreCorrupted is raised.
    """
    path_str = _normalize_path(path)
    try:
        with wrap_store_errors("open", _ERRORS):
            try:
                conn = _open_connection(path_str, pragmas=pragmas, create=create, readonly=readonly)
            except sqlite3.Error as e:
                if not _is_corruption(e):
                    raise
                if not recover or readonly or path_str == ":memory:":
                    raise StoreCorrupted(str(e), path=path_str).with_cause(e) from e
                log.warning("sqlite store reports corruption; attempting recovery", extra={"path": path_str})
                conn = _recover(path_str, pragmas)
    except OSError as e:
        raise StoreError(str(e), retryable=False, op="open", path=path_str).with_cause(e) from e
    log.debug("opened sqlite store", extra={"path": path_str, "readonly": readonly})
    return SQLiteKV(conn, path_str)


__all__ = [
    "SQLiteKV",
    "SQLiteBatch",
    "open_sqlite_kv",
    "DEFAULT_PRAGMAS",
]
