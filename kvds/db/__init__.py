from __future__ import annotations

"""
kvds.db
=======

Ordered KV backends plus the hashmap and sorted-set engines built on them.

Backends
--------
- SQLite (default, always available)
- RocksDB (optional; used if python-rocksdb is importable)

URIs
----
- "sqlite:///path/to/kvds.db"      → SQLite file
- "sqlite:///:memory:"             → in-memory SQLite (tests)
- "rocksdb:///path/to/dir"         → RocksDB (directory), if python-rocksdb is installed
- "memory://"                      → alias of "sqlite:///:memory:"
- Bare path heuristics:
    * endswith(".db") → treated as sqlite file path
    * otherwise       → treated as rocksdb directory if available, else sqlite file

Example
-------
>>> from kvds.db import open_kv, HashMap
>>> h = HashMap(open_kv("memory://"))
>>> h.set("user", b"name", b"ada")
>>> h.get("user", b"name").string()
'ada'
"""

import os
from typing import Optional, Tuple

from ..errors import BackendUnavailable, ValidationError
from .hashmap import HashMap
from .keys import Namespace
from .kv import KV, Batch, ReadOnlyKV, iter_prefixed, prefix_range
from .reply import Entry, Reply
from .zset import SortedSet

# --- Required backend: SQLite -------------------------------------------------

from . import sqlite as _sqlite_backend

# --- Optional backend: RocksDB ------------------------------------------------

try:
    from . import rocksdb as _rocks_backend  # type: ignore
    _HAS_ROCKS = True
except ImportError:
    _rocks_backend = None  # type: ignore[assignment]
    _HAS_ROCKS = False


def prefer_rocks() -> bool:
    """Return True if the RocksDB backend is importable."""
    return _HAS_ROCKS


def _parse_uri(uri: str) -> Tuple[str, str]:
    """
    Parse a DB URI into (backend, path_or_spec).

    Returns:
        ("sqlite", path) or ("rocksdb", path) or ("memory", "")
    """
    u = uri.strip()
    if u.startswith("sqlite:///"):
        return ("sqlite", u[len("sqlite:///") :])
    if u.startswith("rocksdb:///"):
        return ("rocksdb", u[len("rocksdb:///") :])
    if u.startswith("memory://"):
        return ("memory", "")
    if "://" in u:
        raise ValidationError(f"unsupported DB backend in URI: {u!r}", uri=u)
    # Heuristics for bare paths to keep call sites simple
    if u.endswith(".db"):
        return ("sqlite", u)
    if u and prefer_rocks():
        return ("rocksdb", u)
    return ("sqlite", u or ":memory:")


def open_kv(
    uri: str,
    create: bool = True,
    recover: bool = True,
    *,
    readonly: bool = False,
    pragmas: Optional[dict] = None,
) -> KV:
    """
    Open a KV database by URI. See module docstring for supported forms.

    Args:
        uri: backend spec / path.
        create: create the store (and its parent directory) if missing.
        recover: attempt a recovery-open if the store reports corruption.
        readonly: open without write access (file-backed stores only).
        pragmas: SQLite pragma overrides.

    Raises:
        BackendUnavailable if RocksDB is requested but not installed.
        ValidationError for unsupported URIs.
        StoreCorrupted / StoreError from the backend.
    """
    backend, spec = _parse_uri(uri)

    if backend == "memory":
        return _sqlite_backend.open_sqlite_kv(":memory:", pragmas=pragmas, create=True)

    if backend == "sqlite":
        path = spec or ":memory:"
        if create and not readonly and path != ":memory:":
            parent = os.path.dirname(os.path.abspath(path))
            os.makedirs(parent, exist_ok=True)
        return _sqlite_backend.open_sqlite_kv(
            path, pragmas=pragmas, create=create, readonly=readonly, recover=recover
        )

    if not prefer_rocks():
        raise BackendUnavailable("rocksdb", "pip install python-rocksdb")
    return _rocks_backend.open_rocks_kv(  # type: ignore[union-attr]
        spec or "./kvds.rocks", create=create, readonly=readonly, recover=recover
    )


__all__ = [
    # interfaces
    "KV",
    "ReadOnlyKV",
    "Batch",
    "iter_prefixed",
    "prefix_range",
    "Namespace",
    # engines & results
    "HashMap",
    "SortedSet",
    "Reply",
    "Entry",
    # helpers
    "open_kv",
    "prefer_rocks",
]
