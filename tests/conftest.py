"""
Shared pytest fixtures:
- In-memory SQLite KV and the engines built on it
- File-backed Store under a per-test temp directory
- FlakyKV: a KV wrapper that injects StoreError on chosen operations
- clean_env: KVDS_* variables cleared, data dir under the temp dir
"""
from __future__ import annotations

import os
import typing as t
from pathlib import Path

import pytest

from kvds.db import HashMap, SortedSet, open_kv
from kvds.db.kv import KV, prefix_range
from kvds.db.store import Store, open_store
from kvds.errors import StoreError


# ---------- ENV ISOLATION ----------

@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Drop ambient KVDS_* settings and point the data dir at the test's temp dir."""
    for name in list(os.environ):
        if name.startswith("KVDS_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("KVDS_DATA_DIR", str(tmp_path / "data"))
    return tmp_path / "data"


# ---------- STORES ----------

@pytest.fixture
def kv() -> t.Iterator[KV]:
    handle = open_kv("memory://")
    try:
        yield handle
    finally:
        handle.close()


@pytest.fixture
def hmap(kv: KV) -> HashMap:
    return HashMap(kv)


@pytest.fixture
def zset(kv: KV) -> SortedSet:
    return SortedSet(kv)


@pytest.fixture
def file_store(tmp_path: Path) -> t.Iterator[Store]:
    s = open_store(f"sqlite:///{tmp_path / 'kvds.db'}")
    try:
        yield s
    finally:
        s.close()


# ---------- FAULT INJECTION ----------

class _FailingBatch:
    """Collects ops into the inner batch, then refuses to commit."""

    def __init__(self, inner) -> None:
        self.inner = inner

    def __enter__(self) -> "_FailingBatch":
        self.inner.__enter__()
        return self

    def put(self, key: bytes, value: bytes) -> None:
        self.inner.put(key, value)

    def delete(self, key: bytes) -> None:
        self.inner.delete(key)

    def commit(self) -> None:
        self.inner.rollback()
        raise StoreError("injected commit failure")

    def rollback(self) -> None:
        self.inner.rollback()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class FlakyKV:
    """
    KV wrapper that raises StoreError on demand.

    - `fail_ops`: op names ("get", "has", "put", "delete", "batch") that always fail
    - `fail_keys`: keys whose get/has fail
    - `fail_after`: iterate() fails after yielding this many rows
    """

    def __init__(self, inner: KV) -> None:
        self.inner = inner
        self.fail_ops: t.Set[str] = set()
        self.fail_keys: t.Set[bytes] = set()
        self.fail_after: t.Optional[int] = None

    def _check(self, op: str, key: t.Optional[bytes] = None) -> None:
        if op in self.fail_ops or (key is not None and key in self.fail_keys):
            raise StoreError(f"injected {op} failure")

    def get(self, key: bytes) -> t.Optional[bytes]:
        self._check("get", key)
        return self.inner.get(key)

    def has(self, key: bytes) -> bool:
        self._check("has", key)
        return self.inner.has(key)

    def put(self, key: bytes, value: bytes) -> None:
        self._check("put")
        self.inner.put(key, value)

    def delete(self, key: bytes) -> None:
        self._check("delete")
        self.inner.delete(key)

    def iterate(self, start=None, limit=None, reverse=False):
        for i, row in enumerate(self.inner.iterate(start, limit, reverse)):
            if self.fail_after is not None and i >= self.fail_after:
                raise StoreError("injected iterate failure")
            yield row

    def iter_prefix(self, prefix: bytes):
        return self.iterate(*prefix_range(prefix))

    def batch(self):
        if "batch" in self.fail_ops:
            return _FailingBatch(self.inner.batch())
        return self.inner.batch()

    def close(self) -> None:
        self.inner.close()


@pytest.fixture
def flaky(kv: KV) -> FlakyKV:
    return FlakyKV(kv)
