"""Store facade: opening from URIs and Config, lifecycle, persistence across reopen."""

from __future__ import annotations

from pathlib import Path

from kvds import config as cfgmod
from kvds.db import HashMap, SortedSet
from kvds.db.store import Store, open_store


def test_store_exposes_both_engines(file_store: Store) -> None:
    assert isinstance(file_store.hash, HashMap)
    assert isinstance(file_store.zset, SortedSet)
    assert file_store.hash.kv is file_store.zset.kv is file_store.kv


def test_structures_share_one_keyspace_without_collisions(file_store: Store) -> None:
    file_store.hash.set("same", b"m", b"v")
    file_store.zset.set("same", b"m", 9)
    assert file_store.hash.get("same", b"m").bytes() == b"v"
    assert file_store.zset.get("same", b"m") == 9
    assert file_store.hash.delete_bucket("same") == 1
    assert file_store.zset.get("same", b"m") == 9


def test_reopen_keeps_data(tmp_path: Path) -> None:
    uri = f"sqlite:///{tmp_path / 'persist.db'}"
    with open_store(uri) as s:
        s.hash.increment("c", b"n", 41)
        s.zset.set("z", b"a", 3)
    assert s.closed
    with open_store(uri) as s:
        assert s.hash.increment("c", b"n", 1) == 42
        assert [e.key for e in s.zset.scan("z", b"", None, 0)] == [b"a"]


def test_close_is_idempotent() -> None:
    s = open_store("memory://")
    s.close()
    s.close()
    assert s.closed


def test_open_from_config(clean_env: Path) -> None:
    cfg = cfgmod.load(sqlite={"synchronous": "FULL"})
    with open_store(cfg) as s:
        s.hash.set("h", b"k", b"v")
        assert s.uri == cfg.store.uri
    assert (clean_env / "kvds.db").exists()
