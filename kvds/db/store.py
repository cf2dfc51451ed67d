from __future__ import annotations

"""
Store facade: one KV handle, both engines.

>>> with open_store("memory://") as s:
...     s.zset.set("board", b"ada", 100)
...     s.zset.scan("board", b"", None, 10).dict()
{b'ada': b'\\x00\\x00\\x00\\x00\\x00\\x00\\x00d'}
"""

from typing import Any, Optional, Union

from ..config import Config
from ..logging import get_logger
from . import open_kv
from .hashmap import HashMap
from .kv import KV
from .zset import SortedSet

log = get_logger(__name__)


class Store:
    """Owns a KV handle and exposes `.hash` (HashMap) and `.zset` (SortedSet)."""

    def __init__(self, kv: KV, uri: str = "") -> None:
        self.kv = kv
        self.uri = uri
        self.hash = HashMap(kv)
        self.zset = SortedSet(kv)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.kv.close()
        log.debug("store closed", extra={"uri": self.uri})

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None

    def __repr__(self) -> str:
        return f"Store(uri={self.uri!r}, closed={self._closed})"


def open_store(target: Union[str, Config], **kwargs: Any) -> Store:
    """
    Open a Store from a URI (extra kwargs go to `open_kv`) or a resolved Config.

    From a Config, the store section supplies create/readonly/recover, SQLite
    pragmas come from the sqlite section, and the data directory is created.
    """
    if isinstance(target, Config):
        target.ensure_dirs()
        uri = target.store.uri
        kv = open_kv(
            uri,
            create=target.store.create,
            recover=target.store.recover,
            readonly=target.store.readonly,
            pragmas=target.sqlite.pragmas(),
        )
    else:
        uri = target
        kv = open_kv(uri, **kwargs)
    log.info("store opened", extra={"uri": uri})
    return Store(kv, uri)


__all__ = ["Store", "open_store"]
