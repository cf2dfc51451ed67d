from __future__ import annotations

"""
Reply: status-tagged view over retrieved bytes
==============================================

Every read on the hashmap and sorted-set engines returns a `Reply`:

- `state` is "ok", "not_found", or the error message reported by the store
  (verbatim).
- `data` is a flat list of byte buffers. Single-value reads store the value as
  the only element; multi-gets and scans store `(key, value)` pairs flattened
  alternately: [k0, v0, k1, v1, ...].

The buffers are copies, independent of the iterator that produced them.
Scalar views decode with the fixed-width big-endian rule and read as 0 when
the buffer is shorter than 8 bytes.

>>> r = Reply.pairs([(b"a", b"1"), (b"b", b"2")])
>>> r.ok(), r.kv_len(), r.dict()
(True, 2, {b'a': b'1', b'b': b'2'})
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple

from ..utils.bytes import bytes_to_str, decode_i64, decode_u64

REPLY_OK = "ok"
REPLY_NOT_FOUND = "not_found"
REPLY_ERROR = "error"


class Entry(NamedTuple):
    """One `(key, value)` pair of a multi/scan reply."""

    key: bytes
    value: bytes

    def string(self) -> str:
        return bytes_to_str(self.value)

    def int(self) -> int:
        return decode_i64(self.value)

    def uint64(self) -> int:
        return decode_u64(self.value)


@dataclass
class Reply:
    state: str = REPLY_ERROR
    data: List[bytes] = field(default_factory=list)

    # --- constructors ---

    @classmethod
    def value(cls, v: bytes) -> "Reply":
        return cls(REPLY_OK, [bytes(v)])

    @classmethod
    def pairs(cls, items: Iterable[Tuple[bytes, bytes]]) -> "Reply":
        """`ok` with the flattened pairs, or `not_found` if there are none."""
        data: List[bytes] = []
        for k, v in items:
            data.append(bytes(k))
            data.append(bytes(v))
        return cls(REPLY_OK if data else REPLY_NOT_FOUND, data)

    @classmethod
    def missing(cls) -> "Reply":
        return cls(REPLY_NOT_FOUND, [])

    @classmethod
    def error(cls, message: str) -> "Reply":
        """Error reply carrying the store message; never reads as ok / not_found."""
        if not message:
            return cls(REPLY_ERROR, [])
        if message in (REPLY_OK, REPLY_NOT_FOUND):
            message = f"{REPLY_ERROR}: {message}"
        return cls(message, [])

    # --- status ---

    def ok(self) -> bool:
        return self.state == REPLY_OK

    def not_found(self) -> bool:
        return self.state == REPLY_NOT_FOUND

    def __bool__(self) -> bool:
        return self.ok()

    # --- single value views ---

    def _first(self) -> Optional[bytes]:
        return self.data[0] if self.data else None

    def bytes(self) -> Optional[bytes]:
        return self._first()

    def string(self) -> str:
        v = self._first()
        return "" if v is None else bytes_to_str(v)

    def int(self) -> int:
        v = self._first()
        return 0 if v is None else decode_i64(v)

    int64 = int

    def uint(self) -> int:
        v = self._first()
        return 0 if v is None else decode_u64(v)

    uint64 = uint

    # --- pair views ---

    def __iter__(self) -> Iterator[Entry]:
        for i in range(0, len(self.data) - 1, 2):
            yield Entry(self.data[i], self.data[i + 1])

    def list(self) -> List[Entry]:
        return list(iter(self))

    def dict(self) -> Dict[bytes, bytes]:
        """Insertion-ordered mapping; a repeated key keeps its last value."""
        return {e.key: e.value for e in self}

    def kv_len(self) -> int:
        return len(self.data) // 2

    def kv_each(self, fn: Callable[[bytes, bytes], None]) -> int:
        for e in self:
            fn(e.key, e.value)
        return self.kv_len()


__all__ = [
    "Reply",
    "Entry",
    "REPLY_OK",
    "REPLY_NOT_FOUND",
    "REPLY_ERROR",
]
