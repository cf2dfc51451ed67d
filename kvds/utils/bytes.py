"""
kvds.utils.bytes
================

Dependency-free helpers for the byte layout used by every composite key:

- Fixed-width u64: encode_u64 / decode_u64 (big-endian, so byte order equals
  numeric order)
- Composite keys: concat()
- Decimal counters: digit_string_to_bytes / bytes_to_digit_string /
  digit_string_to_u64 / u64_to_digit_string
- Text: str_to_bytes / bytes_to_str

Permissive decoding
-------------------
`decode_u64` returns 0 for buffers shorter than 8 bytes instead of raising.
Existing callers depend on that, but it means a 0 cannot tell "absent" or
"corrupt" apart from a stored zero. Use `Reply.not_found()` or `has()` when the
difference matters.

Examples
--------
>>> encode_u64(258)
b'\\x00\\x00\\x00\\x00\\x00\\x00\\x01\\x02'
>>> decode_u64(encode_u64(258))
258
>>> decode_u64(b"\\x01")
0
>>> concat(b"a", b"", b"bc")
b'abc'
"""

from __future__ import annotations

from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]

U64_BYTES = 8
U64_MAX = (1 << 64) - 1
I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1


def encode_u64(n: int) -> bytes:
    if not (0 <= n <= U64_MAX):
        raise ValueError("u64 out of range")
    return n.to_bytes(U64_BYTES, "big")


def decode_u64(buf: BytesLike) -> int:
    """Big-endian u64 from the first 8 bytes; 0 if `buf` is shorter."""
    if len(buf) < U64_BYTES:
        return 0
    return int.from_bytes(bytes(buf[:U64_BYTES]), "big")


def decode_i64(buf: BytesLike) -> int:
    """Two's-complement view of `decode_u64(buf)`."""
    n = decode_u64(buf)
    return n - (1 << 64) if n > I64_MAX else n


def concat(*fragments: BytesLike) -> bytes:
    """Join fragments into one buffer, allocated once for the total length."""
    out = bytearray(sum(len(f) for f in fragments))
    i = 0
    for f in fragments:
        n = len(f)
        out[i : i + n] = f
        i += n
    return bytes(out)


def _parse_u64(s: str) -> int:
    # Plain ASCII digits only: no sign, no whitespace, no underscores.
    if not s or not s.isascii() or not s.isdigit():
        raise ValueError(f"not a decimal u64: {s!r}")
    n = int(s, 10)
    if n > U64_MAX:
        raise ValueError(f"decimal u64 out of range: {s!r}")
    return n


def digit_string_to_u64(s: str) -> int:
    """Parse "123456" -> 123456; malformed input -> 0."""
    try:
        return _parse_u64(s)
    except ValueError:
        return 0


def u64_to_digit_string(n: int) -> str:
    return str(n) if 0 <= n <= U64_MAX else "0"


def digit_string_to_bytes(s: str) -> bytes:
    """Parse "123456" -> 8-byte big-endian; malformed input -> b"" """
    try:
        return encode_u64(_parse_u64(s))
    except ValueError:
        return b""


def bytes_to_digit_string(buf: BytesLike) -> str:
    """8-byte big-endian -> "123456" (short buffers read as 0)."""
    return str(decode_u64(buf))


def str_to_bytes(s: str) -> bytes:
    return s.encode("utf-8", "surrogateescape")


def bytes_to_str(buf: BytesLike) -> str:
    return bytes(buf).decode("utf-8", "surrogateescape")


__all__ = [
    "BytesLike",
    "U64_BYTES",
    "U64_MAX",
    "I64_MIN",
    "I64_MAX",
    "encode_u64",
    "decode_u64",
    "decode_i64",
    "concat",
    "digit_string_to_u64",
    "u64_to_digit_string",
    "digit_string_to_bytes",
    "bytes_to_digit_string",
    "str_to_bytes",
    "bytes_to_str",
]
