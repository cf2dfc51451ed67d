"""
Byte codec tests: fixed-width u64, composite concatenation, decimal counters
and text helpers from kvds.utils.bytes.
"""

from __future__ import annotations

import pytest

from kvds.utils.bytes import (
    I64_MAX,
    U64_MAX,
    bytes_to_digit_string,
    bytes_to_str,
    concat,
    decode_i64,
    decode_u64,
    digit_string_to_bytes,
    digit_string_to_u64,
    encode_u64,
    str_to_bytes,
    u64_to_digit_string,
)


# -- fixed-width u64 ----------------------------------------------------------


@pytest.mark.parametrize(
    "n, expected",
    [
        (0, b"\x00" * 8),
        (1, b"\x00" * 7 + b"\x01"),
        (258, b"\x00" * 6 + b"\x01\x02"),
        (U64_MAX, b"\xff" * 8),
    ],
)
def test_encode_u64_is_big_endian(n: int, expected: bytes) -> None:
    assert encode_u64(n) == expected
    assert decode_u64(expected) == n


@pytest.mark.parametrize("n", [-1, U64_MAX + 1])
def test_encode_u64_rejects_out_of_range(n: int) -> None:
    with pytest.raises(ValueError):
        encode_u64(n)


@pytest.mark.parametrize("buf", [b"", b"\x01", b"\xff" * 7])
def test_short_buffers_decode_to_zero(buf: bytes) -> None:
    assert decode_u64(buf) == 0


def test_decode_reads_only_first_eight_bytes() -> None:
    assert decode_u64(encode_u64(7) + b"trailing") == 7


def test_decode_i64_twos_complement() -> None:
    assert decode_i64(encode_u64(U64_MAX)) == -1
    assert decode_i64(encode_u64(I64_MAX)) == I64_MAX
    assert decode_i64(encode_u64(I64_MAX + 1)) == -(1 << 63)


def test_byte_order_matches_numeric_order() -> None:
    values = [0, 1, 255, 256, 65535, 1 << 40, U64_MAX - 1, U64_MAX]
    encoded = [encode_u64(v) for v in values]
    assert encoded == sorted(encoded)


# -- concat -------------------------------------------------------------------


def test_concat_joins_mixed_buffers() -> None:
    assert concat(b"a", bytearray(b"bc"), memoryview(b"d"), b"") == b"abcd"
    assert concat() == b""
    assert isinstance(concat(bytearray(b"x")), bytes)


# -- decimal counters ---------------------------------------------------------


def test_digit_string_roundtrip() -> None:
    assert digit_string_to_u64("123456") == 123456
    assert u64_to_digit_string(123456) == "123456"
    assert digit_string_to_bytes("5") == encode_u64(5)
    assert bytes_to_digit_string(encode_u64(5)) == "5"


@pytest.mark.parametrize("s", ["", "-1", "+1", " 1", "1_000", "abc", "١٢", str(U64_MAX + 1)])
def test_malformed_digit_strings(s: str) -> None:
    assert digit_string_to_u64(s) == 0
    assert digit_string_to_bytes(s) == b""


def test_u64_to_digit_string_out_of_range() -> None:
    assert u64_to_digit_string(-5) == "0"
    assert bytes_to_digit_string(b"\x01") == "0"


# -- text ---------------------------------------------------------------------


def test_text_helpers_roundtrip_utf8_and_raw_bytes() -> None:
    assert str_to_bytes("héllo") == "héllo".encode("utf-8")
    assert bytes_to_str("héllo".encode("utf-8")) == "héllo"
    raw = b"\xff\xfe"
    assert str_to_bytes(bytes_to_str(raw)) == raw
