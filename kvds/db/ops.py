from __future__ import annotations

"""
Helpers shared by the hashmap and sorted-set engines: flat pair-list
validation, checked u64 counter steps, and bounded scan collection.
"""

from contextlib import closing
from typing import Any, Callable, Generator, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import CounterOverflow, StoreError, ValidationError
from ..logging import get_logger
from ..utils.bytes import I64_MAX, I64_MIN, U64_MAX
from .reply import Reply

log = get_logger(__name__)

Pairs = Union[Sequence[Any], Mapping[bytes, Any]]
Row = Tuple[bytes, bytes]


def pairwise(pairs: Pairs) -> List[Tuple[Any, Any]]:
    """
    Normalize `[m0, v0, m1, v1, ...]` (or a mapping) into a list of tuples.

    Raises ValidationError for an empty or odd-length flat sequence.
    """
    if isinstance(pairs, Mapping):
        out = list(pairs.items())
    else:
        if len(pairs) == 0 or len(pairs) % 2 != 0:
            raise ValidationError(
                "kvs len must be a non-zero even number", count=len(pairs)
            )
        out = [(pairs[i], pairs[i + 1]) for i in range(0, len(pairs), 2)]
    if not out:
        raise ValidationError("kvs len must be a non-zero even number", count=0)
    return out


def check_u64(value: int, what: str = "score") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{what} must be an int", got=type(value).__name__)
    if not (0 <= value <= U64_MAX):
        raise ValidationError(f"{what} out of u64 range", got=value)
    return value


def apply_step(current: int, step: int) -> int:
    """
    `current + step`, where `step` is a signed 64-bit integer.

    Raises CounterOverflow if the result leaves [0, 2^64-1]; nothing wraps.
    """
    if isinstance(step, bool) or not isinstance(step, int):
        raise ValidationError("step must be an int", got=type(step).__name__)
    if not (I64_MIN <= step <= I64_MAX):
        raise ValidationError("step out of i64 range", got=step)
    new = current + step
    if new < 0 or new > U64_MAX:
        raise CounterOverflow(current, step)
    return new


def collect(
    rows: Generator[Row, None, None],
    limit: int,
    emit: Callable[[bytes, bytes], Optional[Row]],
) -> Reply:
    """
    Drain `rows` through `emit` into a pairs Reply, stopping after `limit`
    emitted pairs (`limit <= 0` means no limit). `emit` returns None to skip a
    row.

    A StoreError raised while iterating discards everything collected so far
    and becomes the reply state.
    """
    out: List[Row] = []
    try:
        with closing(rows):
            for k, v in rows:
                pair = emit(k, v)
                if pair is None:
                    continue
                out.append(pair)
                if 0 < limit <= len(out):
                    break
    except StoreError as e:
        log.warning("scan aborted by store error", extra={"reason": e.message})
        return Reply.error(e.message)
    return Reply.pairs(out)


__all__ = [
    "Pairs",
    "pairwise",
    "check_u64",
    "apply_step",
    "collect",
]
