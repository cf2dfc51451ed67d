"""
kvds errors
-----------

A small, consistent error system for the store and the data-structure engines.

Design goals
------------
- One root `KvdsError` with a machine-friendly `code` and optional `data`.
- Concrete subclasses for the failure kinds callers branch on: validation,
  counter overflow, missing delete target, store failures, configuration.
- Safe JSON representation (`to_dict`) suitable for structured logs.
- Clear separation of *retryable* vs *permanent* failures.

Point-read misses are not errors: engines report them through the `not_found`
state of a `kvds.db.reply.Reply`.

This module uses only stdlib to avoid import-time dependency cycles.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Type


class ErrorCode(str, Enum):
    INTERNAL = "KVDS/INTERNAL"
    CONFIG = "KVDS/CONFIG"

    # Caller input rejected before any write
    VALIDATION = "KVDS/VALIDATION"
    OVERFLOW = "KVDS/OVERFLOW"
    MISSING_TARGET = "KVDS/MISSING_TARGET"

    # Store / backend
    STORE = "KVDS/STORE"
    STORE_CORRUPTED = "KVDS/STORE_CORRUPTED"
    BACKEND_UNAVAILABLE = "KVDS/BACKEND_UNAVAILABLE"


@dataclass(eq=False)
class KvdsError(Exception):
    """
    Root error for kvds.

    Attributes
    ----------
    code: str
        Machine-stable error code (see ErrorCode).
    message: str
        Human hint suitable for logs. For store errors this is the backend
        message, verbatim.
    data: dict
        Optional machine data (bucket names, members as hex, sizes).
    retryable: bool
        Whether the operation may succeed on retry without changing inputs.
    cause: Optional[BaseException]
        Wrapped original exception; not part of equality.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code}: {self.message}")

    def with_context(self, **ctx: Any) -> "KvdsError":
        """Return a copy with extra context merged (does not mutate)."""
        clone = self._clone()
        clone.data = {**self.data, **_jsonmap(ctx)}
        return clone

    def with_cause(self, exc: BaseException) -> "KvdsError":
        """Return a copy carrying `exc` as its cause."""
        clone = self._clone()
        clone.cause = exc
        return clone

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "code": str(getattr(self.code, "value", self.code)),
            "message": self.message,
            "data": _jsonmap(self.data),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def _clone(self) -> "KvdsError":
        # Subclass __init__ signatures differ, so copy state without calling them.
        cls = type(self)
        clone = cls.__new__(cls)
        Exception.__init__(clone, *self.args)
        clone.__dict__.update(self.__dict__)
        clone.data = dict(self.data)
        return clone

    def __str__(self) -> str:  # pragma: no cover - human formatting
        code = getattr(self.code, "value", self.code)
        parts = [f"{code}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


class InternalError(KvdsError):
    def __init__(self, message="internal error", **data: Any) -> None:
        super().__init__(code=ErrorCode.INTERNAL, message=message, data=_jsonmap(data))


class ConfigError(KvdsError):
    def __init__(self, message="invalid configuration", **data: Any) -> None:
        super().__init__(code=ErrorCode.CONFIG, message=message, data=_jsonmap(data))


class ValidationError(KvdsError):
    """Caller input rejected; nothing was written."""

    def __init__(self, message="invalid arguments", **data: Any) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION, message=message, data=_jsonmap(data)
        )


class CounterOverflow(KvdsError):
    """An increment would leave the unsigned 64-bit range; nothing was written."""

    def __init__(self, current: int, step: int, **data: Any) -> None:
        super().__init__(
            code=ErrorCode.OVERFLOW,
            message="overflow number",
            data=_jsonmap({"current": current, "step": step, **data}),
        )


class MissingTarget(KvdsError):
    """Delete of a sorted-set member that has no current score."""

    def __init__(self, name: str, member: bytes) -> None:
        super().__init__(
            code=ErrorCode.MISSING_TARGET,
            message="member has no score",
            data=_jsonmap({"name": name, "member": member}),
        )


class StoreError(KvdsError):
    """Failure reported by the underlying ordered store."""

    def __init__(self, message="store error", retryable: bool = True, **data: Any) -> None:
        super().__init__(
            code=ErrorCode.STORE,
            message=message,
            data=_jsonmap(data),
            retryable=retryable,
        )


class StoreCorrupted(StoreError):
    def __init__(self, message="store corrupted", **data: Any) -> None:
        super().__init__(message=message, retryable=False, **data)
        self.code = ErrorCode.STORE_CORRUPTED


class BackendUnavailable(KvdsError):
    def __init__(self, backend: str, hint: str = "") -> None:
        msg = f"backend unavailable: {backend}"
        if hint:
            msg += f" ({hint})"
        super().__init__(
            code=ErrorCode.BACKEND_UNAVAILABLE,
            message=msg,
            data={"backend": backend, "hint": hint},
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def wrap_store_errors(
    op: str,
    errors: Tuple[Type[BaseException], ...],
    *,
    as_: Type[StoreError] = StoreError,
) -> Iterator[None]:
    """
    Translate backend exceptions raised inside the block into `StoreError`.

    The backend message is kept verbatim as the error message so it can be
    surfaced unchanged as a reply state.
    """
    try:
        yield
    except KvdsError:
        raise
    except errors as e:
        raise as_(str(e) or type(e).__name__, op=op).with_cause(e) from e


def ensure_kvds_error(exc: BaseException) -> KvdsError:
    """Coerce unknown exceptions to InternalError with cause attached."""
    return exc if isinstance(exc, KvdsError) else InternalError().with_cause(exc)


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in data.items()}


def _coerce_json(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    try:
        return str(v)
    except Exception:
        return "<unprintable>"


def _preview(v: Any, limit: int = 96) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[:limit] + "…"


__all__ = [
    "ErrorCode",
    "KvdsError",
    "InternalError",
    "ConfigError",
    "ValidationError",
    "CounterOverflow",
    "MissingTarget",
    "StoreError",
    "StoreCorrupted",
    "BackendUnavailable",
    "wrap_store_errors",
    "ensure_kvds_error",
]
