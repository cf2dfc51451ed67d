"""
kvds package.

Hashmaps and sorted sets laid out over a single ordered, byte-keyed store.
Persistence lives in `kvds.db`; the byte helpers the key layout depends on live
in `kvds.utils`.

Only re-exports the version here to keep import-time side effects near zero.
"""

from __future__ import annotations

from .version import __version__


def get_version() -> str:
    """Return the version string for this package."""
    return __version__


__all__ = ["__version__", "get_version"]
