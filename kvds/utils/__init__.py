"""
kvds.utils
----------

Pure-stdlib helpers shared by the key layout and the result views.

- `bytes` : fixed-width u64 codec, composite-key concatenation, decimal
            counter conversions

`bytes` shadows the builtin if imported by bare name; prefer module-qualified
access (`utils.bytes`) or the `bytes_utils` alias.
"""

from __future__ import annotations

from . import bytes as bytes_utils

__all__ = ["bytes_utils"]
