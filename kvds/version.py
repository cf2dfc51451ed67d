"""
Version helpers for kvds.

Resolution order:
    1) KVDS_VERSION env var (authoritative override)
    2) installed distribution metadata ("kvds")
    3) DEFAULT_VERSION

Safe to import very early; never raises.
"""

from __future__ import annotations

import os
from importlib.metadata import PackageNotFoundError, version as _dist_version

DEFAULT_VERSION = "0.1.0"
DIST_NAME = "kvds"


def resolve_version() -> str:
    env = os.getenv("KVDS_VERSION")
    if env:
        return env.strip()
    try:
        return _dist_version(DIST_NAME)
    except PackageNotFoundError:
        return DEFAULT_VERSION


__version__ = resolve_version()


if __name__ == "__main__":
    print(__version__)
