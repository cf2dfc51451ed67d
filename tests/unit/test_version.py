from __future__ import annotations

import pytest

import kvds
from kvds import version


def test_env_override_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KVDS_VERSION", " 9.9.9 ")
    assert version.resolve_version() == "9.9.9"


def test_falls_back_without_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KVDS_VERSION", raising=False)
    got = version.resolve_version()
    assert isinstance(got, str) and got


def test_package_reexports_version() -> None:
    assert kvds.get_version() == kvds.__version__ == version.__version__
