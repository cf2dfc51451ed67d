"""Structured logging: context binding, JSON/text formatters and engine log lines."""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import pytest

from kvds import config as cfgmod
from kvds import logging as klog
from kvds.db import HashMap


@pytest.fixture
def captured() -> io.StringIO:
    root = logging.getLogger()
    before, saved_level = set(root.handlers), root.level
    buf = io.StringIO()
    klog.configure(json=True, level="DEBUG", stream=buf, propagate_existing=True)
    ours = [h for h in root.handlers if h not in before]
    try:
        yield buf
    finally:
        for h in ours:
            root.removeHandler(h)
        root.setLevel(saved_level)
        klog.clear_context()


def lines(buf: io.StringIO) -> list:
    return [json.loads(line) for line in buf.getvalue().splitlines() if line.strip()]


def test_bind_and_unbind() -> None:
    klog.clear_context()
    klog.bind(store="memory://", bucket=b"\x01")
    assert klog.context() == {"store": "memory://", "bucket": "01"}
    klog.unbind("bucket")
    assert klog.context() == {"store": "memory://"}
    klog.clear_context()
    assert klog.context() == {}


def test_op_scope_restores_context() -> None:
    klog.clear_context()
    klog.bind(trace_id="t1")
    with klog.op_scope("hash.set", bucket="h"):
        assert klog.context() == {"trace_id": "t1", "op": "hash.set", "bucket": "h"}
    assert klog.context() == {"trace_id": "t1"}
    klog.clear_context()


def test_json_formatter_includes_context_and_extras(captured: io.StringIO) -> None:
    log = klog.get_logger("kvds.test")
    with klog.op_scope("zset.set", bucket="board"):
        log.info("score changed", extra={"member": b"ab", "new": 5})
    (rec,) = lines(captured)
    assert rec["msg"] == "score changed"
    assert rec["level"] == "INFO"
    assert rec["op"] == "zset.set"
    assert rec["bucket"] == "board"
    assert rec["member"] == "6162"
    assert rec["new"] == 5


def test_text_formatter_renders_fields() -> None:
    stream = io.StringIO()
    fmt = klog.TextFormatter(stream)
    record = logging.LogRecord("kvds.x", logging.WARNING, __file__, 1, "hello", None, None)
    record.reason = "disk"
    with klog.op_scope("hash.get"):
        line = fmt.format(record)
    assert "op=hash.get" in line
    assert "reason=disk" in line
    assert line.endswith("| hello")


def test_with_fields_adapter(captured: io.StringIO) -> None:
    adapter = klog.with_fields(klog.get_logger("kvds.test"), component="gc")
    adapter.warning("sweep", extra={"removed": 3})
    (rec,) = lines(captured)
    assert rec["component"] == "gc"
    assert rec["removed"] == 3


def test_engine_warns_on_degraded_read(captured: io.StringIO, flaky) -> None:
    h = HashMap(flaky)
    flaky.fail_ops.add("has")
    assert h.has("h", b"k") is False
    warnings = [r for r in lines(captured) if r["level"] == "WARNING"]
    assert warnings and warnings[0]["reason"] == "injected has failure"


def test_env_selects_format(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KVDS_LOG_FORMAT", "text")
    assert klog._decide_json(None, io.StringIO()) is False
    monkeypatch.setenv("KVDS_LOG_FORMAT", "json")
    assert klog._decide_json(None, io.StringIO()) is True
    assert klog._decide_json(False, io.StringIO()) is False


def test_configure_from_config_applies_log_section(clean_env: Path, tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "kvds.jsonl"
    cfg = cfgmod.load(store={"uri": "memory://"}, log={"level": "debug", "format": "json", "file": str(log_file)})
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        klog.configure_from_config(cfg)
        assert root.level == logging.DEBUG
        assert klog.context()["store"] == "memory://"
        klog.get_logger("kvds.test").debug("configured", extra={"n": 1})
        for h in root.handlers:
            h.flush()
        (rec,) = [json.loads(line) for line in log_file.read_text().splitlines() if line.strip()]
        assert rec["msg"] == "configured"
        assert rec["store"] == "memory://"
        assert rec["n"] == 1
    finally:
        for h in list(root.handlers):
            if h not in saved_handlers:
                root.removeHandler(h)
                h.close()
        for h in saved_handlers:
            if h not in root.handlers:
                root.addHandler(h)
        root.setLevel(saved_level)
        klog.clear_context()
