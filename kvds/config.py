"""
kvds configuration loader.

Goals
-----
- Stdlib only, plus PyYAML when a YAML file is loaded.
- Layered config with clear precedence:
    1) Explicit overrides passed to `load()` (highest)
    2) Environment variables (KVDS_*)
    3) Config file (TOML, YAML or JSON)
    4) Built-in defaults (lowest)
- Typed dataclasses with validation (`ConfigError`).

Sections
--------
  store:  { uri, create, readonly, recover }
  sqlite: { synchronous, journal_mode, cache_size_kb }
  log:    { level, format, file }
  paths:  { data_dir }

Environment
-----------
  KVDS_DATA_DIR, KVDS_DB_URI, KVDS_DB_READONLY, KVDS_DB_RECOVER,
  KVDS_SQLITE_SYNCHRONOUS, KVDS_SQLITE_JOURNAL_MODE,
  KVDS_LOG_LEVEL, KVDS_LOG_FORMAT, KVDS_LOG_FILE
"""

from __future__ import annotations

import json
import os
import platform
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

try:  # py311+
    import tomllib as _toml  # type: ignore[import-not-found]
except ImportError:  # py310: TOML files are rejected with a clear error
    _toml = None  # type: ignore[assignment]


DEFAULT_DB_FILENAME = "kvds.db"

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "WARN", "INFO", "DEBUG")
_LOG_FORMATS = ("json", "text", "")
_SQLITE_SYNC = ("OFF", "NORMAL", "FULL", "EXTRA")
_SQLITE_JOURNAL = ("DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF")


def _expand(p: str | Path) -> Path:
    return Path(p).expanduser().resolve()


def _os_default_data_root() -> Path:
    system = platform.system()
    if system == "Darwin":
        return _expand("~/Library/Application Support")
    if system == "Windows":
        appdata = os.environ.get("APPDATA") or os.environ.get("LOCALAPPDATA")
        return _expand(appdata) if appdata else _expand("~\\AppData\\Roaming")
    xdg = os.environ.get("XDG_DATA_HOME")
    return _expand(xdg) if xdg else _expand("~/.local/share")


def _default_data_dir() -> Path:
    override = os.environ.get("KVDS_DATA_DIR")
    if override:
        return _expand(override)
    return _os_default_data_root() / "kvds"


def _parse_bool(v: str) -> bool:
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    v = os.environ.get(name)
    if v is None or v == "":
        return default
    try:
        return int(v, 0)
    except ValueError as e:
        raise ConfigError(f"{name} must be int, got {v!r}", env=name) from e


# ------------------------------
# Typed configuration model
# ------------------------------


@dataclass
class PathsConfig:
    data_dir: Path


@dataclass
class StoreConfig:
    uri: str  # sqlite:///abs/path.db | memory:// | rocksdb:///abs/dir
    create: bool = True
    readonly: bool = False
    recover: bool = True  # attempt a recovery-open when the store reports corruption

    @staticmethod
    def sqlite_default(paths: PathsConfig) -> "StoreConfig":
        return StoreConfig(uri=f"sqlite:///{paths.data_dir / DEFAULT_DB_FILENAME}")


@dataclass
class SQLiteConfig:
    synchronous: str = "NORMAL"
    journal_mode: str = "WAL"
    cache_size_kb: int = 256 * 1024

    def pragmas(self) -> Dict[str, Any]:
        return {
            "synchronous": self.synchronous,
            "journal_mode": self.journal_mode,
            "cache_size": -int(self.cache_size_kb),
        }


@dataclass
class LogConfig:
    level: str = "INFO"
    format: str = ""  # "" → decided by TTY detection
    file: Optional[Path] = None


@dataclass
class Config:
    paths: PathsConfig
    store: StoreConfig
    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def ensure_dirs(self) -> None:
        if self.store.uri.startswith(("sqlite:///", "rocksdb:///")) and ":memory:" not in self.store.uri:
            self.paths.data_dir.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        def _normalize(obj: Any) -> Any:
            if isinstance(obj, Path):
                return str(obj)
            if isinstance(obj, list):
                return [_normalize(i) for i in obj]
            if isinstance(obj, dict):
                return {k: _normalize(v) for k, v in obj.items()}
            return obj

        return _normalize(asdict(self))


# ------------------------------
# File loader (TOML / YAML / JSON)
# ------------------------------


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError("config file not found", path=str(path))
    suffix = path.suffix.lower()
    with path.open("rb") as f:
        if suffix in {".toml", ".tml"}:
            if _toml is None:
                raise ConfigError("tomllib is unavailable (Python < 3.11); use a YAML or JSON config", path=str(path))
            return _toml.load(f)
        if suffix == ".json":
            try:
                return json.load(f)
            except ValueError as e:
                raise ConfigError(f"invalid JSON: {e}", path=str(path)) from e
        if suffix in {".yaml", ".yml"}:
            return _load_yaml(f, path)
    raise ConfigError(f"unsupported config format: {suffix}; use .toml, .yaml or .json", path=str(path))


def _load_yaml(f: Any, path: Path) -> Dict[str, Any]:
    try:
        import yaml
    except ImportError as e:  # pragma: no cover
        raise ConfigError("PyYAML is required to load YAML config. Install with `pip install pyyaml`.", path=str(path)) from e
    try:
        data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML: {e}", path=str(path)) from e
    if not isinstance(data, dict):
        raise ConfigError("YAML config must be a mapping", path=str(path))
    return data


def _merge_dict(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """Nested dict merge: values in b override a."""
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dict(out[k], v)
        else:
            out[k] = v
    return out


def _env_layer() -> Dict[str, Any]:
    env: Dict[str, Any] = {}

    def put(section: str, key: str, value: Any) -> None:
        env.setdefault(section, {})[key] = value

    if "KVDS_DATA_DIR" in os.environ:
        put("paths", "data_dir", os.environ["KVDS_DATA_DIR"])
    if "KVDS_DB_URI" in os.environ:
        put("store", "uri", os.environ["KVDS_DB_URI"].strip())
    if "KVDS_DB_READONLY" in os.environ:
        put("store", "readonly", _parse_bool(os.environ["KVDS_DB_READONLY"]))
    if "KVDS_DB_RECOVER" in os.environ:
        put("store", "recover", _parse_bool(os.environ["KVDS_DB_RECOVER"]))
    if "KVDS_SQLITE_SYNCHRONOUS" in os.environ:
        put("sqlite", "synchronous", os.environ["KVDS_SQLITE_SYNCHRONOUS"].strip().upper())
    if "KVDS_SQLITE_JOURNAL_MODE" in os.environ:
        put("sqlite", "journal_mode", os.environ["KVDS_SQLITE_JOURNAL_MODE"].strip().upper())
    if "KVDS_SQLITE_CACHE_KB" in os.environ:
        put("sqlite", "cache_size_kb", _env_int("KVDS_SQLITE_CACHE_KB", SQLiteConfig.cache_size_kb))
    if "KVDS_LOG_LEVEL" in os.environ:
        put("log", "level", os.environ["KVDS_LOG_LEVEL"].strip().upper())
    if "KVDS_LOG_FORMAT" in os.environ:
        put("log", "format", os.environ["KVDS_LOG_FORMAT"].strip().lower())
    if "KVDS_LOG_FILE" in os.environ:
        put("log", "file", os.environ["KVDS_LOG_FILE"])
    return env


# ------------------------------
# Main loader
# ------------------------------


def load(config_file: Optional[str | Path] = None, **overrides: Any) -> Config:
    """
    Load the configuration. Precedence: overrides > env > file > defaults.

    Overrides are section dicts, e.g. load(store={"uri": "memory://"}).
    """
    paths = PathsConfig(data_dir=_default_data_dir())
    base: Dict[str, Any] = {
        "paths": {"data_dir": str(paths.data_dir)},
        "store": {"uri": "", "create": True, "readonly": False, "recover": True},
        "sqlite": asdict(SQLiteConfig()),
        "log": {"level": "INFO", "format": "", "file": None},
    }

    if config_file:
        base = _merge_dict(base, _load_file(_expand(config_file)))
    base = _merge_dict(base, _env_layer())
    if overrides:
        base = _merge_dict(base, overrides)

    try:
        paths = PathsConfig(data_dir=_expand(base["paths"]["data_dir"]))
        store = StoreConfig(
            uri=str(base["store"].get("uri") or ""),
            create=bool(base["store"].get("create", True)),
            readonly=bool(base["store"].get("readonly", False)),
            recover=bool(base["store"].get("recover", True)),
        )
        sqlite = SQLiteConfig(
            synchronous=str(base["sqlite"]["synchronous"]).upper(),
            journal_mode=str(base["sqlite"]["journal_mode"]).upper(),
            cache_size_kb=int(base["sqlite"]["cache_size_kb"]),
        )
        log = LogConfig(
            level=str(base["log"]["level"]).upper(),
            format=str(base["log"].get("format") or "").lower(),
            file=_expand(base["log"]["file"]) if base["log"].get("file") else None,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"malformed configuration: {e}") from e

    if not store.uri:
        store = StoreConfig(
            uri=StoreConfig.sqlite_default(paths).uri,
            create=store.create,
            readonly=store.readonly,
            recover=store.recover,
        )

    cfg = Config(paths=paths, store=store, sqlite=sqlite, log=log)
    _validate_config(cfg)
    cfg.ensure_dirs()
    return cfg


def _validate_store_uri(uri: str) -> None:
    if uri.startswith(("sqlite:///", "rocksdb:///", "memory://")):
        return
    raise ConfigError(
        f"unsupported store URI scheme in {uri!r}; use sqlite:///path.db, rocksdb:///dir or memory://",
        uri=uri,
    )


def _validate_config(cfg: Config) -> None:
    _validate_store_uri(cfg.store.uri)
    if cfg.store.readonly and cfg.store.uri.startswith("memory://"):
        raise ConfigError("an in-memory store cannot be opened read-only")
    if cfg.sqlite.synchronous not in _SQLITE_SYNC:
        raise ConfigError(f"sqlite.synchronous must be one of {_SQLITE_SYNC}", got=cfg.sqlite.synchronous)
    if cfg.sqlite.journal_mode not in _SQLITE_JOURNAL:
        raise ConfigError(f"sqlite.journal_mode must be one of {_SQLITE_JOURNAL}", got=cfg.sqlite.journal_mode)
    if cfg.log.level not in _LOG_LEVELS:
        raise ConfigError(f"log.level must be one of {_LOG_LEVELS}", got=cfg.log.level)
    if cfg.log.format not in _LOG_FORMATS:
        raise ConfigError("log.format must be 'json' or 'text'", got=cfg.log.format)


# ------------------------------
# CLI helper
# ------------------------------


def main(argv: List[str] | None = None) -> int:
    """
    python -m kvds.config                      # defaults/env; print JSON
    python -m kvds.config path/to/config.toml  # load file; print JSON
    """
    argv = list(argv if argv is not None else sys.argv[1:])
    path = argv[0] if argv else None
    try:
        cfg = load(path)
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2
    print(json.dumps(cfg.to_dict(), indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
