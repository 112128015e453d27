from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

API_KEY_ENV = "CLIPFERRY_API_KEY"
DEFAULT_API_BASE = "https://video.bunnycdn.com"


@dataclass(slots=True)
class LibraryConfig:
    library_id: str
    api_key: str
    api_base: str = DEFAULT_API_BASE
    timeout_seconds: float = 30.0


@dataclass(slots=True)
class SourceConfig:
    directory: Path
    extension: str = ".mp4"
    delimiter: str = "_"


@dataclass(slots=True)
class PoolConfig:
    max_workers: int = 2


@dataclass(slots=True)
class RetryConfig:
    max_attempts: int = 3
    backoff_seconds: float = 1.0


@dataclass(slots=True)
class PathsConfig:
    log: Path | None = None


@dataclass(slots=True)
class AppConfig:
    library: LibraryConfig
    source: SourceConfig
    pool: PoolConfig = field(default_factory=PoolConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)


def _require(mapping: dict, key: str, section: str) -> object:
    if key not in mapping:
        raise ValueError(f"Missing `{section}.{key}` in config")
    return mapping[key]


def _section(raw: dict, key: str, *, required: bool = False) -> dict:
    value = _require(raw, key, "root") if required else raw.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"`{key}` must be a mapping")
    return value


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path).expanduser().resolve()
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Config is not valid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a mapping")

    library_raw = _section(raw, "library", required=True)
    source_raw = _section(raw, "source", required=True)
    pool_raw = _section(raw, "pool")
    retry_raw = _section(raw, "retry")
    paths_raw = _section(raw, "paths")

    def to_path(value: object) -> Path:
        output = Path(str(value)).expanduser()
        if not output.is_absolute():
            output = config_path.parent / output
        return output

    api_key = library_raw.get("api_key") or os.environ.get(API_KEY_ENV)
    if not api_key:
        raise ValueError(f"Missing `library.api_key` in config (or set {API_KEY_ENV})")

    library = LibraryConfig(
        library_id=str(_require(library_raw, "library_id", "library")),
        api_key=str(api_key),
        api_base=str(library_raw.get("api_base", DEFAULT_API_BASE)).rstrip("/"),
        timeout_seconds=float(library_raw.get("timeout_seconds", 30.0)),
    )
    if library.timeout_seconds <= 0:
        raise ValueError("`library.timeout_seconds` must be > 0")

    extension = str(source_raw.get("extension", ".mp4"))
    if not extension.startswith("."):
        extension = f".{extension}"
    source = SourceConfig(
        directory=to_path(_require(source_raw, "directory", "source")),
        extension=extension.lower(),
        delimiter=str(source_raw.get("delimiter", "_")),
    )
    if not source.delimiter:
        raise ValueError("`source.delimiter` must not be empty")

    pool = PoolConfig(max_workers=int(pool_raw.get("max_workers", 2)))
    if pool.max_workers < 1:
        raise ValueError("`pool.max_workers` must be >= 1")

    retry = RetryConfig(
        max_attempts=int(retry_raw.get("max_attempts", 3)),
        backoff_seconds=float(retry_raw.get("backoff_seconds", 1.0)),
    )
    if retry.max_attempts < 1:
        raise ValueError("`retry.max_attempts` must be >= 1")
    if retry.backoff_seconds < 0:
        raise ValueError("`retry.backoff_seconds` must be >= 0")

    log_value = paths_raw.get("log")
    paths = PathsConfig(log=to_path(log_value) if log_value else None)

    return AppConfig(library=library, source=source, pool=pool, retry=retry, paths=paths)


def ensure_local_paths(config: AppConfig) -> None:
    if config.paths.log is not None:
        config.paths.log.parent.mkdir(parents=True, exist_ok=True)
