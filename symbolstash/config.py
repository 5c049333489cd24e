"""Service configuration, loaded from a YAML file or built from defaults."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

LEVELS = ("off", "error", "warn", "info", "debug", "trace")

_MISSING = object()


class ConfigError(Exception):
    """Raised when the configuration file cannot be opened or parsed."""


class LogFormat(str, enum.Enum):
    """Controls the log format."""

    AUTO = "auto"
    PRETTY = "pretty"
    SIMPLIFIED = "simplified"
    JSON = "json"

    def __str__(self) -> str:
        return self.value


@dataclass
class Logging:
    """Controls the logging system."""

    level: str = "info"
    format: LogFormat = LogFormat.AUTO
    enable_backtraces: bool = True


@dataclass
class Metrics:
    """Controls metric reporting."""

    statsd: str | None = None
    prefix: str = "symbolstash"


@dataclass(frozen=True)
class CacheConfig:
    """Options for fine-tuning cache expiry. ``None`` disables a limit."""

    max_unused_for: timedelta | None = None
    retry_misses_after: timedelta | None = None
    retry_malformed_after: timedelta | None = None

    @classmethod
    def default_derived(cls) -> CacheConfig:
        return cls(
            max_unused_for=timedelta(seconds=3600 * 24 * 7),
            retry_misses_after=timedelta(seconds=3600),
            retry_malformed_after=timedelta(seconds=3600 * 24),
        )

    @classmethod
    def default_downloaded(cls) -> CacheConfig:
        return cls(
            max_unused_for=timedelta(seconds=3600 * 24),
            retry_misses_after=timedelta(seconds=3600),
            retry_malformed_after=timedelta(seconds=3600 * 24),
        )


@dataclass
class CacheConfigs:
    """Expiry settings for downloaded files and for caches derived from them."""

    downloaded: CacheConfig = field(default_factory=CacheConfig.default_downloaded)
    derived: CacheConfig = field(default_factory=CacheConfig.default_derived)


def is_docker() -> bool:
    """Return whether the process runs inside a docker container."""
    if Path("/.dockerenv").exists():
        return True
    try:
        return "/docker" in Path("/proc/self/cgroup").read_text(errors="replace")
    except OSError:
        return False


def default_bind() -> str:
    """Default address the HTTP server binds to."""
    if is_docker():
        return "0.0.0.0:3021"
    return "127.0.0.1:3021"


def default_cache_dir() -> Path | None:
    """Default cache directory; no caching outside of docker."""
    if is_docker():
        return Path("/data")
    return None


@dataclass
class Config:
    """Top-level service configuration."""

    cache_dir: Path | None = field(default_factory=default_cache_dir)
    bind: str = field(default_factory=default_bind)
    logging: Logging = field(default_factory=Logging)
    metrics: Metrics = field(default_factory=Metrics)
    sentry_dsn: str | None = None
    caches: CacheConfigs = field(default_factory=CacheConfigs)
    symstore_proxy: bool = True
    sources: list = field(default_factory=list)
    connect_to_reserved_ips: bool = False

    def cache_path(self, name: str | Path) -> Path | None:
        """Return the named directory below the cache directory, if caching is on."""
        if self.cache_dir is None:
            return None
        return Path(self.cache_dir) / name

    def default_sources(self) -> list:
        """Sources used when a request brings none of its own."""
        return self.sources

    @classmethod
    def load(cls, path: str | Path | None = None) -> Config:
        """Read the configuration from ``path``, or return the defaults if it is None."""
        if path is None:
            return cls()
        try:
            with open(path, "rb") as stream:
                data = yaml.safe_load(stream)
        except OSError as exc:
            raise ConfigError(f"Failed to open file: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse YAML: {exc}") from exc
        return _config_from_data(data)


def _parse_error(message: str) -> ConfigError:
    return ConfigError(f"Failed to parse YAML: {message}")


def _mapping(value: Any, what: str) -> dict:
    if not isinstance(value, dict):
        raise _parse_error(f"{what}: expected a mapping")
    return value


def _string(value: Any, what: str, optional: bool = False) -> str | None:
    if value is None and optional:
        return None
    if not isinstance(value, str):
        raise _parse_error(f"{what}: expected a string")
    return value


def _boolean(value: Any, what: str) -> bool:
    if not isinstance(value, bool):
        raise _parse_error(f"{what}: expected a boolean")
    return value


def _unsigned(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise _parse_error(f"{what}: expected a non-negative integer")
    return value


def _duration(value: Any, what: str) -> timedelta | None:
    if value is None:
        return None
    if isinstance(value, dict):
        secs = value.get("secs", _MISSING)
        nanos = value.get("nanos", _MISSING)
        if secs is _MISSING:
            raise _parse_error(f"{what}: missing field `secs`")
        if nanos is _MISSING:
            raise _parse_error(f"{what}: missing field `nanos`")
    elif isinstance(value, list) and len(value) == 2:
        secs, nanos = value
    else:
        raise _parse_error(f"{what}: expected a duration")
    secs = _unsigned(secs, f"{what}.secs")
    nanos = _unsigned(nanos, f"{what}.nanos")
    return timedelta(seconds=secs, microseconds=nanos / 1000)


def _level(value: Any) -> str:
    text = _string(value, "logging.level")
    lowered = text.lower()
    if lowered not in LEVELS:
        raise _parse_error(f"logging.level: unknown level {text!r}")
    return lowered


def _log_format(value: Any) -> LogFormat:
    text = _string(value, "logging.format")
    try:
        return LogFormat(text)
    except ValueError:
        raise _parse_error(f"logging.format: unknown format {text!r}") from None


def _logging_from_data(data: Any) -> Logging:
    data = _mapping(data, "logging")
    result = Logging()
    if "level" in data:
        result.level = _level(data["level"])
    if "format" in data:
        result.format = _log_format(data["format"])
    if "enable_backtraces" in data:
        result.enable_backtraces = _boolean(
            data["enable_backtraces"], "logging.enable_backtraces"
        )
    return result


def _metrics_from_data(data: Any) -> Metrics:
    data = _mapping(data, "metrics")
    result = Metrics()
    if "statsd" in data:
        result.statsd = _string(data["statsd"], "metrics.statsd", optional=True)
    if "prefix" in data:
        result.prefix = _string(data["prefix"], "metrics.prefix")
    return result


def _cache_config_from_data(data: Any, what: str) -> CacheConfig:
    data = _mapping(data, what)
    return CacheConfig(
        **{
            name: _duration(data.get(name), f"{what}.{name}")
            for name in ("max_unused_for", "retry_misses_after", "retry_malformed_after")
        }
    )


def _cache_configs_from_data(data: Any) -> CacheConfigs:
    data = _mapping(data, "caches")
    result = CacheConfigs()
    if "downloaded" in data:
        result.downloaded = _cache_config_from_data(data["downloaded"], "caches.downloaded")
    if "derived" in data:
        result.derived = _cache_config_from_data(data["derived"], "caches.derived")
    return result


def _config_from_data(data: Any) -> Config:
    data = _mapping(data, "config")
    values: dict[str, Any] = {}
    if "cache_dir" in data:
        cache_dir = _string(data["cache_dir"], "cache_dir", optional=True)
        values["cache_dir"] = None if cache_dir is None else Path(cache_dir)
    if "bind" in data:
        values["bind"] = _string(data["bind"], "bind")
    if "logging" in data:
        values["logging"] = _logging_from_data(data["logging"])
    if "metrics" in data:
        values["metrics"] = _metrics_from_data(data["metrics"])
    if "sentry_dsn" in data:
        values["sentry_dsn"] = _string(data["sentry_dsn"], "sentry_dsn", optional=True)
    if "caches" in data:
        values["caches"] = _cache_configs_from_data(data["caches"])
    if "symstore_proxy" in data:
        values["symstore_proxy"] = _boolean(data["symstore_proxy"], "symstore_proxy")
    if "sources" in data:
        sources = data["sources"]
        if not isinstance(sources, list):
            raise _parse_error("sources: expected a sequence")
        values["sources"] = list(sources)
    if "connect_to_reserved_ips" in data:
        values["connect_to_reserved_ips"] = _boolean(
            data["connect_to_reserved_ips"], "connect_to_reserved_ips"
        )
    return Config(**values)