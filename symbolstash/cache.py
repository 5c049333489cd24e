"""Cache files on disk: status markers, expiry checks and cleanup."""

from __future__ import annotations

import enum
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path

from .config import CacheConfig, Config

_log = logging.getLogger(__name__)

MALFORMED_MARKER = b"malformed"
"""Content of cache items whose computation failed.

Such items expire once the process restarts, or after ``retry_malformed_after``.
"""

_TOUCH_AFTER_SECONDS = 3600


class CacheStatus(enum.Enum):
    """The state a cache item can be in."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    MALFORMED = "malformed"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_content(cls, content: bytes) -> CacheStatus:
        if content == MALFORMED_MARKER:
            return cls.MALFORMED
        if not content:
            return cls.NEGATIVE
        return cls.POSITIVE

    def persist_item(self, path: str | Path, temp_path: str | Path) -> None:
        """Store the item at ``path``; ``temp_path`` holds the computed content."""
        path = Path(path)
        if self is CacheStatus.POSITIVE:
            os.replace(temp_path, path)
            return
        path.write_bytes(MALFORMED_MARKER if self is CacheStatus.MALFORMED else b"")
        Path(temp_path).unlink(missing_ok=True)


class CleanupError(Exception):
    """Raised when cache cleanup cannot proceed."""


_NO_CACHING = "No caching configured! Did you provide a path to your config file?"
_NOT_A_FILE = "Not a file"
_IO_FAILURE = "Failed to access filesystem"


@dataclass
class Cache:
    """A directory of cache items with expiry rules."""

    name: str
    cache_dir: Path | None
    cache_config: CacheConfig
    start_time: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.cache_dir is not None:
            self.cache_dir = Path(self.cache_dir)

    def cleanup(self) -> None:
        """Remove every expired item below the cache directory."""
        _log.info("Cleaning up cache: %s", self.name)
        if self.cache_dir is None:
            raise CleanupError(_NO_CACHING)

        directories = [self.cache_dir]
        while directories:
            directory = directories.pop()
            try:
                with os.scandir(directory) as scan:
                    entries = [Path(entry.path) for entry in scan]
            except FileNotFoundError:
                _log.warning("Directory not found")
                return
            except OSError as exc:
                raise CleanupError(_IO_FAILURE) from exc

            for path in entries:
                if path.is_dir():
                    directories.append(path)
                    continue
                try:
                    self._try_cleanup_path(path)
                except CleanupError as exc:
                    cause = f" (caused by: {exc.__cause__})" if exc.__cause__ else ""
                    _log.error("Failed to clean up %s: %s%s", path, exc, cause)

    def _try_cleanup_path(self, path: Path) -> None:
        _log.debug("Checking %s", path)
        if not path.is_file():
            raise CleanupError(_NOT_A_FILE)
        try:
            usable = self._check_expiry(path)
        except FileNotFoundError:
            usable = None
        except OSError as exc:
            raise CleanupError(_IO_FAILURE) from exc
        if usable is None:
            _log.info("Removing %s", path)
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                raise CleanupError(_IO_FAILURE) from exc

    def _check_expiry(self, path: Path) -> bool | None:
        """Return None if the item has expired, else whether it should be touched.

        The mtime tracks creation for negative and malformed items and last use
        for all others.
        """
        stat = path.stat()
        size = stat.st_size
        is_malformed = False
        if size == len(MALFORMED_MARKER):
            with path.open("rb") as stream:
                is_malformed = stream.read(len(MALFORMED_MARKER)) == MALFORMED_MARKER
        is_negative = size == 0
        modified = stat.st_mtime

        if is_malformed:
            elapsed = time.time() - modified
            retry_after = self.cache_config.retry_malformed_after
            retry_malformed = (
                elapsed >= 0
                and retry_after is not None
                and elapsed > retry_after.total_seconds()
            )
            if modified < self.start_time or retry_malformed:
                return None

        max_age = (
            self.cache_config.retry_misses_after
            if is_negative
            else self.cache_config.max_unused_for
        )
        age = None
        if max_age is not None:
            elapsed = time.time() - modified
            age = elapsed if elapsed >= 0 else None
            if age is None or age > max_age.total_seconds():
                return None

        return (
            not is_negative
            and not is_malformed
            and (age is None or age > _TOUCH_AFTER_SECONDS)
        )

    def open_cachefile(self, path: str | Path) -> bytes | None:
        """Return the item's content if it is present and not expired.

        Bumps the item's mtime when it is used.
        """
        path = Path(path)
        try:
            should_touch = self._check_expiry(path)
            if should_touch is None:
                return None
            if should_touch:
                os.utime(path)
            return path.read_bytes()
        except FileNotFoundError:
            return None


@dataclass(frozen=True, order=True)
class CacheKey:
    """Identifies a cache item within a scope."""

    cache_key: str
    scope: str


def _safe_path_segment(segment: str) -> str:
    return segment.replace(".", "_").replace("/", "_").replace(":", "_")


def get_scope_path(
    cache_dir: str | Path | None, scope: str, cache_key: str
) -> Path | None:
    """Path of a cache item, with scope and key made safe to use as file names."""
    if cache_dir is None:
        return None
    return Path(cache_dir) / _safe_path_segment(scope) / _safe_path_segment(cache_key)


class Caches:
    """All caches of the service."""

    def __init__(self, config: Config) -> None:
        downloaded = config.caches.downloaded
        derived = config.caches.derived
        self.objects = Cache("objects", config.cache_path("objects"), downloaded)
        self.object_meta = Cache("object_meta", config.cache_path("object_meta"), derived)
        self.symcaches = Cache("symcaches", config.cache_path("symcaches"), derived)
        self.cficaches = Cache("cficaches", config.cache_path("cficaches"), derived)

    def cleanup(self) -> None:
        for cache in (self.objects, self.object_meta, self.symcaches, self.cficaches):
            cache.cleanup()


def cleanup(config: Config) -> None:
    """Clean up all caches configured in ``config``."""
    Caches(config).cleanup()