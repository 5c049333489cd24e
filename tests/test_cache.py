import os
import time
from datetime import timedelta
from pathlib import Path

import pytest

from symbolstash.cache import (
    Cache,
    CacheKey,
    Caches,
    CacheStatus,
    CleanupError,
    cleanup,
    get_scope_path,
)
from symbolstash.config import CacheConfig, CacheConfigs, Config


def _write(path, content, age=0.0):
    path.write_bytes(content)
    if age:
        stamp = time.time() - age
        os.utime(path, (stamp, stamp))


def _basenames(directory):
    return sorted(p.name for p in directory.iterdir())


def test_max_unused_for(tmp_path):
    foo = tmp_path / "foo"
    foo.mkdir()
    cache = Cache(
        "test",
        tmp_path,
        CacheConfig(
            max_unused_for=timedelta(seconds=2),
            retry_misses_after=CacheConfig.default_derived().retry_misses_after,
            retry_malformed_after=CacheConfig.default_derived().retry_malformed_after,
        ),
    )
    _write(foo / "killthis", b"hi", age=5)
    _write(foo / "keepthis", b"", age=5)
    _write(foo / "keepthis2", b"hi")

    cache.cleanup()

    assert _basenames(foo) == ["keepthis", "keepthis2"]


def test_retry_misses_after(tmp_path):
    foo = tmp_path / "foo"
    foo.mkdir()
    derived = CacheConfig.default_derived()
    cache = Cache(
        "test",
        tmp_path,
        CacheConfig(
            max_unused_for=derived.max_unused_for,
            retry_misses_after=timedelta(seconds=2),
            retry_malformed_after=derived.retry_malformed_after,
        ),
    )
    _write(foo / "keepthis", b"hi", age=5)
    _write(foo / "killthis", b"", age=5)
    _write(foo / "keepthis2", b"")

    cache.cleanup()

    assert _basenames(foo) == ["keepthis", "keepthis2"]


def test_cleanup_malformed(tmp_path):
    foo = tmp_path / "foo"
    foo.mkdir()
    # Same length as the malformed marker.
    _write(foo / "keepthis", b"addictive", age=1)
    _write(foo / "keepthis2", b"hi", age=1)
    _write(foo / "killthis", b"malformed", age=1)

    cache = Cache("test", tmp_path, CacheConfig.default_derived())
    cache.cleanup()

    assert _basenames(foo) == ["keepthis", "keepthis2"]


def test_malformed_after_start_is_kept_until_retry(tmp_path):
    start = time.time() - 100
    item = tmp_path / "item"
    _write(item, b"malformed", age=50)

    patient = Cache(
        "test",
        tmp_path,
        CacheConfig(retry_malformed_after=timedelta(hours=1)),
        start_time=start,
    )
    patient.cleanup()
    assert item.exists()

    eager = Cache(
        "test",
        tmp_path,
        CacheConfig(retry_malformed_after=timedelta(seconds=10)),
        start_time=start,
    )
    eager.cleanup()
    assert not item.exists()


def test_future_mtime_counts_as_expired(tmp_path):
    item = tmp_path / "future"
    _write(item, b"data", age=-1000)
    Cache("test", tmp_path, CacheConfig.default_derived()).cleanup()
    assert not item.exists()


def test_no_limits_keep_everything(tmp_path):
    _write(tmp_path / "a", b"data", age=10**6)
    _write(tmp_path / "b", b"", age=10**6)
    Cache("test", tmp_path, CacheConfig()).cleanup()
    assert _basenames(tmp_path) == ["a", "b"]


def test_cleanup_without_cache_dir_raises():
    cache = Cache("test", None, CacheConfig.default_derived())
    with pytest.raises(CleanupError, match="No caching configured"):
        cache.cleanup()


def test_cleanup_missing_directory_is_fine(tmp_path):
    cache = Cache("test", tmp_path / "absent", CacheConfig.default_derived())
    cache.cleanup()
    assert not (tmp_path / "absent").exists()


def test_cleanup_on_a_file_raises(tmp_path):
    target = tmp_path / "plain"
    target.write_bytes(b"x")
    cache = Cache("test", target, CacheConfig.default_derived())
    with pytest.raises(CleanupError, match="Failed to access filesystem"):
        cache.cleanup()


def test_open_cachefile_states(tmp_path):
    cache = Cache("test", tmp_path, CacheConfig.default_derived())
    _write(tmp_path / "positive", b"payload")
    _write(tmp_path / "negative", b"")
    assert cache.open_cachefile(tmp_path / "positive") == b"payload"
    assert cache.open_cachefile(tmp_path / "negative") == b""
    assert cache.open_cachefile(tmp_path / "missing") is None


def test_open_cachefile_expired_returns_none(tmp_path):
    cache = Cache("test", tmp_path, CacheConfig(max_unused_for=timedelta(seconds=1)))
    item = tmp_path / "old"
    _write(item, b"payload", age=100)
    assert cache.open_cachefile(item) is None
    assert item.exists()


def test_open_cachefile_malformed_from_earlier_run(tmp_path):
    item = tmp_path / "bad"
    _write(item, b"malformed", age=5)
    cache = Cache("test", tmp_path, CacheConfig.default_derived())
    assert cache.open_cachefile(item) is None


def test_open_cachefile_touches_old_items(tmp_path):
    cache = Cache("test", tmp_path, CacheConfig.default_derived())
    item = tmp_path / "stale"
    _write(item, b"payload", age=7200)
    before = item.stat().st_mtime
    assert cache.open_cachefile(item) == b"payload"
    assert item.stat().st_mtime > before + 3600


def test_open_cachefile_does_not_touch_recent_items(tmp_path):
    cache = Cache("test", tmp_path, CacheConfig.default_derived())
    item = tmp_path / "recent"
    _write(item, b"payload", age=60)
    before = item.stat().st_mtime
    assert cache.open_cachefile(item) == b"payload"
    assert item.stat().st_mtime == before


@pytest.mark.parametrize(
    "content, status",
    [
        (b"malformed", CacheStatus.MALFORMED),
        (b"", CacheStatus.NEGATIVE),
        (b"addictive", CacheStatus.POSITIVE),
        (b"hi", CacheStatus.POSITIVE),
    ],
)
def test_status_from_content(content, status):
    assert CacheStatus.from_content(content) is status


def test_status_names():
    names = [str(CacheStatus.from_content(c)) for c in (b"hi", b"", b"malformed")]
    assert names == ["positive", "negative", "malformed"]


@pytest.mark.parametrize(
    "status, expected",
    [
        (CacheStatus.POSITIVE, b"computed"),
        (CacheStatus.NEGATIVE, b""),
        (CacheStatus.MALFORMED, b"malformed"),
    ],
)
def test_persist_item(tmp_path, status, expected):
    temp = tmp_path / "temp"
    temp.write_bytes(b"computed")
    target = tmp_path / "target"
    status.persist_item(target, temp)
    assert target.read_bytes() == expected
    assert CacheStatus.from_content(target.read_bytes()) is status
    assert not temp.exists()


def test_get_scope_path(tmp_path):
    assert get_scope_path(None, "global", "key") is None
    assert get_scope_path(tmp_path, "global", "key") == tmp_path / "global" / "key"
    assert get_scope_path(tmp_path, "a.b/c:d", "../key") == tmp_path / "a_b_c_d" / "___key"


def test_cache_key_ordering():
    keys = [CacheKey("b", "global"), CacheKey("a", "z"), CacheKey("a", "b")]
    assert sorted(keys) == [CacheKey("a", "b"), CacheKey("a", "z"), CacheKey("b", "global")]


def test_caches_use_configured_directories(tmp_path):
    config = Config(cache_dir=tmp_path, caches=CacheConfigs())
    caches = Caches(config)
    assert caches.objects.cache_dir == tmp_path / "objects"
    assert caches.objects.cache_config == CacheConfig.default_downloaded()
    assert caches.object_meta.cache_dir == tmp_path / "object_meta"
    assert caches.symcaches.cache_dir == tmp_path / "symcaches"
    assert caches.cficaches.cache_dir == tmp_path / "cficaches"
    assert caches.cficaches.cache_config == CacheConfig.default_derived()
    assert caches.symcaches.name == "symcaches"


def test_cleanup_config_removes_expired(tmp_path):
    objects = tmp_path / "objects" / "global"
    objects.mkdir(parents=True)
    _write(objects / "old", b"payload", age=3600 * 24 * 2)
    _write(objects / "fresh", b"payload")
    cleanup(Config(cache_dir=tmp_path))
    assert _basenames(objects) == ["fresh"]


def test_cleanup_config_without_cache_dir_raises():
    with pytest.raises(CleanupError, match="No caching configured"):
        cleanup(Config(cache_dir=None))


def test_cache_dir_is_normalised_to_path(tmp_path):
    cache = Cache("test", str(tmp_path), CacheConfig())
    assert cache.cache_dir == Path(tmp_path)