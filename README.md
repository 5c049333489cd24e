# symbolstash

Support code for a symbol server: YAML configuration, an on-disk cache of
downloaded and derived debug files with expiry rules, logging setup, and JSON
error bodies for an HTTP API. A `symbolstash` command cleans up expired
cache items.

## Installation

```
pip install .
```

## Command line

```
symbolstash --config config.yml cleanup
symbolstash -V
symbolstash --version
```

`cleanup` walks every cache directory below `cache_dir` (`objects`,
`object_meta`, `symcaches`, `cficaches`) and removes items that have expired.
`--config` (or `-c`, before or after the command name) points to a YAML
configuration file; without it the defaults are used, and the cleanup fails
if no `cache_dir` is set. The exit status is 0 on success and 1 on failure.

`-V` prints the package version; `--version` also prints the git commit
reported by `git describe`, or `unknown`.

## Configuration

```yaml
cache_dir: /var/cache/symbols
bind: 127.0.0.1:3021
logging:
  level: info          # off, error, warn, info, debug, trace
  format: auto         # auto, pretty, simplified, json
  enable_backtraces: true
metrics:
  statsd: 127.0.0.1:8125
  prefix: symbolstash
caches:
  downloaded:
    max_unused_for: {secs: 86400, nanos: 0}
    retry_misses_after: {secs: 3600, nanos: 0}
    retry_malformed_after: [86400, 0]
  derived:
    max_unused_for: {secs: 604800, nanos: 0}
    retry_misses_after: {secs: 3600, nanos: 0}
    retry_malformed_after: {secs: 86400, nanos: 0}
symstore_proxy: true
sources: []
connect_to_reserved_ips: false
```

Load it with `Config.load(path)`; `Config.load(None)` gives the defaults.
Every top-level key is optional. Durations are written as a mapping with
`secs` and `nanos`, or as a two-element list `[secs, nanos]`; `null` turns a
limit off. When a `downloaded` or `derived` section is given, any of its
three limits left out is turned off rather than taking its default.

Outside a docker container `cache_dir` defaults to none (no caching) and
`bind` to `127.0.0.1:3021`; inside one they default to `/data` and
`0.0.0.0:3021`. A file that cannot be opened or parsed raises `ConfigError`.

## Cache items

`symbolstash.cache` manages cache files. A file is in one of three states,
reported by `CacheStatus.from_content`:

* positive: any content other than the malformed marker; expires once unused
  for `max_unused_for`.
* negative: an empty file recording a miss; expires `retry_misses_after`
  after it was written.
* malformed: the content `malformed`; expires when written before the
  current `Cache` object was created, or after `retry_malformed_after`.

```python
from symbolstash.config import Config
from symbolstash.cache import Caches, CacheStatus, get_scope_path

caches = Caches(Config.load("config.yml"))
path = get_scope_path(caches.objects.cache_dir, "global", "some/key.pdb")
CacheStatus.POSITIVE.persist_item(path, "/tmp/download.part")
data = caches.objects.open_cachefile(path)   # bytes, or None on a miss
caches.cleanup()
```

`open_cachefile` bumps the modification time of a positive item that was
last touched more than an hour ago. `get_scope_path` replaces `.`, `/` and
`:` in the scope and key with `_`. Cleanup raises `CleanupError` when no
cache directory is configured; failures on single files are logged and
skipped.

## Logging

`symbolstash.log_setup.init_logging(config)` configures the root logger.
The filter specification is read from the `SYMBOLSTASH_LOG` environment
variable (`LEVEL,logger=LEVEL,...`) and defaults to the configured level.
Output is coloured (`pretty`), one plain line per record (`simplified`,
`SimplifiedFormatter`) or one JSON object per record (`json`,
`JsonFormatter`); `auto` picks coloured output when stderr is a terminal.
With `enable_backtraces`, `SYMBOLSTASH_BACKTRACE` is set to `1` and
`format_error` appends tracebacks to the chain of causes it renders.

## API error bodies

```python
from symbolstash.api_error import ApiErrorResponse

ApiErrorResponse.with_detail("not found").to_json()
# '{"detail":"not found"}'
ApiErrorResponse.from_exception(error).to_json()
# '{"detail":"...","causes":["..."]}'
```

## What this package does not do

It does not run an HTTP server, download or symbolicate debug files, or
send metrics. The `bind`, `metrics`, `sentry_dsn`, `symstore_proxy`,
`sources` and `connect_to_reserved_ips` settings are read and kept in
`Config`, but nothing in the package acts on them.