"""
Result Cache - TTL store of prior hook results.

Entries are keyed by (hook id, fingerprint). The fingerprint is a
deterministic digest of what the hook actually looks at: event type,
the cache-relevant payload fields, the file content hash, and the
merged config. Expired entries are never returned.
"""

from __future__ import annotations

import copy
import hashlib
import json
import os
import stat
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from hookgov.types import ExecutionContext, HookDefinition, HookResult

logger = structlog.get_logger()

Clock = Callable[[], float]

_FILE_HASH_CHUNK = 1024 * 1024
# Larger files are identified by size and mtime instead of their contents
MAX_HASHED_FILE_BYTES = 16 * 1024 * 1024


def _file_digest(path: str) -> str | None:
    try:
        info = os.stat(path)
        if not stat.S_ISREG(info.st_mode):
            return None
        if info.st_size > MAX_HASHED_FILE_BYTES:
            return f"stat:{info.st_size}:{info.st_mtime_ns}"

        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_FILE_HASH_CHUNK), b""):
                digest.update(chunk)
        return digest.hexdigest()
    except OSError:
        return None


def _jsonable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_jsonable(v) for v in value]
        return sorted(items, key=repr) if isinstance(value, (set, frozenset)) else items
    if isinstance(value, Path):
        return str(value)
    return value


def fingerprint(
    event_type: str,
    payload: Mapping[str, Any],
    config: Mapping[str, Any],
    key_fields: tuple[str, ...] = (),
) -> str:
    """
    Deterministic SHA-256 of the inputs a hook depends on.

    With `key_fields`, only those payload fields take part. When the
    payload names a file but carries no `content_hash`, the file's
    contents are hashed so edits invalidate the entry.
    """
    fields = dict(payload)
    if key_fields:
        fields = {k: fields[k] for k in key_fields if k in fields}

    content_hash = payload.get("content_hash")
    if content_hash is None and payload.get("file_path"):
        content_hash = _file_digest(str(payload["file_path"]))

    canonical = json.dumps(
        {
            "event": event_type,
            "payload": _jsonable(fields),
            "content_hash": content_hash,
            "config": _jsonable(config),
        },
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def context_fingerprint(defn: HookDefinition, ctx: ExecutionContext) -> str:
    return fingerprint(ctx.event.type, ctx.event.payload, ctx.config, defn.cache_key_fields)


@dataclass
class CacheEntry:
    result: HookResult
    stored_at: float  # clock seconds
    ttl_ms: int

    def expired(self, now: float) -> bool:
        return now >= self.stored_at + self.ttl_ms / 1000.0


class ResultCache:
    """
    Keyed TTL cache of hook results.

    Locking is per key: concurrent lookups of different hooks never wait
    on each other. Expiry is lazy on lookup; `start_sweeper` adds a
    background thread that drops expired entries periodically.
    """

    def __init__(
        self,
        max_entries: int | None = None,
        clock: Clock | None = None,
        enabled: bool = True,
    ) -> None:
        self.max_entries = max_entries if max_entries and max_entries > 0 else None
        self.enabled = enabled
        self._clock: Clock = clock or time.monotonic
        self._entries: OrderedDict[tuple[str, str], CacheEntry] = OrderedDict()
        self._key_locks: dict[tuple[str, str], threading.Lock] = {}
        self._index_lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

        self._sweeper: threading.Thread | None = None
        self._stop = threading.Event()

    def _lock_for(self, key: tuple[str, str]) -> threading.Lock:
        with self._index_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def get(
        self, defn: HookDefinition, ctx: ExecutionContext, ttl_ms: int | None = None
    ) -> tuple[HookResult | None, bool]:
        """
        Look up a prior result.

        Returns:
            (result, True) on a fresh hit, (None, False) otherwise.
            The returned result is a copy marked `cached`.
        """
        ttl_ms = defn.cache_ttl_ms if ttl_ms is None else ttl_ms
        if not self.enabled or ttl_ms <= 0:
            return None, False

        key = (defn.id, context_fingerprint(defn, ctx))
        with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is None:
                self._count("_misses")
                return None, False

            if entry.expired(self._clock()):
                self._remove(key)
                self._count("_expirations")
                self._count("_misses")
                return None, False

            self._count("_hits")
            result = copy.deepcopy(entry.result)

        result.cached = True
        result.duration_ms = 0
        result.governance_event = None
        return result, True

    def put(
        self,
        defn: HookDefinition,
        ctx: ExecutionContext,
        result: HookResult,
        ttl_ms: int | None = None,
    ) -> bool:
        """Store a result. A ttl of 0 never stores. Returns True if stored."""
        ttl_ms = defn.cache_ttl_ms if ttl_ms is None else ttl_ms
        if not self.enabled or ttl_ms <= 0:
            return False

        key = (defn.id, context_fingerprint(defn, ctx))
        stored = copy.deepcopy(result)
        stored.annotations = []
        stored.governance_event = None

        with self._lock_for(key):
            with self._index_lock:
                self._entries[key] = CacheEntry(stored, self._clock(), ttl_ms)
                self._entries.move_to_end(key)
            self._enforce_bound()
        return True

    def _count(self, name: str) -> None:
        with self._index_lock:
            setattr(self, name, getattr(self, name) + 1)

    def _remove(self, key: tuple[str, str]) -> None:
        with self._index_lock:
            self._entries.pop(key, None)

    def _enforce_bound(self) -> None:
        if self.max_entries is None or len(self._entries) <= self.max_entries:
            return

        self.sweep()
        with self._index_lock:
            while len(self._entries) > self.max_entries:
                key, _ = self._entries.popitem(last=False)
                self._key_locks.pop(key, None)
                self._evictions += 1
                logger.debug("cache_evicted", hook=key[0])

    def sweep(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        with self._index_lock:
            expired = [k for k, e in self._entries.items() if e.expired(now)]
            for key in expired:
                del self._entries[key]
                self._key_locks.pop(key, None)
            self._expirations += len(expired)
        if expired:
            logger.debug("cache_swept", removed=len(expired))
        return len(expired)

    def invalidate(self, hook_id: str | None = None) -> int:
        """Drop all entries, or all entries of one hook."""
        with self._index_lock:
            if hook_id is None:
                removed = len(self._entries)
                self._entries.clear()
                self._key_locks.clear()
            else:
                keys = [k for k in self._entries if k[0] == hook_id]
                for key in keys:
                    del self._entries[key]
                    self._key_locks.pop(key, None)
                removed = len(keys)
        logger.debug("cache_invalidated", hook=hook_id, removed=removed)
        return removed

    def start_sweeper(self, interval_seconds: float) -> None:
        """Run `sweep` every `interval_seconds` on a daemon thread."""
        if interval_seconds <= 0 or self._sweeper is not None:
            return
        self._stop.clear()

        def _run() -> None:
            while not self._stop.wait(interval_seconds):
                self.sweep()

        self._sweeper = threading.Thread(target=_run, name="hookgov-cache-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._stop.set()
        self._sweeper.join(timeout=5)
        self._sweeper = None

    def stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "enabled": self.enabled,
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
            "evictions": self._evictions,
            "expirations": self._expirations,
        }

    def __len__(self) -> int:
        return len(self._entries)
