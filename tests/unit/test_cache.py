"""
Unit tests for the result cache.

Tests:
- Fingerprint determinism and sensitivity
- TTL semantics (0 disables, expiry never served)
- Bounded size, invalidation, stats
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from hookgov import cache as cache_module
from hookgov.cache import ResultCache, fingerprint
from hookgov.types import HookResult, HookStatus


class TestFingerprint:
    """Tests for fingerprint()."""

    def test_deterministic_regardless_of_key_order(self) -> None:
        a = fingerprint("pre-commit", {"x": 1, "y": [1, 2]}, {"min": 80, "paths": ["src"]})
        b = fingerprint("pre-commit", {"y": [1, 2], "x": 1}, {"paths": ["src"], "min": 80})
        assert a == b
        assert len(a) == 64

    def test_changes_with_inputs(self) -> None:
        base = fingerprint("pre-commit", {"content_hash": "abc"}, {"min": 80})
        assert base != fingerprint("file-change", {"content_hash": "abc"}, {"min": 80})
        assert base != fingerprint("pre-commit", {"content_hash": "abd"}, {"min": 80})
        assert base != fingerprint("pre-commit", {"content_hash": "abc"}, {"min": 90})

    def test_key_fields_limit_payload(self) -> None:
        key_fields = ("file_path",)
        a = fingerprint("e", {"file_path": "a.py", "content_hash": "h", "ts": 1}, {}, key_fields)
        b = fingerprint("e", {"file_path": "a.py", "content_hash": "h", "ts": 2}, {}, key_fields)
        assert a == b

    def test_file_contents_hashed_when_no_content_hash(self, tmp_path: Path) -> None:
        path = tmp_path / "app.py"
        path.write_text("print('a')\n")
        before = fingerprint("file-change", {"file_path": str(path)}, {})
        assert before == fingerprint("file-change", {"file_path": str(path)}, {})

        path.write_text("print('b')\n")
        assert before != fingerprint("file-change", {"file_path": str(path)}, {})

    def test_large_file_identified_by_stat(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(cache_module, "MAX_HASHED_FILE_BYTES", 4)
        path = tmp_path / "dump.bin"
        path.write_bytes(b"aaaaaaaa")
        os.utime(path, ns=(1_000_000_000, 1_000_000_000))
        before = fingerprint("file-change", {"file_path": str(path)}, {})

        path.write_bytes(b"bbbbbbbb")
        os.utime(path, ns=(1_000_000_000, 1_000_000_000))
        assert before == fingerprint("file-change", {"file_path": str(path)}, {})

        path.write_bytes(b"bbbbbbbbb")
        assert before != fingerprint("file-change", {"file_path": str(path)}, {})

    @pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs named pipes")
    def test_fifo_not_read(self, tmp_path: Path) -> None:
        fifo = tmp_path / "pipe"
        os.mkfifo(fifo)

        with_fifo = fingerprint("file-change", {"file_path": str(fifo)}, {})
        assert with_fifo == fingerprint("file-change", {"file_path": str(fifo)}, {})


class TestResultCache:
    """Tests for ResultCache."""

    def test_ttl_zero_never_stores(self, make_hook, make_context) -> None:
        cache = ResultCache()
        defn = make_hook("deploy-window", cache_ttl_ms=0)
        ctx = make_context()

        assert cache.put(defn, ctx, HookResult.passed()) is False
        assert cache.get(defn, ctx) == (None, False)
        assert len(cache) == 0

    def test_hit_returns_marked_copy(self, make_hook, make_context) -> None:
        cache = ResultCache()
        defn = make_hook("fmt", cache_ttl_ms=1000)
        ctx = make_context(payload={"content_hash": "abc"})
        original = HookResult.warn("2 files need formatting", {"files": ["a.py", "b.py"]})
        original.duration_ms = 120
        original.annotations.append("slow")

        cache.put(defn, ctx, original)
        result, hit = cache.get(defn, ctx)

        assert hit
        assert result is not original
        assert result.cached
        assert result.duration_ms == 0
        assert result.status is HookStatus.WARNING
        assert result.details == {"files": ["a.py", "b.py"]}
        assert result.annotations == []

        # Mutating the returned copy never leaks into the store
        result.details["files"].append("c.py")
        again, _ = cache.get(defn, ctx)
        assert again.details == {"files": ["a.py", "b.py"]}

    def test_expired_entry_never_served(self, make_hook, make_context, clock) -> None:
        cache = ResultCache(clock=clock)
        defn = make_hook("fmt", cache_ttl_ms=300_000)
        ctx = make_context(payload={"content_hash": "abc"})
        cache.put(defn, ctx, HookResult.passed())

        clock.advance(299.0)
        assert cache.get(defn, ctx)[1] is True

        clock.advance(1.0)
        assert cache.get(defn, ctx) == (None, False)
        assert len(cache) == 0

    def test_different_context_misses(self, make_hook, make_context) -> None:
        cache = ResultCache()
        defn = make_hook("fmt", cache_ttl_ms=1000)
        cache.put(defn, make_context(payload={"content_hash": "a"}), HookResult.passed())

        assert cache.get(defn, make_context(payload={"content_hash": "b"}))[1] is False

    def test_keyed_by_hook(self, make_hook, make_context) -> None:
        cache = ResultCache()
        ctx = make_context(payload={"content_hash": "a"})
        cache.put(make_hook("one", cache_ttl_ms=1000), ctx, HookResult.passed())

        assert cache.get(make_hook("two", cache_ttl_ms=1000), ctx)[1] is False

    def test_disabled_cache(self, make_hook, make_context) -> None:
        cache = ResultCache(enabled=False)
        defn = make_hook("fmt", cache_ttl_ms=1000)
        ctx = make_context()
        assert cache.put(defn, ctx, HookResult.passed()) is False
        assert cache.get(defn, ctx)[1] is False

    def test_sweep_removes_expired(self, make_hook, make_context, clock) -> None:
        cache = ResultCache(clock=clock)
        short = make_hook("short", cache_ttl_ms=1000)
        long = make_hook("long", cache_ttl_ms=60_000)
        ctx = make_context()
        cache.put(short, ctx, HookResult.passed())
        cache.put(long, ctx, HookResult.passed())

        clock.advance(5.0)
        assert cache.sweep() == 1
        assert len(cache) == 1
        assert cache.get(long, ctx)[1] is True

    def test_max_entries_evicts_oldest(self, make_hook, make_context) -> None:
        cache = ResultCache(max_entries=2)
        ctx = make_context()
        hooks = [make_hook(f"h{i}", cache_ttl_ms=60_000) for i in range(3)]
        for defn in hooks:
            cache.put(defn, ctx, HookResult.passed())

        assert len(cache) == 2
        assert cache.get(hooks[0], ctx)[1] is False
        assert cache.get(hooks[2], ctx)[1] is True
        assert cache.stats()["evictions"] == 1

    def test_invalidate(self, make_hook, make_context) -> None:
        cache = ResultCache()
        a = make_hook("a", cache_ttl_ms=1000)
        b = make_hook("b", cache_ttl_ms=1000)
        ctx = make_context()
        cache.put(a, ctx, HookResult.passed())
        cache.put(b, ctx, HookResult.passed())

        assert cache.invalidate("a") == 1
        assert cache.get(a, ctx)[1] is False
        assert cache.get(b, ctx)[1] is True
        assert cache.invalidate() == 1
        assert len(cache) == 0

    def test_stats(self, make_hook, make_context) -> None:
        cache = ResultCache()
        defn = make_hook("fmt", cache_ttl_ms=1000)
        ctx = make_context()
        cache.get(defn, ctx)
        cache.put(defn, ctx, HookResult.passed())
        cache.get(defn, ctx)

        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["size"] == 1

    def test_sweeper_thread_starts_and_stops(self) -> None:
        cache = ResultCache()
        cache.start_sweeper(0.01)
        assert cache._sweeper is not None
        cache.stop_sweeper()
        assert cache._sweeper is None
