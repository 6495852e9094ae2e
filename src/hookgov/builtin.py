"""
Reference hooks shipped with hookgov.

They are small on purpose: enough to exercise a fresh registry written
by `hookgov init`, and examples of both handler styles.
"""

from __future__ import annotations

import os

from hookgov.types import ExecutionContext, Hook, HookResult


class FileSizeGuard(Hook):
    """Block files larger than `max_bytes` (default 1 MB)."""

    def handle(self, ctx: ExecutionContext) -> HookResult:
        file_path = ctx.event.file_path
        if not file_path:
            return HookResult.skip("event has no file_path")
        if not os.path.isfile(file_path):
            return HookResult.skip(f"file not found: {file_path}")

        max_bytes = int(ctx.config.get("max_bytes", 1_000_000))
        size = os.path.getsize(file_path)
        details = {"file_path": file_path, "size_bytes": size, "max_bytes": max_bytes}
        if size > max_bytes:
            return HookResult.block(f"{file_path} is {size} bytes (limit {max_bytes})", details)
        return HookResult.passed(f"{file_path} is within size limit", details)


def required_payload_fields(ctx: ExecutionContext) -> HookResult:
    """Warn when the event payload lacks any of the configured `fields`."""
    fields = list(ctx.config.get("fields") or [])
    missing = [f for f in fields if f not in ctx.event.payload]
    if missing:
        message = f"missing payload fields: {', '.join(missing)}"
        return HookResult.warn(message, {"missing": missing})
    return HookResult.passed("all required payload fields present")


def marker_scan(ctx: ExecutionContext) -> HookResult:
    """Count marker comments (TODO, FIXME by default) in the changed file."""
    file_path = ctx.event.file_path
    if not file_path or not os.path.isfile(file_path):
        return HookResult.skip("no readable file to scan")

    markers = list(ctx.config.get("markers") or ["TODO", "FIXME"])
    counts = dict.fromkeys(markers, 0)
    with open(file_path, encoding="utf-8", errors="replace") as f:
        for line in f:
            if ctx.cancelled:
                return HookResult.skip("cancelled")
            for marker in markers:
                if marker in line:
                    counts[marker] += 1

    total = sum(counts.values())
    threshold = int(ctx.config.get("warn_above", 10))
    if total > threshold:
        return HookResult.warn(f"{total} markers in {file_path}", {"counts": counts})
    return HookResult.passed(f"{total} markers in {file_path}", {"counts": counts})
