"""
Execution Engine - Invoke one hook under a deadline.

This is the isolation boundary: whatever a handler does with time or
exceptions, `invoke` returns a `HookResult` and never raises. Handlers
run on a worker pool, or on a dedicated thread while every worker is
held by a handler that never returned; the caller waits at most until
`ctx.deadline`.
A handler that overruns is reported as `error` / "timeout", its context
is cancelled, and whatever it eventually returns is discarded.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import threading
import time
from dataclasses import replace

import structlog

from hookgov.cache import ResultCache
from hookgov.errors import HandlerError, HookTimeoutError
from hookgov.governor import PerformanceGovernor
from hookgov.types import ExecutionContext, HookDefinition, HookResult, HookStatus, Outcome

logger = structlog.get_logger()

TIMEOUT_MESSAGE = "timeout"


def timeout_result(
    defn: HookDefinition, elapsed_ms: int, budget_ms: int | None = None
) -> HookResult:
    """The result reported for a hook that missed its deadline."""
    error = HookTimeoutError(defn.id, elapsed_ms)
    result = HookResult.fail(
        TIMEOUT_MESSAGE,
        details={"error": str(error), "elapsed_ms": elapsed_ms, "deadline_ms": budget_ms},
    )
    result.hook_id = defn.id
    result.duration_ms = elapsed_ms
    return result


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ExecutionEngine:
    """Runs single hook invocations with caching, deadlines, and governance."""

    def __init__(
        self,
        cache: ResultCache,
        governor: PerformanceGovernor,
        handler_workers: int = 32,
    ) -> None:
        """
        Initialize the engine.

        Args:
            cache: Result cache consulted before and updated after each run
            governor: Receives timing and outcome for every invocation
            handler_workers: Size of the pool handlers run on
        """
        self.cache = cache
        self.governor = governor
        self.handler_workers = max(1, handler_workers)
        # Not used as a context manager: shutdown must never join a hung handler
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.handler_workers, thread_name_prefix="hookgov-handler-"
        )
        self._slots_lock = threading.Lock()
        self._pool_in_use = 0
        self._closed = False

    def invoke(self, defn: HookDefinition, ctx: ExecutionContext) -> HookResult:
        """
        Run one hook.

        Args:
            defn: Hook to run
            ctx: Per-invocation context carrying the deadline

        Returns:
            The hook's result with `hook_id` and `duration_ms` filled in
        """
        start = time.monotonic()

        cached, hit = self.cache.get(defn, ctx)
        if hit and cached is not None:
            cached.hook_id = defn.id
            self.governor.record(defn.id, 0, Outcome.CACHED, defn.thresholds)
            logger.debug("hook_cache_hit", hook=defn.id, status=cached.status.value)
            return cached

        budget_ms = ctx.remaining_ms(start)
        try:
            future = self._start(defn, ctx)
        except RuntimeError as e:
            # Pool already shut down
            result = HookResult.fail(f"engine unavailable: {e}")
            return self._finish(defn, ctx, result, Outcome.ERROR, _elapsed_ms(start))

        try:
            raw = future.result(timeout=ctx.remaining_seconds())
        except concurrent.futures.TimeoutError:
            ctx.cancel()
            elapsed = _elapsed_ms(start)
            if future.cancel():
                # Never started, so the hook itself is not charged for it
                logger.warning("hook_not_started", hook=defn.id, elapsed_ms=elapsed)
                result = HookResult.fail(
                    "engine capacity exhausted", details={"not_started": True}
                )
                result.hook_id = defn.id
                result.duration_ms = elapsed
                return result
            logger.warning("hook_timeout", hook=defn.id, elapsed_ms=elapsed, deadline_ms=budget_ms)
            result = timeout_result(defn, elapsed, budget_ms)
            return self._finish(defn, ctx, result, Outcome.TIMEOUT, elapsed)
        except concurrent.futures.CancelledError:
            result = HookResult.fail("cancelled")
            return self._finish(defn, ctx, result, Outcome.ERROR, _elapsed_ms(start))

        elapsed = _elapsed_ms(start)
        result = self._check_contract(defn, raw)
        outcome = Outcome(result.status.value)

        if outcome is not Outcome.ERROR and self.cache.put(defn, ctx, result):
            logger.debug("hook_result_cached", hook=defn.id, ttl_ms=defn.cache_ttl_ms)

        return self._finish(defn, ctx, result, outcome, elapsed)

    def _start(
        self, defn: HookDefinition, ctx: ExecutionContext
    ) -> concurrent.futures.Future:
        """
        Start a handler on a pool worker, or on its own thread when every
        worker is held by a handler that has not returned yet.
        """
        with self._slots_lock:
            if self._closed:
                raise RuntimeError("cannot schedule new futures after shutdown")
            use_pool = self._pool_in_use < self.handler_workers
            if use_pool:
                self._pool_in_use += 1

        if use_pool:
            try:
                future = self._executor.submit(self._call, defn, ctx)
            except RuntimeError:
                self._release_slot()
                raise
            future.add_done_callback(lambda _f: self._release_slot())
            return future

        logger.warning("handler_pool_saturated", hook=defn.id, workers=self.handler_workers)
        future = concurrent.futures.Future()

        def run() -> None:
            if future.set_running_or_notify_cancel():
                future.set_result(self._call(defn, ctx))

        threading.Thread(target=run, name=f"hookgov-overflow-{defn.id}", daemon=True).start()
        return future

    def _release_slot(self) -> None:
        with self._slots_lock:
            self._pool_in_use -= 1

    def _call(self, defn: HookDefinition, ctx: ExecutionContext) -> HookResult | object:
        """
        Worker-side call. Exceptions become error results here, including
        `SystemExit` and `KeyboardInterrupt` raised by the handler.
        """
        try:
            target = defn.target
            if target is None:
                raise HandlerError(f"Hook {defn.id} has no handler")

            if defn.is_async:
                return asyncio.run(target(ctx))  # type: ignore[arg-type]

            raw = target(ctx)
            if inspect.iscoroutine(raw):
                raw = asyncio.run(raw)
            return raw
        except BaseException as e:
            logger.exception("hook_error", hook=defn.id, error=str(e))
            return HookResult.fail(
                str(e) or type(e).__name__,
                details={"exception": type(e).__name__},
            )

    def _check_contract(self, defn: HookDefinition, raw: object) -> HookResult:
        if not isinstance(raw, HookResult):
            logger.warning("hook_contract_violation", hook=defn.id, returned=type(raw).__name__)
            return HookResult.fail(
                f"handler returned {type(raw).__name__}, expected HookResult",
                details={"contract_violation": True},
            )

        # Handlers may hand back shared instances; never mutate them.
        result = replace(raw, details=dict(raw.details), annotations=list(raw.annotations))
        result.cached = False
        result.governance_event = None

        if result.status is HookStatus.BLOCKED and not defn.can_block:
            result.status = HookStatus.WARNING
            result.annotations.append(
                f"blocked downgraded to warning: {defn.category.value} hook may not block"
            )
            logger.warning("hook_block_downgraded", hook=defn.id, category=defn.category.value)
        return result

    def _finish(
        self,
        defn: HookDefinition,
        ctx: ExecutionContext,
        result: HookResult,
        outcome: Outcome,
        elapsed_ms: int,
    ) -> HookResult:
        result.hook_id = defn.id
        result.duration_ms = elapsed_ms

        decision = self.governor.record(defn.id, elapsed_ms, outcome, defn.thresholds)
        result.annotations.extend(decision.warnings)
        result.governance_event = decision.event

        logger.debug(
            "hook_completed",
            hook=defn.id,
            status=result.status.value,
            outcome=outcome.value,
            duration_ms=elapsed_ms,
            profile=ctx.profile,
        )
        return result

    def shutdown(self) -> None:
        """Stop accepting work. Running handlers are left to finish on their own."""
        with self._slots_lock:
            self._closed = True
        self._executor.shutdown(wait=False, cancel_futures=True)
