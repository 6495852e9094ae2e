"""
Dispatcher - Top-level entry point for lifecycle events.

Responsibilities:
- Resolve the active hooks and budget for an event
- Fan the hooks out concurrently, each with its own deadline
- Enforce the profile budget as a hard wall-clock ceiling
- Aggregate results into one Report and write telemetry
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import time
from collections.abc import Mapping, Sequence

import structlog

from hookgov.aggregator import Report, Verdict, aggregate
from hookgov.engine import ExecutionEngine, timeout_result
from hookgov.governor import PerformanceGovernor
from hookgov.profiles import ProfileManager, ProfileResolution
from hookgov.telemetry import TelemetryWriter
from hookgov.types import Event, ExecutionContext, HookCategory, HookDefinition, HookResult

logger = structlog.get_logger()

DEFAULT_CATEGORY_WEIGHTS = {
    HookCategory.CRITICAL.value: 3.0,
    HookCategory.VALUABLE.value: 2.0,
    HookCategory.ENHANCEMENT.value: 1.0,
}


def split_budget(
    hooks: Sequence[HookDefinition],
    budget_ms: int,
    mode: str = "equal",
    weights: Mapping[str, float] | None = None,
) -> dict[str, int]:
    """
    Share of the budget each hook may spend, in milliseconds.

    Modes:
        equal:    budget / number of hooks
        weighted: budget * category weight / sum of weights
        full:     every hook may use the whole budget

    A hook's own `timeout_ms` caps its share.
    """
    if not hooks:
        return {}

    if mode == "full":
        shares = {h.id: float(budget_ms) for h in hooks}
    elif mode == "weighted":
        weights = weights or DEFAULT_CATEGORY_WEIGHTS
        per_hook = {h.id: max(0.0, float(weights.get(h.category.value, 1.0))) for h in hooks}
        total = sum(per_hook.values())
        if total <= 0:
            shares = {h.id: budget_ms / len(hooks) for h in hooks}
        else:
            shares = {hook_id: budget_ms * w / total for hook_id, w in per_hook.items()}
    else:
        shares = {h.id: budget_ms / len(hooks) for h in hooks}

    result: dict[str, int] = {}
    for hook in hooks:
        share = int(shares[hook.id])
        if hook.timeout_ms is not None:
            share = min(share, hook.timeout_ms)
        result[hook.id] = max(0, share)
    return result


def _suppressed_result(defn: HookDefinition, governor_reason: str | None) -> HookResult:
    reason = governor_reason or "auto-disabled"
    result = HookResult.skip(f"disabled by governance: {reason}", details={"disabled": True})
    result.hook_id = defn.id
    return result


class Dispatcher:
    """
    Runs the hooks that apply to an event and returns one verdict.

    Every dispatch is independent; concurrent dispatches share only the
    engine's cache and governor, which synchronize per key.
    """

    def __init__(
        self,
        profiles: ProfileManager,
        engine: ExecutionEngine,
        *,
        enabled: bool = True,
        max_workers: int | None = None,
        budget_split: str = "equal",
        category_weights: Mapping[str, float] | None = None,
        telemetry: TelemetryWriter | None = None,
    ) -> None:
        self.profiles = profiles
        self.engine = engine
        self.enabled = enabled
        self.max_workers = max_workers
        self.budget_split = budget_split
        self.category_weights = dict(category_weights or DEFAULT_CATEGORY_WEIGHTS)
        self.telemetry = telemetry

    @property
    def governor(self) -> PerformanceGovernor:
        return self.engine.governor

    def dispatch(
        self,
        event: Event,
        profile_name: str | None = None,
        force_enabled: bool = False,
    ) -> Report:
        """
        Dispatch an event synchronously.

        1. Resolve hooks and budget
        2. Run them concurrently under per-hook deadlines
        3. Aggregate, listing governance-suppressed hooks as skipped
        """
        start = time.monotonic()

        if not self.enabled:
            report = Report(
                verdict=Verdict.SKIPPED,
                event_type=event.type,
                profile=profile_name or self.profiles.default_profile,
                notes=["hook governance disabled"],
            )
            logger.debug("dispatch_skipped", event_type=event.type, reason="disabled")
            return report

        resolution = self.profiles.resolve(profile_name, event, force_enabled=force_enabled)

        if resolution.empty:
            report = Report(
                verdict=Verdict.SKIPPED,
                event_type=event.type,
                profile=resolution.profile,
                budget_ms=resolution.budget_ms,
                notes=[*resolution.notes, "no hooks matched"],
            )
            logger.debug("dispatch_skipped", event_type=event.type, profile=resolution.profile)
            return report

        logger.info(
            "dispatch_started",
            event_type=event.type,
            profile=resolution.profile,
            budget_ms=resolution.budget_ms,
            hook_count=len(resolution.hooks),
            suppressed=len(resolution.suppressed),
        )

        results = self._run(event, resolution, start)
        results.extend(
            _suppressed_result(defn, self._disabled_reason(defn.id))
            for defn in resolution.suppressed
        )

        ordered_defs = sorted(
            [*resolution.hooks, *resolution.suppressed],
            key=lambda d: self.profiles.registry.position(d.id),
        )
        report = aggregate(
            results,
            ordered_defs,
            event_type=event.type,
            profile=resolution.profile,
            budget_ms=resolution.budget_ms,
            duration_ms=int((time.monotonic() - start) * 1000),
            notes=resolution.notes,
        )

        logger.info(
            "dispatch_completed",
            event_type=event.type,
            profile=report.profile,
            verdict=report.verdict.value,
            duration_ms=report.duration_ms,
            **report.summary(),
        )

        if self.telemetry is not None:
            self.telemetry.dispatch(report)
        return report

    async def dispatch_async(
        self,
        event: Event,
        profile_name: str | None = None,
        force_enabled: bool = False,
    ) -> Report:
        """Dispatch an event without blocking the running event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: self.dispatch(event, profile_name, force_enabled)
        )

    def _run(
        self, event: Event, resolution: ProfileResolution, start: float
    ) -> list[HookResult]:
        hooks = resolution.hooks
        if not hooks:
            return []

        ceiling = start + resolution.budget_ms / 1000.0
        shares = split_budget(
            hooks, resolution.budget_ms, self.budget_split, self.category_weights
        )

        contexts: dict[str, ExecutionContext] = {}
        for defn in hooks:
            deadline = min(start + shares[defn.id] / 1000.0, ceiling)
            contexts[defn.id] = ExecutionContext(
                hook_id=defn.id,
                event=event,
                config=defn.config or {},
                deadline=deadline,
                profile=resolution.profile,
            )

        workers = len(hooks) if not self.max_workers else min(self.max_workers, len(hooks))
        # Not used as a context manager: the ceiling must not wait on stragglers
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="hookgov-dispatch-"
        )
        try:
            futures = {
                executor.submit(self.engine.invoke, defn, contexts[defn.id]): defn
                for defn in hooks
            }
            done, _ = concurrent.futures.wait(
                futures, timeout=max(0.0, ceiling - time.monotonic())
            )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        results: list[HookResult] = []
        for future, defn in futures.items():
            if future in done:
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.exception("hook_invoke_failed", hook=defn.id, error=str(e))
                    failed = HookResult.fail(str(e) or type(e).__name__)
                    failed.hook_id = defn.id
                    results.append(failed)
                continue

            # Still outstanding at the ceiling. A running invocation is recorded by
            # the engine at its own deadline; a queued one never reached the engine
            # and is not charged to the hook.
            contexts[defn.id].cancel()
            not_started = future.cancel()
            elapsed = int((time.monotonic() - start) * 1000)
            logger.warning(
                "hook_outstanding_at_ceiling",
                hook=defn.id,
                elapsed_ms=elapsed,
                budget_ms=resolution.budget_ms,
                not_started=not_started,
            )
            result = timeout_result(defn, elapsed, shares[defn.id])
            if not_started:
                result.details["not_started"] = True
            results.append(result)

        return results

    def _disabled_reason(self, hook_id: str) -> str | None:
        record = self.governor.get(hook_id)
        return record.disabled_reason if record is not None else None
