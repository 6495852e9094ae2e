"""
Performance Governor - Rolling timing and failure tracking per hook.

Acts as a circuit breaker: a hook that runs slower than the disable
threshold, or fails too many times in a row, is switched to `disabled`
and stays there until someone calls `reenable`. There is no automatic
recovery.

Transitions:
    enabled  --slow or failure streak-->  disabled
    disabled --reenable-->                enabled
    enabled  --disable (manual)-->        disabled
"""

from __future__ import annotations

import json
import os
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from hookgov.errors import GovernanceTransitionError
from hookgov.types import Outcome, Thresholds

logger = structlog.get_logger()

DEFAULT_ROLLING_WINDOW = 20


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def performance_rating(duration_ms: float) -> str:
    """Coarse label for a duration."""
    if duration_ms < 100:
        return "excellent"
    if duration_ms < 500:
        return "good"
    if duration_ms < 1000:
        return "fair"
    if duration_ms < 5000:
        return "poor"
    return "critical"


class HookState(str, Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"


class GovernanceAction(str, Enum):
    AUTO_DISABLED = "auto_disabled"
    DISABLED = "disabled"
    REENABLED = "reenabled"


@dataclass(frozen=True)
class GovernanceEvent:
    """A state transition, delivered to subscribers and written to telemetry."""

    hook_id: str
    action: GovernanceAction
    reason: str
    timestamp: str = field(default_factory=_utc_now)
    duration_ms: int | None = None
    consecutive_failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hook_id": self.hook_id,
            "action": self.action.value,
            "reason": self.reason,
            "timestamp": self.timestamp,
            "duration_ms": self.duration_ms,
            "consecutive_failures": self.consecutive_failures,
        }


@dataclass
class GovernanceDecision:
    """What `record` concluded for one invocation."""

    state: HookState
    warnings: list[str] = field(default_factory=list)
    event: GovernanceEvent | None = None

    @property
    def disabled(self) -> bool:
        return self.state is HookState.DISABLED


@dataclass
class PerformanceRecord:
    """Timing history and breaker state for one hook."""

    hook_id: str
    capacity: int = DEFAULT_ROLLING_WINDOW
    rolling_durations_ms: deque[int] = field(default_factory=deque)
    consecutive_failures: int = 0
    state: HookState = HookState.ENABLED
    disabled_at: str | None = None
    disabled_reason: str | None = None

    # Lifetime counters
    executions: int = 0
    failures: int = 0
    timeouts: int = 0
    cache_hits: int = 0
    total_duration_ms: int = 0
    min_duration_ms: int | None = None
    max_duration_ms: int = 0
    last_outcome: str | None = None
    last_executed_at: str | None = None

    def __post_init__(self) -> None:
        self.rolling_durations_ms = deque(self.rolling_durations_ms, maxlen=self.capacity)

    @property
    def avg_duration_ms(self) -> float:
        if not self.rolling_durations_ms:
            return 0.0
        return sum(self.rolling_durations_ms) / len(self.rolling_durations_ms)

    @property
    def p95_duration_ms(self) -> int:
        if not self.rolling_durations_ms:
            return 0
        ordered = sorted(self.rolling_durations_ms)
        index = max(0, int(round(0.95 * len(ordered))) - 1)
        return ordered[index]

    @property
    def failure_rate(self) -> float:
        return self.failures / self.executions if self.executions else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hook_id": self.hook_id,
            "state": self.state.value,
            "rolling_durations_ms": list(self.rolling_durations_ms),
            "consecutive_failures": self.consecutive_failures,
            "disabled_at": self.disabled_at,
            "disabled_reason": self.disabled_reason,
            "executions": self.executions,
            "failures": self.failures,
            "timeouts": self.timeouts,
            "cache_hits": self.cache_hits,
            "total_duration_ms": self.total_duration_ms,
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "avg_duration_ms": round(self.avg_duration_ms, 2),
            "p95_duration_ms": self.p95_duration_ms,
            "failure_rate": round(self.failure_rate, 4),
            "last_outcome": self.last_outcome,
            "last_executed_at": self.last_executed_at,
        }

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], capacity: int = DEFAULT_ROLLING_WINDOW
    ) -> PerformanceRecord:
        return cls(
            hook_id=str(data["hook_id"]),
            capacity=capacity,
            rolling_durations_ms=deque(int(d) for d in data.get("rolling_durations_ms") or []),
            consecutive_failures=int(data.get("consecutive_failures", 0)),
            state=HookState(data.get("state", HookState.ENABLED.value)),
            disabled_at=data.get("disabled_at"),
            disabled_reason=data.get("disabled_reason"),
            executions=int(data.get("executions", 0)),
            failures=int(data.get("failures", 0)),
            timeouts=int(data.get("timeouts", 0)),
            cache_hits=int(data.get("cache_hits", 0)),
            total_duration_ms=int(data.get("total_duration_ms", 0)),
            min_duration_ms=data.get("min_duration_ms"),
            max_duration_ms=int(data.get("max_duration_ms", 0)),
            last_outcome=data.get("last_outcome"),
            last_executed_at=data.get("last_executed_at"),
        )


GovernanceListener = Callable[[GovernanceEvent], None]


class PerformanceGovernor:
    """
    Tracks per-hook performance and owns the enable/disable state.

    Mutations take a per-hook lock; `is_enabled` reads without locking.
    State is persisted as JSON when `state_path` is set: after every
    transition and every `persist_every` records.
    """

    def __init__(
        self,
        thresholds: Thresholds | None = None,
        rolling_window: int = DEFAULT_ROLLING_WINDOW,
        state_path: Path | None = None,
        persist_every: int = 10,
        is_known: Callable[[str], bool] | None = None,
    ) -> None:
        self.thresholds = thresholds or Thresholds()
        self.rolling_window = max(1, rolling_window)
        self.state_path = Path(state_path) if state_path else None
        self.persist_every = max(1, persist_every)
        self._is_known = is_known

        self._records: dict[str, PerformanceRecord] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._index_lock = threading.Lock()
        self._save_lock = threading.Lock()
        self._listeners: list[GovernanceListener] = []
        self._unsaved = 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_for(self, hook_id: str) -> threading.Lock:
        with self._index_lock:
            lock = self._locks.get(hook_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[hook_id] = lock
            return lock

    def _record_for(self, hook_id: str) -> PerformanceRecord:
        record = self._records.get(hook_id)
        if record is None:
            record = PerformanceRecord(hook_id=hook_id, capacity=self.rolling_window)
            with self._index_lock:
                self._records[hook_id] = record
        return record

    def _known(self, hook_id: str) -> bool:
        if self._is_known is not None:
            return self._is_known(hook_id)
        return hook_id in self._records

    def _emit(self, event: GovernanceEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("governance_listener_failed", hook=event.hook_id)

    def _after_mutation(self, event: GovernanceEvent | None) -> None:
        if event is not None:
            self._emit(event)
            self.save()
            return

        with self._index_lock:
            self._unsaved += 1
            due = self._unsaved >= self.persist_every
        if due:
            self.save()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(
        self,
        hook_id: str,
        duration_ms: int,
        outcome: Outcome | str,
        thresholds: Thresholds | None = None,
    ) -> GovernanceDecision:
        """
        Record one invocation and apply the breaker rules.

        Cached outcomes only count as cache hits. Errors and timeouts
        extend the failure streak; anything else resets it.
        """
        outcome = Outcome(outcome)
        limits = thresholds or self.thresholds
        duration_ms = max(0, int(duration_ms))
        warnings: list[str] = []
        event: GovernanceEvent | None = None

        with self._lock_for(hook_id):
            record = self._record_for(hook_id)
            record.last_outcome = outcome.value
            record.last_executed_at = _utc_now()

            if outcome is Outcome.CACHED:
                record.cache_hits += 1
                return GovernanceDecision(state=record.state)

            record.rolling_durations_ms.append(duration_ms)
            record.executions += 1
            record.total_duration_ms += duration_ms
            record.max_duration_ms = max(record.max_duration_ms, duration_ms)
            if record.min_duration_ms is None or duration_ms < record.min_duration_ms:
                record.min_duration_ms = duration_ms

            if outcome.is_failure:
                record.failures += 1
                record.consecutive_failures += 1
                if outcome is Outcome.TIMEOUT:
                    record.timeouts += 1
            else:
                record.consecutive_failures = 0

            reason: str | None = None
            if duration_ms > limits.disable_threshold_ms:
                reason = (
                    f"duration {duration_ms}ms exceeded disable threshold "
                    f"{limits.disable_threshold_ms}ms"
                )
            elif record.consecutive_failures >= limits.max_consecutive_failures:
                reason = f"{record.consecutive_failures} consecutive failures"
            elif duration_ms > limits.warn_threshold_ms:
                warnings.append(
                    f"slow: {duration_ms}ms exceeded warn threshold {limits.warn_threshold_ms}ms"
                )

            if reason is not None and record.state is HookState.ENABLED:
                record.state = HookState.DISABLED
                record.disabled_at = _utc_now()
                record.disabled_reason = reason
                event = GovernanceEvent(
                    hook_id=hook_id,
                    action=GovernanceAction.AUTO_DISABLED,
                    reason=reason,
                    timestamp=record.disabled_at,
                    duration_ms=duration_ms,
                    consecutive_failures=record.consecutive_failures,
                )
                warnings.append(f"auto-disabled: {reason}")

            state = record.state

        if event is not None:
            logger.warning(
                "hook_auto_disabled",
                hook=hook_id,
                reason=event.reason,
                duration_ms=duration_ms,
                consecutive_failures=event.consecutive_failures,
            )
        elif warnings:
            logger.info("hook_slow", hook=hook_id, duration_ms=duration_ms)

        self._after_mutation(event)
        return GovernanceDecision(state=state, warnings=warnings, event=event)

    # ------------------------------------------------------------------
    # Manual transitions
    # ------------------------------------------------------------------

    def reenable(self, hook_id: str) -> GovernanceEvent:
        """
        Return a hook to `enabled` and clear its failure streak.

        Raises:
            GovernanceTransitionError: the hook is unknown
        """
        if not self._known(hook_id):
            raise GovernanceTransitionError(hook_id, "reenable")

        with self._lock_for(hook_id):
            record = self._record_for(hook_id)
            previous = record.disabled_reason
            record.state = HookState.ENABLED
            record.consecutive_failures = 0
            record.disabled_at = None
            record.disabled_reason = None

        event = GovernanceEvent(
            hook_id=hook_id,
            action=GovernanceAction.REENABLED,
            reason=f"manually re-enabled (was: {previous})" if previous else "manually re-enabled",
        )
        logger.info("hook_reenabled", hook=hook_id, previous_reason=previous)
        self._after_mutation(event)
        return event

    def disable(self, hook_id: str, reason: str = "manually disabled") -> GovernanceEvent:
        """
        Disable a hook until it is re-enabled.

        Raises:
            GovernanceTransitionError: the hook is unknown
        """
        if not self._known(hook_id):
            raise GovernanceTransitionError(hook_id, "disable")

        with self._lock_for(hook_id):
            record = self._record_for(hook_id)
            record.state = HookState.DISABLED
            record.disabled_at = _utc_now()
            record.disabled_reason = reason
            timestamp = record.disabled_at

        event = GovernanceEvent(
            hook_id=hook_id,
            action=GovernanceAction.DISABLED,
            reason=reason,
            timestamp=timestamp,
        )
        logger.info("hook_disabled", hook=hook_id, reason=reason)
        self._after_mutation(event)
        return event

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def is_enabled(self, hook_id: str) -> bool:
        record = self._records.get(hook_id)
        return record is None or record.state is HookState.ENABLED

    def state_of(self, hook_id: str) -> HookState:
        record = self._records.get(hook_id)
        return record.state if record is not None else HookState.ENABLED

    def get(self, hook_id: str) -> PerformanceRecord | None:
        return self._records.get(hook_id)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Point-in-time copy of every record, as plain dicts."""
        with self._index_lock:
            records = sorted(self._records.items())

        result: dict[str, dict[str, Any]] = {}
        for hook_id, record in records:
            with self._lock_for(hook_id):
                result[hook_id] = record.to_dict()
        return result

    def subscribe(self, listener: GovernanceListener) -> Callable[[], None]:
        """Register a transition listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def reset(self, hook_id: str | None = None) -> None:
        """Forget history for one hook, or for all of them."""
        with self._index_lock:
            if hook_id is None:
                self._records.clear()
            else:
                self._records.pop(hook_id, None)
        logger.info("performance_reset", hook=hook_id)
        self.save()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Write state to `state_path` atomically."""
        if self.state_path is None:
            return

        data = {
            "version": 1,
            "saved_at": _utc_now(),
            "hooks": self.snapshot(),
        }

        with self._save_lock:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.state_path.with_suffix(self.state_path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.state_path)
            with self._index_lock:
                self._unsaved = 0

    def load(self) -> int:
        """Load state from `state_path`. Returns number of records loaded."""
        if self.state_path is None or not self.state_path.exists():
            return 0

        try:
            with open(self.state_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("performance_state_unreadable", path=str(self.state_path), error=str(e))
            return 0

        loaded = 0
        for hook_id, raw in (data.get("hooks") or {}).items():
            try:
                record = PerformanceRecord.from_dict(
                    {**raw, "hook_id": hook_id}, capacity=self.rolling_window
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("performance_record_invalid", hook=hook_id, error=str(e))
                continue
            with self._index_lock:
                self._records[hook_id] = record
            loaded += 1

        logger.debug("performance_state_loaded", path=str(self.state_path), hooks=loaded)
        return loaded

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def performance_report(self, top: int = 5) -> dict[str, Any]:
        """Summary, rankings and recommendations across all tracked hooks."""
        records = self.snapshot()
        executed = {k: v for k, v in records.items() if v["executions"] > 0}

        total_executions = sum(r["executions"] for r in records.values())
        total_time = sum(r["total_duration_ms"] for r in records.values())

        by_avg = sorted(executed.items(), key=lambda kv: kv[1]["avg_duration_ms"], reverse=True)
        report: dict[str, Any] = {
            "generated": _utc_now(),
            "summary": {
                "hooks": len(records),
                "total_executions": total_executions,
                "total_time_ms": total_time,
                "avg_time_ms": round(total_time / total_executions, 2) if total_executions else 0,
                "cache_hits": sum(r["cache_hits"] for r in records.values()),
                "disabled": sum(1 for r in records.values() if r["state"] == "disabled"),
            },
            "top_slowest": [
                {
                    "hook_id": k,
                    "avg_ms": v["avg_duration_ms"],
                    "max_ms": v["max_duration_ms"],
                    "rating": performance_rating(v["avg_duration_ms"]),
                }
                for k, v in by_avg[:top]
            ],
            "top_fastest": [
                {"hook_id": k, "avg_ms": v["avg_duration_ms"], "min_ms": v["min_duration_ms"]}
                for k, v in list(reversed(by_avg))[:top]
            ],
            "most_executed": [
                {"hook_id": k, "executions": v["executions"], "total_ms": v["total_duration_ms"]}
                for k, v in sorted(
                    executed.items(), key=lambda kv: kv[1]["executions"], reverse=True
                )[:top]
            ],
            "failure_rates": {
                k: {
                    "rate": v["failure_rate"],
                    "failures": v["failures"],
                    "total": v["executions"],
                }
                for k, v in records.items()
                if v["failures"] > 0
            },
            "disabled": {
                k: {"at": v["disabled_at"], "reason": v["disabled_reason"]}
                for k, v in records.items()
                if v["state"] == "disabled"
            },
            "recommendations": [],
        }

        recommendations: list[str] = report["recommendations"]
        for entry in report["top_slowest"]:
            if entry["avg_ms"] > 5000:
                recommendations.append(
                    f"CRITICAL: hook '{entry['hook_id']}' averages {entry['avg_ms']}ms; "
                    "consider disabling or optimizing it"
                )
            elif entry["avg_ms"] > self.thresholds.warn_threshold_ms:
                recommendations.append(
                    f"WARNING: hook '{entry['hook_id']}' averages {entry['avg_ms']}ms; "
                    "monitor for degradation"
                )
        for hook_id, data in report["failure_rates"].items():
            if data["rate"] > 0.2:
                recommendations.append(
                    f"hook '{hook_id}' fails {data['rate']:.0%} of runs; investigate root cause"
                )
        for hook_id, data in report["disabled"].items():
            recommendations.append(
                f"hook '{hook_id}' is disabled ({data['reason']}); "
                f"run `hookgov reenable {hook_id}` once fixed"
            )

        return report
