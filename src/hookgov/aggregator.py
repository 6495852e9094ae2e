"""
Result Aggregator - Merge per-hook results into one verdict.

Precedence: blocked > warning > success > skipped. Aggregation is pure;
cache writes and performance records already happened in the engine.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from hookgov.governor import GovernanceEvent
from hookgov.types import HookDefinition, HookResult, HookStatus


class Verdict(str, Enum):
    BLOCKED = "blocked"
    WARNING = "warning"
    SUCCESS = "success"
    SKIPPED = "skipped"


@dataclass
class Report:
    """Outcome of one dispatch."""

    verdict: Verdict
    results: list[HookResult] = field(default_factory=list)
    event_type: str = ""
    profile: str = ""
    budget_ms: int = 0
    duration_ms: int = 0
    governance_events: list[GovernanceEvent] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return self.verdict is Verdict.BLOCKED

    @property
    def warning(self) -> bool:
        return self.verdict is Verdict.WARNING

    @property
    def exit_code(self) -> int:
        return 1 if self.blocked else 0

    @property
    def hook_ids(self) -> list[str]:
        return [r.hook_id for r in self.results]

    def result_for(self, hook_id: str) -> HookResult | None:
        for result in self.results:
            if result.hook_id == hook_id:
                return result
        return None

    def summary(self) -> dict[str, int]:
        counts = {status.value: 0 for status in HookStatus}
        for result in self.results:
            counts[result.status.value] += 1
        counts["cached"] = sum(1 for r in self.results if r.cached)
        counts["total"] = len(self.results)
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "blocked": self.blocked,
            "warning": self.warning,
            "event_type": self.event_type,
            "profile": self.profile,
            "budget_ms": self.budget_ms,
            "duration_ms": self.duration_ms,
            "summary": self.summary(),
            "results": [r.to_dict() for r in self.results],
            "governance_events": [e.to_dict() for e in self.governance_events],
            "notes": list(self.notes),
        }


def verdict_for(results: Iterable[HookResult]) -> Verdict:
    statuses = [r.status for r in results]
    if HookStatus.BLOCKED in statuses:
        return Verdict.BLOCKED
    if HookStatus.WARNING in statuses or HookStatus.ERROR in statuses:
        return Verdict.WARNING
    if HookStatus.SUCCESS in statuses:
        return Verdict.SUCCESS
    return Verdict.SKIPPED


def aggregate(
    results: Sequence[HookResult],
    defs: Sequence[HookDefinition],
    *,
    event_type: str = "",
    profile: str = "",
    budget_ms: int = 0,
    duration_ms: int = 0,
    notes: Sequence[str] = (),
) -> Report:
    """
    Build a report from per-hook results.

    Results are ordered by the position of their hook in `defs`, which the
    dispatcher passes in registration order. Results for hooks not in
    `defs` keep their relative order after the known ones.
    """
    position = {d.id: i for i, d in enumerate(defs)}
    ordered = sorted(
        enumerate(results),
        key=lambda pair: (position.get(pair[1].hook_id, len(position)), pair[0]),
    )
    ordered_results = [r for _, r in ordered]

    return Report(
        verdict=verdict_for(ordered_results),
        results=ordered_results,
        event_type=event_type,
        profile=profile,
        budget_ms=budget_ms,
        duration_ms=duration_ms,
        governance_events=[
            r.governance_event for r in ordered_results if r.governance_event is not None
        ],
        notes=list(notes),
    )
