"""
Unit tests for result aggregation.
"""

from __future__ import annotations

import pytest

from hookgov.aggregator import Report, Verdict, aggregate, verdict_for
from hookgov.governor import GovernanceAction, GovernanceEvent
from hookgov.types import HookResult


def _result(hook_id: str, result: HookResult) -> HookResult:
    result.hook_id = hook_id
    return result


class TestVerdict:
    @pytest.mark.parametrize(
        "results, expected",
        [
            ([HookResult.passed(), HookResult.block("no")], Verdict.BLOCKED),
            ([HookResult.warn("hm"), HookResult.block("no")], Verdict.BLOCKED),
            ([HookResult.passed(), HookResult.warn("hm")], Verdict.WARNING),
            ([HookResult.passed(), HookResult.fail("boom")], Verdict.WARNING),
            ([HookResult.passed(), HookResult.skip("n/a")], Verdict.SUCCESS),
            ([HookResult.skip("a"), HookResult.skip("b")], Verdict.SKIPPED),
            ([], Verdict.SKIPPED),
        ],
    )
    def test_precedence(self, results, expected) -> None:
        assert verdict_for(results) is expected


class TestAggregate:
    def test_orders_by_definition(self, make_hook) -> None:
        defs = [make_hook("a"), make_hook("b"), make_hook("c")]
        results = [
            _result("c", HookResult.passed()),
            _result("a", HookResult.warn("slow")),
            _result("b", HookResult.passed()),
        ]

        report = aggregate(results, defs, event_type="pre-commit", profile="standard")

        assert report.hook_ids == ["a", "b", "c"]
        assert report.verdict is Verdict.WARNING
        assert report.warning
        assert not report.blocked
        assert report.exit_code == 0

    def test_blocked_exit_code(self, make_hook) -> None:
        report = aggregate([_result("cov", HookResult.block("40% < 80%"))], [make_hook("cov")])
        assert report.blocked
        assert report.exit_code == 1

    def test_collects_governance_events(self, make_hook) -> None:
        event = GovernanceEvent("lint", GovernanceAction.AUTO_DISABLED, "3 consecutive failures")
        failed = _result("lint", HookResult.fail("boom"))
        failed.governance_event = event

        report = aggregate([failed, _result("cov", HookResult.passed())], [make_hook("cov")])

        assert report.governance_events == [event]
        assert report.hook_ids == ["cov", "lint"]

    def test_summary_and_to_dict(self, make_hook) -> None:
        cached = _result("fmt", HookResult.passed())
        cached.cached = True
        report = aggregate(
            [cached, _result("cov", HookResult.block("no")), _result("x", HookResult.skip("n/a"))],
            [make_hook("cov"), make_hook("fmt"), make_hook("x")],
            event_type="pre-commit",
            profile="advanced",
            budget_ms=10000,
            duration_ms=42,
            notes=["note"],
        )

        summary = report.summary()
        assert summary["blocked"] == 1
        assert summary["success"] == 1
        assert summary["skipped"] == 1
        assert summary["cached"] == 1
        assert summary["total"] == 3

        data = report.to_dict()
        assert data["verdict"] == "blocked"
        assert data["blocked"] is True
        assert data["budget_ms"] == 10000
        assert [r["hook_id"] for r in data["results"]] == ["cov", "fmt", "x"]
        assert data["notes"] == ["note"]

    def test_result_for(self) -> None:
        report = Report(verdict=Verdict.SUCCESS, results=[_result("a", HookResult.passed())])
        assert report.result_for("a") is not None
        assert report.result_for("b") is None
