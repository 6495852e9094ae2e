"""
Unit tests for hook type definitions.

Tests:
- HookResult invariants and constructors
- HookDefinition normalization, blocking rights, overrides
- ExecutionContext immutability and cancellation
- Event and HookConditions matching
"""

from __future__ import annotations

import dataclasses
import time

import pytest

from hookgov.types import (
    Event,
    ExecutionContext,
    Hook,
    HookCategory,
    HookConditions,
    HookDefinition,
    HookResult,
    HookStatus,
    Outcome,
    Thresholds,
)


class TestHookResult:
    """Tests for HookResult."""

    def test_skipped_requires_reason(self) -> None:
        with pytest.raises(ValueError):
            HookResult(HookStatus.SKIPPED)

    def test_skip_constructor_carries_reason(self) -> None:
        result = HookResult.skip("no file in event")
        assert result.status is HookStatus.SKIPPED
        assert result.message == "no file in event"

    def test_status_coerced_from_string(self) -> None:
        result = HookResult("warning", "careful")
        assert result.status is HookStatus.WARNING

    def test_invalid_status_rejected(self) -> None:
        with pytest.raises(ValueError):
            HookResult("maybe")

    def test_timed_out(self) -> None:
        assert HookResult.fail("timeout").timed_out
        assert not HookResult.fail("boom").timed_out
        assert not HookResult.passed().timed_out

    def test_to_dict(self) -> None:
        result = HookResult.block("coverage 40% < 80%", {"coverage": 40})
        result.hook_id = "cov"
        data = result.to_dict()
        assert data["status"] == "blocked"
        assert data["details"] == {"coverage": 40}
        assert data["hook_id"] == "cov"
        assert data["governance_event"] is None


class TestOutcome:
    def test_failures(self) -> None:
        assert Outcome.ERROR.is_failure
        assert Outcome.TIMEOUT.is_failure
        assert not Outcome.CACHED.is_failure
        assert not Outcome.BLOCKED.is_failure


class TestHookDefinition:
    """Tests for HookDefinition."""

    def test_normalizes_fields(self) -> None:
        defn = HookDefinition(
            id="fmt",
            owning_agent="coder",
            category="enhancement",
            trigger_events="pre-commit",
            cache_ttl_ms=-5,
            default_config={"line_length": 100},
        )
        assert defn.category is HookCategory.ENHANCEMENT
        assert defn.trigger_events == frozenset({"pre-commit"})
        assert defn.cache_ttl_ms == 0
        assert defn.config == {"line_length": 100}

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValueError):
            HookDefinition(id=" ", owning_agent="x", category="critical", trigger_events=["a"])

    def test_is_frozen(self) -> None:
        defn = HookDefinition(id="a", owning_agent="x", category="critical", trigger_events=["e"])
        with pytest.raises(dataclasses.FrozenInstanceError):
            defn.id = "b"  # type: ignore[misc]

    def test_config_is_read_only(self) -> None:
        defn = HookDefinition(
            id="a",
            owning_agent="x",
            category="critical",
            trigger_events=["e"],
            default_config={"k": 1},
        )
        with pytest.raises(TypeError):
            defn.config["k"] = 2  # type: ignore[index]

    @pytest.mark.parametrize(
        "category, config, expected",
        [
            ("critical", {}, True),
            ("valuable", {}, False),
            ("enhancement", {}, False),
            ("valuable", {"allow_block": True}, True),
        ],
    )
    def test_can_block(self, category: str, config: dict, expected: bool) -> None:
        defn = HookDefinition(
            id="h",
            owning_agent="x",
            category=category,
            trigger_events=["e"],
            default_config=config,
        )
        assert defn.can_block is expected

    def test_target_for_hook_subclass(self) -> None:
        class Always(Hook):
            def handle(self, ctx: ExecutionContext) -> HookResult:
                return HookResult.passed()

        hook = Always()
        defn = HookDefinition(
            id="h", owning_agent="x", category="critical", trigger_events=["e"], handler=hook
        )
        assert defn.target == hook.handle

    def test_is_async(self) -> None:
        async def check(ctx: ExecutionContext) -> HookResult:
            return HookResult.passed()

        defn = HookDefinition(
            id="h", owning_agent="x", category="critical", trigger_events=["e"], handler=check
        )
        assert defn.is_async

    def test_with_overrides_merges_config(self) -> None:
        defn = HookDefinition(
            id="cov",
            owning_agent="testing",
            category="critical",
            trigger_events=["pre-commit"],
            default_config={"minimum": 80, "paths": {"include": ["src"], "exclude": []}},
        )
        updated = defn.with_overrides(
            config={"paths": {"exclude": ["tests"]}},
            enabled=False,
            thresholds={"disable_threshold_ms": 4000},
        )

        assert updated.config == {
            "minimum": 80,
            "paths": {"include": ["src"], "exclude": ["tests"]},
        }
        assert updated.default_config == defn.default_config
        assert updated.enabled_by_default is False
        assert updated.thresholds == Thresholds(disable_threshold_ms=4000)
        # Original untouched
        assert defn.config == defn.default_config

    def test_applies_to(self) -> None:
        defn = HookDefinition(
            id="py-only",
            owning_agent="coder",
            category="valuable",
            trigger_events=["file-change"],
            conditions=HookConditions(file_pattern=r"\.py$"),
        )
        assert defn.applies_to(Event("file-change", {"file_path": "src/app.py"}))
        assert not defn.applies_to(Event("file-change", {"file_path": "README.md"}))
        assert not defn.applies_to(Event("pre-commit", {"file_path": "src/app.py"}))


class TestExecutionContext:
    """Tests for ExecutionContext."""

    def test_remaining(self) -> None:
        ctx = ExecutionContext(hook_id="h", event=Event("e"), config={}, deadline=10.0)
        assert ctx.remaining_seconds(now=9.5) == pytest.approx(0.5)
        assert ctx.remaining_ms(now=9.5) == 500
        assert ctx.remaining_seconds(now=11.0) == 0.0

    def test_expired(self) -> None:
        ctx = ExecutionContext(
            hook_id="h", event=Event("e"), config={}, deadline=time.monotonic() - 1
        )
        assert ctx.expired

    def test_config_is_read_only(self) -> None:
        ctx = ExecutionContext(hook_id="h", event=Event("e"), config={"a": 1}, deadline=0.0)
        with pytest.raises(TypeError):
            ctx.config["a"] = 2  # type: ignore[index]

    def test_cancel(self) -> None:
        ctx = ExecutionContext(hook_id="h", event=Event("e"), config={}, deadline=0.0)
        assert not ctx.cancelled
        ctx.cancel()
        assert ctx.cancelled


class TestEvent:
    def test_payload_is_read_only(self) -> None:
        event = Event("pre-commit", {"file_path": "a.py"})
        with pytest.raises(TypeError):
            event.payload["file_path"] = "b.py"  # type: ignore[index]
        assert event.file_path == "a.py"

    def test_round_trip(self) -> None:
        event = Event.from_dict({"type": "deploy", "payload": {"env": "prod"}})
        assert event.to_dict() == {"type": "deploy", "payload": {"env": "prod"}}


class TestHookConditions:
    def test_agent(self) -> None:
        cond = HookConditions(agents=("testing",))
        assert cond.matches(Event("e", {"agent": "testing"}))
        assert not cond.matches(Event("e", {"agent": "coder"}))
        assert not cond.matches(Event("e"))

    def test_sprint_phase(self) -> None:
        cond = HookConditions(sprint_phase="review")
        assert cond.matches(Event("e", {"sprint_phase": "review"}))
        assert not cond.matches(Event("e", {"sprint_phase": "planning"}))

    def test_empty_matches_everything(self) -> None:
        assert HookConditions().matches(Event("anything"))
