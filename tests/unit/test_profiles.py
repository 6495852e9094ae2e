"""
Unit tests for profile resolution.

Tests:
- Built-in profile category selection
- Custom allow-list, include/exclude
- Unknown profile fallback
- Conditions and governor suppression
"""

from __future__ import annotations

from hookgov.config import ProfileConfig
from hookgov.governor import PerformanceGovernor
from hookgov.profiles import Profile, ProfileManager
from hookgov.registry import HookRegistry
from hookgov.types import Event, HookCategory, HookConditions, Outcome


def _setup(make_hook, profiles=None):
    registry = HookRegistry(
        [
            make_hook("coverage", category="critical"),
            make_hook("lint", category="valuable"),
            make_hook("fmt", category="enhancement"),
            make_hook("deploy-check", category="critical", triggers=("deploy",)),
        ]
    )
    registry.freeze()
    governor = PerformanceGovernor(is_known=registry.__contains__)
    return ProfileManager(registry, governor, profiles), governor


class TestBuiltinProfiles:
    def test_minimal(self, make_hook) -> None:
        manager, _ = _setup(make_hook)
        resolution = manager.resolve("minimal", Event("pre-commit"))
        assert [h.id for h in resolution.hooks] == ["coverage"]
        assert resolution.budget_ms == 2000

    def test_standard_is_default(self, make_hook) -> None:
        manager, _ = _setup(make_hook)
        resolution = manager.resolve(None, Event("pre-commit"))
        assert resolution.profile == "standard"
        assert [h.id for h in resolution.hooks] == ["coverage", "lint"]
        assert resolution.budget_ms == 5000

    def test_advanced(self, make_hook) -> None:
        manager, _ = _setup(make_hook)
        resolution = manager.resolve("advanced", Event("pre-commit"))
        assert [h.id for h in resolution.hooks] == ["coverage", "lint", "fmt"]
        assert resolution.budget_ms == 10000

    def test_custom_defaults_to_empty_allow_list(self, make_hook) -> None:
        manager, _ = _setup(make_hook)
        resolution = manager.resolve("custom", Event("pre-commit"))
        assert resolution.empty

    def test_trigger_filter(self, make_hook) -> None:
        manager, _ = _setup(make_hook)
        resolution = manager.resolve("advanced", Event("deploy"))
        assert [h.id for h in resolution.hooks] == ["deploy-check"]
        assert manager.resolve("advanced", Event("unknown-event")).empty

    def test_names(self, make_hook) -> None:
        manager, _ = _setup(make_hook)
        assert set(manager.names) == {"minimal", "standard", "advanced", "custom"}
        assert manager.get("minimal").budget_ms == 2000
        assert manager.get("nope") is None


class TestCustomProfiles:
    def test_allow_list(self, make_hook) -> None:
        profiles = {
            "custom": ProfileConfig(name="custom", budget_ms=3000, allow_list=["fmt", "lint"])
        }
        manager, _ = _setup(make_hook, profiles)
        resolution = manager.resolve("custom", Event("pre-commit"))
        # Registration order, not allow-list order
        assert [h.id for h in resolution.hooks] == ["lint", "fmt"]
        assert resolution.budget_ms == 3000

    def test_include_and_exclude(self, make_hook) -> None:
        profiles = [
            Profile(
                name="team",
                budget_ms=4000,
                categories=frozenset({HookCategory.CRITICAL, HookCategory.VALUABLE}),
                include=frozenset({"fmt"}),
                exclude=frozenset({"lint"}),
            )
        ]
        manager, _ = _setup(make_hook, profiles)
        resolution = manager.resolve("team", Event("pre-commit"))
        assert [h.id for h in resolution.hooks] == ["coverage", "fmt"]

    def test_disabled_by_default_needs_include(self, make_hook) -> None:
        registry = HookRegistry(
            [make_hook("opt-in", category="critical", enabled_by_default=False)]
        )
        manager = ProfileManager(registry, PerformanceGovernor())
        assert manager.resolve("advanced", Event("pre-commit")).empty

    def test_unknown_profile_falls_back(self, make_hook) -> None:
        manager, _ = _setup(make_hook)
        resolution = manager.resolve("paranoid", Event("pre-commit"))
        assert resolution.profile == "standard"
        assert [h.id for h in resolution.hooks] == ["coverage", "lint"]
        assert resolution.notes == ["unknown profile 'paranoid', using 'standard'"]

    def test_unknown_profile_ignores_configured_default(self, make_hook) -> None:
        registry = HookRegistry(
            [make_hook("coverage"), make_hook("lint", category="valuable")]
        )
        manager = ProfileManager(registry, PerformanceGovernor(), default_profile="minimal")

        assert [h.id for h in manager.resolve(None, Event("pre-commit")).hooks] == ["coverage"]

        resolution = manager.resolve("typo", Event("pre-commit"))
        assert resolution.profile == "standard"
        assert [h.id for h in resolution.hooks] == ["coverage", "lint"]

    def test_unknown_default_profile(self, make_hook) -> None:
        registry = HookRegistry([make_hook("coverage")])
        manager = ProfileManager(registry, PerformanceGovernor(), default_profile="nope")
        assert manager.default_profile == "standard"


class TestResolutionFilters:
    def test_conditions(self, make_hook) -> None:
        registry = HookRegistry(
            [
                make_hook(
                    "py-lint",
                    category="valuable",
                    triggers=("file-change",),
                    conditions=HookConditions(file_pattern=r"\.py$"),
                ),
                make_hook("any", category="valuable", triggers=("file-change",)),
            ]
        )
        manager = ProfileManager(registry, PerformanceGovernor())

        resolution = manager.resolve("standard", Event("file-change", {"file_path": "README.md"}))
        assert [h.id for h in resolution.hooks] == ["any"]

        resolution = manager.resolve("standard", Event("file-change", {"file_path": "a.py"}))
        assert [h.id for h in resolution.hooks] == ["py-lint", "any"]

    def test_disabled_hooks_suppressed(self, make_hook) -> None:
        manager, governor = _setup(make_hook)
        governor.record("lint", 5000, Outcome.SUCCESS)

        resolution = manager.resolve("standard", Event("pre-commit"))

        assert [h.id for h in resolution.hooks] == ["coverage"]
        assert [h.id for h in resolution.suppressed] == ["lint"]
        assert not resolution.empty

    def test_force_enabled_includes_disabled(self, make_hook) -> None:
        manager, governor = _setup(make_hook)
        governor.disable("lint")

        resolution = manager.resolve("standard", Event("pre-commit"), force_enabled=True)

        assert [h.id for h in resolution.hooks] == ["coverage", "lint"]
        assert resolution.suppressed == []
