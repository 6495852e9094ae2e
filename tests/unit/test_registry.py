"""
Unit tests for the hook registry.
"""

from __future__ import annotations

import pytest

from hookgov.errors import DuplicateIdError, RegistryFrozenError
from hookgov.registry import HookRegistry


class TestHookRegistry:
    """Tests for HookRegistry."""

    def test_register_and_lookup(self, make_hook) -> None:
        registry = HookRegistry()
        defn = make_hook("cov")
        registry.register(defn)

        assert registry.lookup("cov") is defn
        assert registry.lookup("missing") is None
        assert "cov" in registry
        assert len(registry) == 1

    def test_duplicate_id_rejected(self, make_hook) -> None:
        registry = HookRegistry([make_hook("cov")])
        with pytest.raises(DuplicateIdError) as exc_info:
            registry.register(make_hook("cov", category="valuable"))
        assert exc_info.value.hook_id == "cov"
        assert len(registry) == 1

    def test_frozen_registry_rejects_register(self, make_hook) -> None:
        registry = HookRegistry([make_hook("cov")])
        registry.freeze()

        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.register(make_hook("fmt"))
        assert registry.lookup("cov") is not None

    def test_by_trigger_keeps_registration_order(self, make_hook) -> None:
        registry = HookRegistry()
        registry.register_all(
            [
                make_hook("zeta", triggers=("pre-commit",)),
                make_hook("alpha", triggers=("pre-commit", "file-change")),
                make_hook("mid", triggers=("file-change",)),
                make_hook("beta", triggers=("pre-commit",)),
            ]
        )

        assert [d.id for d in registry.by_trigger("pre-commit")] == ["zeta", "alpha", "beta"]
        assert [d.id for d in registry.by_trigger("file-change")] == ["alpha", "mid"]
        assert registry.by_trigger("deploy") == []

    def test_by_trigger_returns_copy(self, make_hook) -> None:
        registry = HookRegistry([make_hook("cov")])
        registry.by_trigger("pre-commit").clear()
        assert len(registry.by_trigger("pre-commit")) == 1

    def test_iteration_and_position(self, make_hook) -> None:
        registry = HookRegistry([make_hook("b"), make_hook("a"), make_hook("c")])

        assert [d.id for d in registry] == ["b", "a", "c"]
        assert [d.id for d in registry.all()] == ["b", "a", "c"]
        assert registry.position("a") == 1
        assert registry.position("unknown") == 3

    def test_triggers(self, make_hook) -> None:
        registry = HookRegistry(
            [make_hook("a", triggers=("pre-commit",)), make_hook("b", triggers=("deploy",))]
        )
        assert registry.triggers == ["deploy", "pre-commit"]
