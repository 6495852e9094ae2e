"""
Hook Framework - Wires registry, cache, governor, profiles, engine and
dispatcher from one GovernanceConfig.

Usage:
    from hookgov import HookFramework, GovernanceConfig

    with HookFramework(GovernanceConfig.load()) as framework:
        report = framework.dispatch("pre-commit", {"file_path": "src/app.py"})
        sys.exit(report.exit_code)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from hookgov.aggregator import Report
from hookgov.cache import Clock, ResultCache
from hookgov.config import GovernanceConfig
from hookgov.dispatcher import Dispatcher
from hookgov.engine import ExecutionEngine
from hookgov.governor import GovernanceEvent, PerformanceGovernor
from hookgov.loader import load_registry
from hookgov.profiles import ProfileManager
from hookgov.registry import HookRegistry
from hookgov.telemetry import TelemetryWriter
from hookgov.types import Event, HookDefinition

logger = structlog.get_logger()


class HookFramework:
    """
    One configured instance of the governance framework.

    Hooks come from the registry file named in the config plus any passed
    in `hooks`; the registry is frozen before the first dispatch.
    """

    def __init__(
        self,
        config: GovernanceConfig | None = None,
        hooks: Iterable[HookDefinition] | None = None,
        *,
        load_registry_file: bool = True,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or GovernanceConfig.load()
        cfg = self.config

        self.registry = HookRegistry()
        if load_registry_file:
            load_registry(cfg.registry_path, cfg, self.registry)
        for defn in hooks or ():
            self.registry.register(self._with_user_overrides(defn))
        self.registry.freeze()

        self.governor = PerformanceGovernor(
            thresholds=cfg.thresholds,
            rolling_window=cfg.rolling_window,
            state_path=cfg.performance_path,
            persist_every=cfg.persist_every,
            is_known=self.registry.__contains__,
        )
        self.governor.load()

        self.cache = ResultCache(
            max_entries=cfg.cache.max_entries,
            clock=clock,
            enabled=cfg.cache.enabled,
        )
        if cfg.cache.sweep_interval_seconds > 0:
            self.cache.start_sweeper(cfg.cache.sweep_interval_seconds)

        self.telemetry = TelemetryWriter(cfg.telemetry_path) if cfg.telemetry_path else None
        self._unsubscribe = (
            self.governor.subscribe(self.telemetry.governance) if self.telemetry else None
        )

        self.engine = ExecutionEngine(
            self.cache, self.governor, handler_workers=cfg.execution.handler_workers
        )
        self.profiles = ProfileManager(
            self.registry, self.governor, cfg.profiles, default_profile=cfg.profile
        )
        self.dispatcher = Dispatcher(
            self.profiles,
            self.engine,
            enabled=cfg.enabled,
            max_workers=cfg.execution.max_workers,
            budget_split=cfg.execution.budget_split,
            category_weights=cfg.execution.category_weights,
            telemetry=self.telemetry,
        )
        self._closed = False

        logger.info(
            "framework_started",
            hooks=len(self.registry),
            profile=self.profiles.default_profile,
            enabled=cfg.enabled,
        )

    def _with_user_overrides(self, defn: HookDefinition) -> HookDefinition:
        override = self.config.hooks.get(defn.id)
        if override is None:
            return defn
        return defn.with_overrides(
            config=override.config, enabled=override.enabled, thresholds=override.thresholds
        )

    @staticmethod
    def _event(event: Event | str, payload: Mapping[str, Any] | None) -> Event:
        if isinstance(event, Event):
            return event
        return Event(type=event, payload=dict(payload or {}))

    def dispatch(
        self,
        event: Event | str,
        payload: Mapping[str, Any] | None = None,
        *,
        profile: str | None = None,
        force_enabled: bool = False,
    ) -> Report:
        """Dispatch an event (or an event type plus payload)."""
        return self.dispatcher.dispatch(self._event(event, payload), profile, force_enabled)

    async def dispatch_async(
        self,
        event: Event | str,
        payload: Mapping[str, Any] | None = None,
        *,
        profile: str | None = None,
        force_enabled: bool = False,
    ) -> Report:
        return await self.dispatcher.dispatch_async(
            self._event(event, payload), profile, force_enabled
        )

    def reenable(self, hook_id: str) -> GovernanceEvent:
        return self.governor.reenable(hook_id)

    def disable(self, hook_id: str, reason: str = "manually disabled") -> GovernanceEvent:
        return self.governor.disable(hook_id, reason)

    def performance_report(self, top: int = 5) -> dict[str, Any]:
        report = self.governor.performance_report(top=top)
        report["cache"] = self.cache.stats()
        return report

    def close(self) -> None:
        """Persist governor state and release pools and files."""
        if self._closed:
            return
        self._closed = True
        self.governor.save()
        self.cache.stop_sweeper()
        self.engine.shutdown()
        if self._unsubscribe is not None:
            self._unsubscribe()
        if self.telemetry is not None:
            self.telemetry.close()

    def __enter__(self) -> HookFramework:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
