"""
hookgov: Hook Execution & Performance Governance

Runs registered checks ("hooks") for lifecycle events under strict time
budgets, caches their results, auto-disables hooks that are slow or keep
failing, and merges their pass/warn/block results into one verdict.

Usage:
    from hookgov import GovernanceConfig, HookCategory, HookDefinition, HookFramework, HookResult

    def no_debug_prints(ctx):
        if "print(" in ctx.event.payload.get("diff", ""):
            return HookResult.warn("debug print left in diff")
        return HookResult.passed()

    hook = HookDefinition(
        id="no-debug-prints",
        owning_agent="coder",
        category=HookCategory.VALUABLE,
        trigger_events={"pre-commit"},
        handler=no_debug_prints,
    )

    with HookFramework(GovernanceConfig.load(), hooks=[hook]) as framework:
        report = framework.dispatch("pre-commit", {"diff": diff_text})
        print(report.verdict.value)
"""

__version__ = "0.1.0"

from hookgov.aggregator import Report, Verdict, aggregate
from hookgov.cache import ResultCache, fingerprint
from hookgov.config import GovernanceConfig
from hookgov.dispatcher import Dispatcher
from hookgov.engine import ExecutionEngine
from hookgov.errors import (
    ConfigurationError,
    DuplicateIdError,
    GovernanceTransitionError,
    HandlerError,
    HookGovError,
    HookTimeoutError,
    RegistryFrozenError,
)
from hookgov.framework import HookFramework
from hookgov.governor import (
    GovernanceEvent,
    HookState,
    PerformanceGovernor,
    PerformanceRecord,
    performance_rating,
)
from hookgov.profiles import Profile, ProfileManager, ProfileResolution
from hookgov.registry import HookRegistry
from hookgov.types import (
    AsyncHookHandler,
    Event,
    ExecutionContext,
    Hook,
    HookCategory,
    HookConditions,
    HookDefinition,
    HookHandler,
    HookResult,
    HookStatus,
    Outcome,
    Thresholds,
)

__all__ = [
    # Types
    "Event",
    "ExecutionContext",
    "Hook",
    "HookCategory",
    "HookConditions",
    "HookDefinition",
    "HookHandler",
    "AsyncHookHandler",
    "HookResult",
    "HookStatus",
    "Outcome",
    "Thresholds",
    # Components
    "HookRegistry",
    "ResultCache",
    "fingerprint",
    "PerformanceGovernor",
    "PerformanceRecord",
    "GovernanceEvent",
    "HookState",
    "performance_rating",
    "Profile",
    "ProfileManager",
    "ProfileResolution",
    "ExecutionEngine",
    "Dispatcher",
    "Report",
    "Verdict",
    "aggregate",
    # Wiring
    "GovernanceConfig",
    "HookFramework",
    # Errors
    "HookGovError",
    "ConfigurationError",
    "DuplicateIdError",
    "RegistryFrozenError",
    "HandlerError",
    "HookTimeoutError",
    "GovernanceTransitionError",
]
