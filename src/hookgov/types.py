"""
Hook type definitions.

Every hook, regardless of author, is reduced to the same boundary: a
handler that takes an immutable `ExecutionContext` and returns a
`HookResult`. Definitions are frozen once registered.
"""

from __future__ import annotations

import inspect
import re
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any


class HookCategory(str, Enum):
    """Severity category; decides profile inclusion and blocking rights."""

    CRITICAL = "critical"
    VALUABLE = "valuable"
    ENHANCEMENT = "enhancement"


class HookStatus(str, Enum):
    """Status a handler reports."""

    SUCCESS = "success"
    WARNING = "warning"
    BLOCKED = "blocked"
    SKIPPED = "skipped"
    ERROR = "error"


class Outcome(str, Enum):
    """What the performance governor observed for one invocation."""

    SUCCESS = "success"
    WARNING = "warning"
    BLOCKED = "blocked"
    SKIPPED = "skipped"
    ERROR = "error"
    TIMEOUT = "timeout"
    CACHED = "cached"

    @property
    def is_failure(self) -> bool:
        return self in (Outcome.ERROR, Outcome.TIMEOUT)


@dataclass(frozen=True)
class Thresholds:
    """Governance limits. Defaults are configurable, not load-bearing."""

    warn_threshold_ms: int = 1000
    disable_threshold_ms: int = 2000
    max_consecutive_failures: int = 5

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any] | None, base: Thresholds | None = None
    ) -> Thresholds:
        """Build thresholds, keeping `base` values for missing keys."""
        base = base or cls()
        data = data or {}
        return cls(
            warn_threshold_ms=int(data.get("warn_threshold_ms", base.warn_threshold_ms)),
            disable_threshold_ms=int(data.get("disable_threshold_ms", base.disable_threshold_ms)),
            max_consecutive_failures=int(
                data.get("max_consecutive_failures", base.max_consecutive_failures)
            ),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "warn_threshold_ms": self.warn_threshold_ms,
            "disable_threshold_ms": self.disable_threshold_ms,
            "max_consecutive_failures": self.max_consecutive_failures,
        }


@dataclass(frozen=True)
class Event:
    """A lifecycle event: file change, pre-commit, deployment check, ..."""

    type: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload or {})))

    @property
    def file_path(self) -> str | None:
        value = self.payload.get("file_path")
        return str(value) if value else None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Event:
        payload = data.get("payload")
        return cls(
            type=str(data.get("type", "")),
            payload=dict(payload) if isinstance(payload, Mapping) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": dict(self.payload)}


@dataclass(frozen=True)
class HookConditions:
    """Optional applicability filter evaluated against the event payload."""

    agents: tuple[str, ...] = ()
    file_pattern: str | None = None
    sprint_phase: str | None = None

    def matches(self, event: Event) -> bool:
        payload = event.payload

        if self.agents:
            agent = payload.get("agent") or payload.get("active_agent")
            if agent not in self.agents:
                return False

        if self.file_pattern:
            file_path = event.file_path
            if file_path is None or not re.search(self.file_pattern, file_path):
                return False

        return not (self.sprint_phase and payload.get("sprint_phase") != self.sprint_phase)


@dataclass(frozen=True)
class ExecutionContext:
    """Context passed to one hook invocation. Never shared between hooks."""

    hook_id: str
    event: Event
    config: Mapping[str, Any]
    deadline: float  # absolute, time.monotonic() seconds
    profile: str = "standard"
    _cancel: threading.Event = field(
        default_factory=threading.Event, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "config", MappingProxyType(dict(self.config or {})))

    def remaining_seconds(self, now: float | None = None) -> float:
        now = time.monotonic() if now is None else now
        return max(0.0, self.deadline - now)

    def remaining_ms(self, now: float | None = None) -> int:
        return int(self.remaining_seconds(now) * 1000)

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.deadline

    @property
    def cancelled(self) -> bool:
        """True once the engine has given up on this invocation."""
        return self._cancel.is_set()

    def cancel(self) -> None:
        self._cancel.set()


@dataclass
class HookResult:
    """Result from a hook invocation."""

    status: HookStatus
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    duration_ms: int = 0

    # Filled in by the engine
    hook_id: str = ""
    cached: bool = False
    annotations: list[str] = field(default_factory=list)
    governance_event: Any = None

    def __post_init__(self) -> None:
        self.status = HookStatus(self.status)
        if self.status is HookStatus.SKIPPED and not self.message:
            raise ValueError("skipped results must carry a reason")

    @classmethod
    def passed(cls, message: str = "", details: dict[str, Any] | None = None) -> HookResult:
        return cls(HookStatus.SUCCESS, message, dict(details or {}))

    @classmethod
    def warn(cls, message: str, details: dict[str, Any] | None = None) -> HookResult:
        return cls(HookStatus.WARNING, message, dict(details or {}))

    @classmethod
    def block(cls, message: str, details: dict[str, Any] | None = None) -> HookResult:
        return cls(HookStatus.BLOCKED, message, dict(details or {}))

    @classmethod
    def skip(cls, reason: str, details: dict[str, Any] | None = None) -> HookResult:
        return cls(HookStatus.SKIPPED, reason, dict(details or {}))

    @classmethod
    def fail(cls, message: str, details: dict[str, Any] | None = None) -> HookResult:
        return cls(HookStatus.ERROR, message, dict(details or {}))

    @property
    def is_error(self) -> bool:
        return self.status is HookStatus.ERROR

    @property
    def timed_out(self) -> bool:
        return self.is_error and self.message == "timeout"

    def to_dict(self) -> dict[str, Any]:
        event = self.governance_event
        return {
            "hook_id": self.hook_id,
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
            "duration_ms": self.duration_ms,
            "cached": self.cached,
            "annotations": list(self.annotations),
            "governance_event": event.to_dict() if event is not None else None,
        }


# Type aliases for hook handlers
HookHandler = Callable[[ExecutionContext], HookResult]
AsyncHookHandler = Callable[[ExecutionContext], Awaitable[HookResult]]


class Hook(ABC):
    """
    Base class for class-based hooks.

    Plain functions work just as well; subclass this when a check wants
    its own helpers or state set up once at construction.
    """

    @abstractmethod
    def handle(self, ctx: ExecutionContext) -> HookResult:
        """Run the check for one event."""
        pass

    def __call__(self, ctx: ExecutionContext) -> HookResult:
        return self.handle(ctx)


def _freeze_triggers(triggers: Iterable[str] | str) -> frozenset[str]:
    if isinstance(triggers, str):
        return frozenset({triggers})
    return frozenset(str(t) for t in triggers)


@dataclass(frozen=True)
class HookDefinition:
    """Registered hook definition. Immutable after load."""

    id: str
    owning_agent: str
    category: HookCategory
    trigger_events: frozenset[str]
    handler: HookHandler | AsyncHookHandler | Hook | None = field(
        default=None, repr=False, compare=False
    )
    cache_ttl_ms: int = 0
    default_config: Mapping[str, Any] = field(default_factory=dict)
    # Merged default + user override; computed once, never re-read per call
    config: Mapping[str, Any] | None = None
    enabled_by_default: bool = True
    cache_key_fields: tuple[str, ...] = ()
    timeout_ms: int | None = None
    thresholds: Thresholds | None = None
    conditions: HookConditions | None = None
    async_handler: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id or not str(self.id).strip():
            raise ValueError("hook id must be a non-empty string")
        object.__setattr__(self, "category", HookCategory(self.category))
        object.__setattr__(self, "trigger_events", _freeze_triggers(self.trigger_events))
        object.__setattr__(self, "cache_ttl_ms", max(0, int(self.cache_ttl_ms or 0)))
        object.__setattr__(self, "cache_key_fields", tuple(self.cache_key_fields))
        default_config = MappingProxyType(dict(self.default_config or {}))
        object.__setattr__(self, "default_config", default_config)
        merged = self.config if self.config is not None else default_config
        object.__setattr__(self, "config", MappingProxyType(dict(merged)))

    @property
    def can_block(self) -> bool:
        """Only critical hooks, or hooks that explicitly opt in, may block."""
        return self.category is HookCategory.CRITICAL or bool(self.config.get("allow_block"))

    @property
    def target(self) -> HookHandler | AsyncHookHandler | None:
        handler = self.handler
        if handler is None:
            return None
        handle = getattr(handler, "handle", None)
        if callable(handle):
            return handle
        return handler  # type: ignore[return-value]

    @property
    def is_async(self) -> bool:
        target = self.target
        return self.async_handler or (target is not None and inspect.iscoroutinefunction(target))

    def applies_to(self, event: Event) -> bool:
        if event.type not in self.trigger_events:
            return False
        return self.conditions is None or self.conditions.matches(event)

    def with_overrides(
        self,
        config: Mapping[str, Any] | None = None,
        enabled: bool | None = None,
        thresholds: Mapping[str, Any] | None = None,
    ) -> HookDefinition:
        """Return a copy with user overrides merged over the defaults."""
        from hookgov.config import deep_merge_dicts

        merged = deep_merge_dicts(dict(self.default_config), dict(config or {}))
        changes: dict[str, Any] = {"config": merged}
        if enabled is not None:
            changes["enabled_by_default"] = bool(enabled)
        if thresholds:
            changes["thresholds"] = Thresholds.from_dict(thresholds, base=self.thresholds)
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "agent": self.owning_agent,
            "category": self.category.value,
            "triggers": sorted(self.trigger_events),
            "cache_ttl_ms": self.cache_ttl_ms,
            "config": dict(self.config or {}),
            "enabled": self.enabled_by_default,
            "timeout_ms": self.timeout_ms,
            "description": self.description,
        }
