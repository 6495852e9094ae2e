"""Pytest configuration for hookgov (src layout)."""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import structlog


def pytest_configure() -> None:
    project_root = Path(__file__).resolve().parents[1]
    src_root = project_root / "src"
    sys.path.insert(0, str(src_root))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingHandler:
    """Handler returning a fixed result and counting calls."""

    def __init__(self, result: Any = None, delay: float = 0.0) -> None:
        from hookgov.types import HookResult

        self.result = result if result is not None else HookResult.passed("ok")
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, ctx: Any) -> Any:
        with self._lock:
            self.calls += 1
        if self.delay:
            threading.Event().wait(self.delay)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gate() -> Iterator[threading.Event]:
    """Event hung handlers wait on; released at teardown so worker threads exit."""
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture
def counting_handler() -> Callable[..., CountingHandler]:
    return CountingHandler


@pytest.fixture
def make_hook() -> Callable[..., Any]:
    """Factory for HookDefinitions with sensible test defaults."""
    from hookgov.types import HookDefinition

    def _make(
        hook_id: str,
        category: str = "critical",
        triggers: tuple[str, ...] = ("pre-commit",),
        handler: Any = None,
        **kwargs: Any,
    ) -> HookDefinition:
        return HookDefinition(
            id=hook_id,
            owning_agent=kwargs.pop("owning_agent", "testing"),
            category=category,
            trigger_events=frozenset(triggers),
            handler=handler if handler is not None else CountingHandler(),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_context() -> Callable[..., Any]:
    """Factory for ExecutionContexts with a deadline `budget_s` from now."""
    import time

    from hookgov.types import Event, ExecutionContext

    def _make(
        hook_id: str = "hook",
        event_type: str = "pre-commit",
        payload: dict[str, Any] | None = None,
        config: dict[str, Any] | None = None,
        budget_s: float = 2.0,
    ) -> ExecutionContext:
        return ExecutionContext(
            hook_id=hook_id,
            event=Event(type=event_type, payload=payload or {}),
            config=config or {},
            deadline=time.monotonic() + budget_s,
        )

    return _make
