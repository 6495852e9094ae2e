"""
Exception taxonomy for the hook governance framework.

Only configuration and governance errors ever reach a caller. Handler
failures and timeouts are converted to `error` results inside the
execution engine and exist here so they can be raised and recognized at
that boundary.
"""

from __future__ import annotations


class HookGovError(Exception):
    """Base exception for hookgov errors."""

    pass


class ConfigurationError(HookGovError):
    """Bad or missing profile, registry entry, or config value.

    Callers log it and fall back to safe defaults.
    """

    pass


class DuplicateIdError(HookGovError):
    """A hook with the same id is already registered."""

    def __init__(self, hook_id: str) -> None:
        super().__init__(f"Hook already registered: {hook_id}")
        self.hook_id = hook_id


class RegistryFrozenError(HookGovError):
    """The registry no longer accepts registrations."""

    def __init__(self, hook_id: str) -> None:
        super().__init__(f"Registry is frozen; cannot register {hook_id}")
        self.hook_id = hook_id


class HandlerError(HookGovError):
    """A hook handler raised or violated the handler contract."""

    pass


class HookTimeoutError(HandlerError):
    """A hook handler did not finish before its deadline."""

    def __init__(self, hook_id: str, elapsed_ms: int) -> None:
        super().__init__(f"Hook {hook_id} timed out after {elapsed_ms}ms")
        self.hook_id = hook_id
        self.elapsed_ms = elapsed_ms


class GovernanceTransitionError(HookGovError):
    """A manual governance operation targeted an unknown hook."""

    def __init__(self, hook_id: str, operation: str = "reenable") -> None:
        super().__init__(f"Cannot {operation} unknown hook: {hook_id}")
        self.hook_id = hook_id
        self.operation = operation
