"""
Hook Registration System.

Manages registration and lookup of hooks by trigger event. Lookups keep
registration order so reports are stable from run to run.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator

import structlog

from hookgov.errors import DuplicateIdError, RegistryFrozenError
from hookgov.types import HookDefinition

logger = structlog.get_logger()


class HookRegistry:
    """
    Registry of hook definitions.

    Writable while the framework boots, then frozen. After `freeze()`
    every read is lock-free over data that no longer changes.
    """

    def __init__(self, hooks: Iterable[HookDefinition] | None = None) -> None:
        self._hooks: dict[str, HookDefinition] = {}
        self._by_trigger: dict[str, list[HookDefinition]] = {}
        self._order: dict[str, int] = {}
        self._frozen = False
        self._lock = threading.Lock()
        if hooks:
            self.register_all(hooks)

    def register(self, defn: HookDefinition) -> None:
        """
        Register a hook.

        Args:
            defn: Hook definition to register

        Raises:
            DuplicateIdError: a hook with this id is already registered
            RegistryFrozenError: the registry has been frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(defn.id)
            if defn.id in self._hooks:
                raise DuplicateIdError(defn.id)

            self._order[defn.id] = len(self._hooks)
            self._hooks[defn.id] = defn
            for trigger in sorted(defn.trigger_events):
                self._by_trigger.setdefault(trigger, []).append(defn)

        logger.debug(
            "hook_registered",
            hook=defn.id,
            agent=defn.owning_agent,
            category=defn.category.value,
            triggers=sorted(defn.trigger_events),
        )

    def register_all(self, defns: Iterable[HookDefinition]) -> None:
        for defn in defns:
            self.register(defn)

    def lookup(self, hook_id: str) -> HookDefinition | None:
        """Get a hook by id, or None if unknown."""
        return self._hooks.get(hook_id)

    def by_trigger(self, event_type: str) -> list[HookDefinition]:
        """
        Get all hooks for an event type.

        Args:
            event_type: The event type

        Returns:
            Hooks whose triggers contain the type, in registration order
        """
        return list(self._by_trigger.get(event_type, ()))

    def all(self) -> list[HookDefinition]:
        """Get all registered hooks in registration order."""
        return list(self._hooks.values())

    def position(self, hook_id: str) -> int:
        """Registration index of a hook; unknown ids sort last."""
        return self._order.get(hook_id, len(self._order))

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True
        logger.debug("registry_frozen", hook_count=len(self._hooks))

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def triggers(self) -> list[str]:
        return sorted(self._by_trigger)

    def __contains__(self, hook_id: object) -> bool:
        return hook_id in self._hooks

    def __len__(self) -> int:
        return len(self._hooks)

    def __iter__(self) -> Iterator[HookDefinition]:
        return iter(list(self._hooks.values()))
