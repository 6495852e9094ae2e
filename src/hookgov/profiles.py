"""
Profile Manager - Select the hooks that run for an event.

A profile trades thoroughness for latency: it names the categories it
admits and the total time budget for one dispatch.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

import structlog

from hookgov.config import ProfileConfig, default_profiles
from hookgov.governor import PerformanceGovernor
from hookgov.registry import HookRegistry
from hookgov.types import Event, HookCategory, HookDefinition

logger = structlog.get_logger()

DEFAULT_PROFILE = "standard"
CUSTOM_PROFILE = "custom"


@dataclass(frozen=True)
class Profile:
    """Named hook selection with a time budget."""

    name: str
    budget_ms: int
    categories: frozenset[HookCategory] = frozenset()
    include: frozenset[str] = frozenset()
    exclude: frozenset[str] = frozenset()
    allow_list: tuple[str, ...] | None = None
    description: str = ""

    @classmethod
    def from_config(cls, config: ProfileConfig) -> Profile:
        return cls(
            name=config.name,
            budget_ms=int(config.budget_ms),
            categories=frozenset(HookCategory(c) for c in config.categories),
            include=frozenset(config.include),
            exclude=frozenset(config.exclude),
            allow_list=tuple(config.allow_list) if config.allow_list is not None else None,
            description=config.description,
        )

    def admits(self, defn: HookDefinition) -> bool:
        """Category and explicit-id selection, ignoring governance state."""
        if defn.id in self.exclude:
            return False
        if defn.id in self.include:
            return True
        if self.allow_list is not None:
            return defn.id in self.allow_list
        return defn.enabled_by_default and defn.category in self.categories


@dataclass
class ProfileResolution:
    """Hooks selected for one dispatch."""

    profile: str
    budget_ms: int
    hooks: list[HookDefinition] = field(default_factory=list)
    # Admitted by the profile but disabled by the governor
    suppressed: list[HookDefinition] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.hooks and not self.suppressed


class ProfileManager:
    """
    Resolves a profile name and event to the hooks to run.

    `resolve` only reads the registry and the governor's state, so it is
    safe to call from many dispatches at once.
    """

    def __init__(
        self,
        registry: HookRegistry,
        governor: PerformanceGovernor,
        profiles: Mapping[str, ProfileConfig] | Iterable[Profile] | None = None,
        default_profile: str = DEFAULT_PROFILE,
    ) -> None:
        self.registry = registry
        self.governor = governor
        self._profiles: dict[str, Profile] = {}

        if profiles is None:
            profiles = default_profiles()
        if isinstance(profiles, Mapping):
            for config in profiles.values():
                self._profiles[config.name] = Profile.from_config(config)
        else:
            for profile in profiles:
                self._profiles[profile.name] = profile

        if DEFAULT_PROFILE not in self._profiles:
            self._profiles[DEFAULT_PROFILE] = Profile.from_config(
                default_profiles()[DEFAULT_PROFILE]
            )

        if default_profile not in self._profiles:
            logger.warning(
                "profile_unknown", profile=default_profile, fallback=DEFAULT_PROFILE
            )
            default_profile = DEFAULT_PROFILE
        self.default_profile = default_profile

    @property
    def names(self) -> list[str]:
        return list(self._profiles)

    def get(self, name: str) -> Profile | None:
        return self._profiles.get(name)

    def all(self) -> list[Profile]:
        return list(self._profiles.values())

    def resolve(
        self,
        profile_name: str | None,
        event: Event,
        force_enabled: bool = False,
    ) -> ProfileResolution:
        """
        Select hooks for an event.

        No name selects the configured default profile. An unknown name
        falls back to `standard` with a logged warning; this never raises.
        Hooks the governor disabled are left out of `hooks` (unless
        `force_enabled`) and listed in `suppressed` instead.
        """
        notes: list[str] = []
        name = profile_name or self.default_profile
        profile = self._profiles.get(name)
        if profile is None:
            logger.warning("profile_unknown", profile=name, fallback=DEFAULT_PROFILE)
            notes.append(f"unknown profile '{name}', using '{DEFAULT_PROFILE}'")
            profile = self._profiles[DEFAULT_PROFILE]

        hooks: list[HookDefinition] = []
        suppressed: list[HookDefinition] = []

        for defn in self.registry.by_trigger(event.type):
            if not profile.admits(defn) or not defn.applies_to(event):
                continue
            if not force_enabled and not self.governor.is_enabled(defn.id):
                suppressed.append(defn)
                continue
            hooks.append(defn)

        logger.debug(
            "profile_resolved",
            profile=profile.name,
            event_type=event.type,
            hooks=[h.id for h in hooks],
            suppressed=[h.id for h in suppressed],
        )

        return ProfileResolution(
            profile=profile.name,
            budget_ms=profile.budget_ms,
            hooks=hooks,
            suppressed=suppressed,
            notes=notes,
        )
