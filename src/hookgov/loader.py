"""
Registry Loader - Build hook definitions from a YAML or JSON document.

Document shape:

    hooks:
      - id: coverage-gatekeeper
        agent: testing
        category: critical
        triggers: [pre-commit]
        cacheTTL: 300000
        handler: mypkg.checks:coverage_gate
        config:
          minimum: 80

`hooks` may also be a mapping keyed by id. Entries that fail validation,
name an unresolvable handler, or repeat an id are logged and skipped.
"""

from __future__ import annotations

import importlib
import inspect
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from hookgov.config import GovernanceConfig
from hookgov.errors import ConfigurationError, DuplicateIdError
from hookgov.registry import HookRegistry
from hookgov.types import Hook, HookCategory, HookConditions, HookDefinition, Thresholds

logger = structlog.get_logger()

# Accepted spellings -> canonical field name
_KEY_ALIASES = {
    "triggerEvents": "triggers",
    "trigger_events": "triggers",
    "trigger": "triggers",
    "cacheTTL": "cache_ttl_ms",
    "cache_ttl": "cache_ttl_ms",
    "owning_agent": "agent",
    "defaultConfig": "config",
    "default_config": "config",
    "timeoutMs": "timeout_ms",
    "cacheKeyFields": "cache_key_fields",
    "async": "async_handler",
}

_CONDITION_ALIASES = {
    "if_agent": "agents",
    "ifAgent": "agents",
    "agent": "agents",
    "if_file_matches": "file_pattern",
    "ifFileMatches": "file_pattern",
    "if_sprint_phase": "sprint_phase",
    "ifSprintPhase": "sprint_phase",
}


class ConditionsSpec(BaseModel):
    """Applicability filter as written in a registry document."""

    agents: list[str] = Field(default_factory=list)
    file_pattern: str | None = None
    sprint_phase: str | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        normalized = {_CONDITION_ALIASES.get(k, k): v for k, v in data.items()}
        agents = normalized.get("agents")
        if isinstance(agents, str):
            normalized["agents"] = [agents]
        return normalized

    def to_conditions(self) -> HookConditions:
        return HookConditions(
            agents=tuple(self.agents),
            file_pattern=self.file_pattern,
            sprint_phase=self.sprint_phase,
        )


class HookSpec(BaseModel):
    """One registry entry."""

    id: str
    agent: str = "unknown"
    category: HookCategory = HookCategory.ENHANCEMENT
    triggers: list[str] = Field(..., min_length=1)
    handler: str
    cache_ttl_ms: int = Field(default=0, ge=0)
    config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    timeout_ms: int | None = Field(default=None, gt=0)
    cache_key_fields: list[str] = Field(default_factory=list)
    thresholds: dict[str, int] = Field(default_factory=dict)
    conditions: ConditionsSpec | None = None
    async_handler: bool = False
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def normalize_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        normalized = {_KEY_ALIASES.get(k, k): v for k, v in data.items()}
        triggers = normalized.get("triggers")
        if isinstance(triggers, str):
            normalized["triggers"] = [triggers]
        return normalized

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("hook id must be non-empty")
        return v

    @field_validator("handler")
    @classmethod
    def validate_handler(cls, v: str) -> str:
        if ":" not in v and "." not in v:
            raise ValueError(f"handler must be 'module:attribute', got '{v}'")
        return v


class RegistryDocument(BaseModel):
    """Top-level registry document. Entries stay raw so one bad hook can't sink the rest."""

    version: int = 1
    hooks: list[Any] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def hooks_from_mapping(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        hooks = data.get("hooks")
        if isinstance(hooks, dict):
            data = dict(data)
            data["hooks"] = [
                {"id": hook_id, **(entry or {})} for hook_id, entry in hooks.items()
            ]
        return data


def resolve_handler(ref: str) -> Any:
    """
    Import a handler from `package.module:attribute`.

    A dotted `package.module.attribute` path is accepted too. `Hook`
    subclasses are instantiated with no arguments.
    """
    if ":" in ref:
        module_name, _, attr_path = ref.partition(":")
    else:
        module_name, _, attr_path = ref.rpartition(".")

    try:
        target: Any = importlib.import_module(module_name)
        for part in attr_path.split("."):
            target = getattr(target, part)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot resolve handler '{ref}': {e}") from e

    if inspect.isclass(target):
        if not issubclass(target, Hook):
            raise ConfigurationError(f"Handler class '{ref}' must subclass Hook")
        target = target()

    if not callable(target):
        raise ConfigurationError(f"Handler '{ref}' is not callable")
    return target


def build_definition(spec: HookSpec, config: GovernanceConfig | None = None) -> HookDefinition:
    """Turn a validated entry into a frozen definition, applying user overrides."""
    handler = resolve_handler(spec.handler)

    defn = HookDefinition(
        id=spec.id,
        owning_agent=spec.agent,
        category=spec.category,
        trigger_events=frozenset(spec.triggers),
        handler=handler,
        cache_ttl_ms=spec.cache_ttl_ms,
        default_config=spec.config,
        enabled_by_default=spec.enabled,
        cache_key_fields=tuple(spec.cache_key_fields),
        timeout_ms=spec.timeout_ms,
        thresholds=Thresholds.from_dict(spec.thresholds) if spec.thresholds else None,
        conditions=spec.conditions.to_conditions() if spec.conditions else None,
        async_handler=spec.async_handler,
        description=spec.description,
    )

    override = config.hooks.get(spec.id) if config else None
    if override is not None:
        defn = defn.with_overrides(
            config=override.config,
            enabled=override.enabled,
            thresholds=override.thresholds,
        )
    return defn


def parse_document(text: str, suffix: str = ".yaml") -> dict[str, Any]:
    """Parse a registry document. JSON is used for `.json`, YAML otherwise."""
    try:
        data = json.loads(text) if suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Registry document is not valid {suffix[1:]}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError("Registry document must be a mapping with a 'hooks' key")
    return dict(data)


def load_definitions(
    data: Mapping[str, Any], config: GovernanceConfig | None = None
) -> list[HookDefinition]:
    """
    Build definitions from a parsed document.

    Invalid entries are logged and dropped; the first occurrence of a
    repeated id wins.
    """
    try:
        document = RegistryDocument.model_validate(dict(data))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid registry document: {e}") from e

    definitions: list[HookDefinition] = []
    seen: set[str] = set()

    for index, entry in enumerate(document.hooks):
        try:
            spec = HookSpec.model_validate(entry)
        except ValidationError as e:
            logger.warning(
                "registry_entry_invalid",
                index=index,
                hook=entry.get("id") if isinstance(entry, dict) else None,
                errors=e.error_count(),
                error=str(e),
            )
            continue

        if spec.id in seen:
            logger.warning("registry_duplicate_id", hook=spec.id, index=index)
            continue

        try:
            defn = build_definition(spec, config)
        except (ConfigurationError, ValueError) as e:
            logger.warning("registry_entry_skipped", hook=spec.id, error=str(e))
            continue

        seen.add(spec.id)
        definitions.append(defn)

    return definitions


def load_registry(
    path: Path,
    config: GovernanceConfig | None = None,
    registry: HookRegistry | None = None,
) -> HookRegistry:
    """
    Load hooks from a registry file into a registry.

    A missing, unreadable or malformed file is logged and yields an empty
    registry. Hooks whose id is already in `registry` are logged and skipped.
    """
    registry = registry if registry is not None else HookRegistry()
    path = Path(path)

    if not path.exists():
        logger.warning("registry_file_missing", path=str(path))
        return registry

    try:
        data = parse_document(path.read_text(), path.suffix.lower())
        definitions = load_definitions(data, config)
    except (ConfigurationError, OSError) as e:
        logger.error("registry_invalid", path=str(path), error=str(e))
        return registry

    loaded = 0
    for defn in definitions:
        try:
            registry.register(defn)
            loaded += 1
        except DuplicateIdError as e:
            logger.warning("registry_duplicate_id", hook=e.hook_id, path=str(path))

    logger.info(
        "registry_loaded",
        path=str(path),
        hooks=loaded,
        skipped=len(data.get("hooks") or []) - loaded,
    )
    return registry
