"""
Governance Configuration - All settings for the hook governance framework.

Loaded from YAML config file with environment variable override support.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from hookgov.types import HookCategory, Thresholds

logger = structlog.get_logger()

ENV_PROFILE = "HOOKGOV_PROFILE"
ENV_ENABLED = "HOOKGOV_ENABLED"
ENV_CONFIG = "HOOKGOV_CONFIG"

BUDGET_SPLITS = ("equal", "weighted", "full")


def deep_merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deterministically merge two dictionaries.

    - Dicts are merged recursively
    - Non-dicts (including lists) are replaced by `override`
    """
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        existing = result.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            result[key] = deep_merge_dicts(existing, value)
        else:
            result[key] = value
    return result


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return dict(data) if isinstance(data, dict) else {}


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "y", "on"}:
            return True
        if lowered in {"false", "0", "no", "n", "off"}:
            return False
    return default


def _as_int(value: Any, default: int | None, key: str) -> int | None:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("config_value_invalid", key=key, value=value, default=default)
        return default


def _as_float(value: Any, default: float, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("config_value_invalid", key=key, value=value, default=default)
        return default


@dataclass
class CacheConfig:
    """Result cache settings."""

    enabled: bool = True
    max_entries: int | None = 4096
    sweep_interval_seconds: float = 0.0  # 0 = lazy expiry only


@dataclass
class ExecutionConfig:
    """Worker pools and per-dispatch budget split."""

    max_workers: int | None = None  # dispatch fan-out; None = one per hook
    handler_workers: int = 32
    budget_split: str = "equal"  # equal, weighted, full
    category_weights: dict[str, float] = field(
        default_factory=lambda: {
            HookCategory.CRITICAL.value: 3.0,
            HookCategory.VALUABLE.value: 2.0,
            HookCategory.ENHANCEMENT.value: 1.0,
        }
    )


@dataclass
class ProfileConfig:
    """A named profile as written in config."""

    name: str
    budget_ms: int
    categories: list[str] = field(default_factory=list)
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    allow_list: list[str] | None = None  # custom profile only
    description: str = ""


def default_profiles() -> dict[str, ProfileConfig]:
    """Built-in profiles: thoroughness traded against latency."""
    return {
        "minimal": ProfileConfig(
            name="minimal",
            budget_ms=2000,
            categories=[HookCategory.CRITICAL.value],
            description="Essential hooks only",
        ),
        "standard": ProfileConfig(
            name="standard",
            budget_ms=5000,
            categories=[HookCategory.CRITICAL.value, HookCategory.VALUABLE.value],
            description="Recommended configuration",
        ),
        "advanced": ProfileConfig(
            name="advanced",
            budget_ms=10000,
            categories=[c.value for c in HookCategory],
            description="All hooks enabled",
        ),
        "custom": ProfileConfig(
            name="custom",
            budget_ms=5000,
            allow_list=[],
            description="Explicit allow-list",
        ),
    }


@dataclass
class HookOverride:
    """User override for one hook, merged once at registration."""

    enabled: bool | None = None
    config: dict[str, Any] = field(default_factory=dict)
    thresholds: dict[str, Any] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """structlog output settings (applied by the CLI)."""

    level: str = "info"
    json: bool = False


@dataclass
class GovernanceConfig:
    """Main governance configuration."""

    enabled: bool = True
    profile: str = "standard"

    # Paths
    root: Path = field(default_factory=Path.cwd)
    config_path: Path = field(default_factory=lambda: Path(".hookgov/config.yaml"))
    registry_path: Path = field(default_factory=lambda: Path(".hookgov/registry.yaml"))
    state_dir: Path = field(default_factory=lambda: Path(".hookgov/state"))
    telemetry_path: Path | None = field(
        default_factory=lambda: Path(".hookgov/logs/telemetry.jsonl")
    )

    # Governance
    thresholds: Thresholds = field(default_factory=Thresholds)
    rolling_window: int = 20
    persist_every: int = 10

    # Sub-configs
    cache: CacheConfig = field(default_factory=CacheConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    profiles: dict[str, ProfileConfig] = field(default_factory=default_profiles)
    hooks: dict[str, HookOverride] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        self._normalize_paths()

    @property
    def performance_path(self) -> Path:
        return self.state_dir / "performance.json"

    @classmethod
    def load(cls, config_path: Path | None = None, *, apply_env: bool = True) -> GovernanceConfig:
        """Load configuration from YAML file, then apply environment overrides."""
        if config_path is None:
            config_path = Path(os.environ.get(ENV_CONFIG, ".hookgov/config.yaml"))
        config_path = Path(config_path)

        if not config_path.exists():
            config = cls()
            config._apply_config_path(config_path)
        else:
            try:
                data = _load_yaml(config_path)
            except (OSError, yaml.YAMLError) as e:
                logger.error("config_invalid", path=str(config_path), error=str(e))
                data = {}
            merged = cls._load_with_includes(data, config_path, seen=set())
            config = cls.from_dict(merged, config_path)

        if apply_env:
            config.apply_env(os.environ)
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any], config_path: Path | None = None) -> GovernanceConfig:
        """Create config from dictionary. Unknown keys are ignored."""
        data = dict(data or {})

        thresholds_data = data.get("thresholds") if isinstance(data.get("thresholds"), dict) else {}
        cache_data = data.get("cache") if isinstance(data.get("cache"), dict) else {}
        execution_data = data.get("execution") if isinstance(data.get("execution"), dict) else {}
        profiles_data = data.get("profiles") if isinstance(data.get("profiles"), dict) else {}
        hooks_data = data.get("hooks") if isinstance(data.get("hooks"), dict) else {}
        logging_data = data.get("logging") if isinstance(data.get("logging"), dict) else {}

        defaults = Thresholds()
        thresholds = Thresholds.from_dict(
            {
                key: _as_int(value, getattr(defaults, key), f"thresholds.{key}")
                for key, value in thresholds_data.items()
                if key in defaults.to_dict()
            }
        )

        cache = CacheConfig(
            enabled=_parse_bool(cache_data.get("enabled"), True),
            max_entries=_as_int(cache_data.get("max_entries"), 4096, "cache.max_entries"),
            sweep_interval_seconds=_as_float(
                cache_data.get("sweep_interval_seconds"), 0.0, "cache.sweep_interval_seconds"
            ),
        )

        budget_split = str(execution_data.get("budget_split", "equal"))
        if budget_split not in BUDGET_SPLITS:
            logger.warning("config_value_invalid", key="execution.budget_split", value=budget_split)
            budget_split = "equal"

        execution = ExecutionConfig(
            max_workers=_as_int(execution_data.get("max_workers"), None, "execution.max_workers"),
            handler_workers=_as_int(
                execution_data.get("handler_workers"), 32, "execution.handler_workers"
            )
            or 32,
            budget_split=budget_split,
        )
        weights = execution_data.get("category_weights")
        if isinstance(weights, dict):
            for category, weight in weights.items():
                key = str(category)
                execution.category_weights[key] = _as_float(
                    weight,
                    execution.category_weights.get(key, 1.0),
                    f"execution.category_weights.{key}",
                )

        profiles = default_profiles()
        for name, profile_data in profiles_data.items():
            if not isinstance(profile_data, dict):
                logger.warning("config_profile_invalid", profile=name)
                continue
            profiles[str(name)] = _build_profile(str(name), profile_data, profiles.get(str(name)))

        hooks: dict[str, HookOverride] = {}
        for hook_id, override in hooks_data.items():
            if not isinstance(override, dict):
                continue
            hooks[str(hook_id)] = HookOverride(
                enabled=_parse_bool(override.get("enabled"), True)
                if "enabled" in override
                else None,
                config=dict(override.get("config") or {}),
                thresholds=dict(override.get("thresholds") or {}),
            )

        config = cls(
            enabled=_parse_bool(data.get("enabled"), True),
            profile=str(data.get("profile", "standard")),
            thresholds=thresholds,
            rolling_window=_as_int(data.get("rolling_window"), 20, "rolling_window") or 20,
            persist_every=_as_int(data.get("persist_every"), 10, "persist_every") or 10,
            cache=cache,
            execution=execution,
            profiles=profiles,
            hooks=hooks,
            logging=LoggingConfig(
                level=str(logging_data.get("level", "info")),
                json=_parse_bool(logging_data.get("json"), False),
            ),
        )

        if config_path:
            config._apply_config_path(config_path)

        for key in ("registry_path", "state_dir", "telemetry_path"):
            if key in data:
                value = data[key]
                setattr(config, key, Path(str(value)) if value else None)

        config._normalize_paths()
        return config

    @classmethod
    def _load_with_includes(
        cls, data: dict[str, Any], config_path: Path, *, seen: set[Path]
    ) -> dict[str, Any]:
        """
        Load a config file that may include one or more base configs.

        Supports:
          include: relative/or/absolute/path.yaml
          include: [path1.yaml, path2.yaml]
        """
        seen.add(config_path.resolve())

        include_value = data.get("include")
        includes: list[str] = []
        if isinstance(include_value, str) and include_value.strip():
            includes = [include_value]
        elif isinstance(include_value, list):
            includes = [str(x) for x in include_value if str(x).strip()]

        base: dict[str, Any] = {}
        for include in includes:
            include_path = Path(include)
            if not include_path.is_absolute():
                include_path = (config_path.parent / include_path).resolve()

            if include_path.resolve() in seen:
                logger.warning("config_include_cycle", path=str(include_path))
                continue
            try:
                include_data = _load_yaml(include_path)
            except (OSError, yaml.YAMLError) as e:
                logger.warning("config_include_invalid", path=str(include_path), error=str(e))
                continue
            include_merged = cls._load_with_includes(include_data, include_path, seen=seen)
            base = deep_merge_dicts(base, include_merged)

        # Child overrides base; keep include key out of final merged dict.
        child = dict(data)
        child.pop("include", None)
        return deep_merge_dicts(base, child)

    def apply_env(self, environ: Any) -> None:
        """Apply environment overrides. Read once, at startup."""
        profile = environ.get(ENV_PROFILE)
        if profile:
            self.profile = profile.strip()
        if environ.get(ENV_ENABLED) is not None:
            self.enabled = _parse_bool(environ.get(ENV_ENABLED), self.enabled)

    def _apply_config_path(self, config_path: Path) -> None:
        config_path = Path(config_path).resolve()
        self.config_path = config_path
        self.root = config_path.parent.parent

        base_dir = config_path.parent
        self.registry_path = base_dir / "registry.yaml"
        self.state_dir = base_dir / "state"
        self.telemetry_path = base_dir / "logs" / "telemetry.jsonl"

    def _normalize_paths(self) -> None:
        self.root = self.root.resolve()

        def _resolve(path: Path) -> Path:
            return path if path.is_absolute() else (self.root / path).resolve()

        self.config_path = _resolve(self.config_path)
        self.registry_path = _resolve(self.registry_path)
        self.state_dir = _resolve(self.state_dir)
        if self.telemetry_path is not None:
            self.telemetry_path = _resolve(self.telemetry_path)

    def to_dict(self) -> dict[str, Any]:
        """Serialize config to dictionary."""
        return {
            "enabled": self.enabled,
            "profile": self.profile,
            "registry_path": str(self.registry_path),
            "state_dir": str(self.state_dir),
            "telemetry_path": str(self.telemetry_path) if self.telemetry_path else None,
            "thresholds": self.thresholds.to_dict(),
            "rolling_window": self.rolling_window,
            "persist_every": self.persist_every,
            "cache": {
                "enabled": self.cache.enabled,
                "max_entries": self.cache.max_entries,
                "sweep_interval_seconds": self.cache.sweep_interval_seconds,
            },
            "execution": {
                "max_workers": self.execution.max_workers,
                "handler_workers": self.execution.handler_workers,
                "budget_split": self.execution.budget_split,
                "category_weights": dict(self.execution.category_weights),
            },
            "profiles": {
                name: {
                    "budget_ms": p.budget_ms,
                    "categories": list(p.categories),
                    "include": list(p.include),
                    "exclude": list(p.exclude),
                    "allow_list": list(p.allow_list) if p.allow_list is not None else None,
                    "description": p.description,
                }
                for name, p in self.profiles.items()
            },
            "hooks": {
                hook_id: {
                    "enabled": o.enabled,
                    "config": o.config,
                    "thresholds": o.thresholds,
                }
                for hook_id, o in self.hooks.items()
            },
            "logging": {"level": self.logging.level, "json": self.logging.json},
        }


def _build_profile(
    name: str, data: dict[str, Any], base: ProfileConfig | None
) -> ProfileConfig:
    base = base or ProfileConfig(name=name, budget_ms=5000)

    categories = data.get("categories", base.categories)
    valid = {c.value for c in HookCategory}
    filtered = [str(c) for c in categories or [] if str(c) in valid]
    if len(filtered) != len(categories or []):
        logger.warning("config_profile_unknown_category", profile=name, categories=categories)

    allow_list = data.get("allow_list", data.get("hooks", base.allow_list))

    return ProfileConfig(
        name=name,
        budget_ms=_as_int(data.get("budget_ms"), base.budget_ms, f"profiles.{name}.budget_ms")
        or base.budget_ms,
        categories=filtered,
        include=[str(x) for x in data.get("include", base.include) or []],
        exclude=[str(x) for x in data.get("exclude", base.exclude) or []],
        allow_list=[str(x) for x in allow_list] if isinstance(allow_list, list) else None,
        description=str(data.get("description", base.description)),
    )
