"""
hookgov Initialization - Sets up hook governance in a repository.

Creates:
- .hookgov/ directory structure
- Default config.yaml
- Starter registry.yaml wired to the built-in reference hooks
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from rich.console import Console

from hookgov.config import GovernanceConfig

console = Console()


def _create_default_config() -> dict[str, Any]:
    data = GovernanceConfig().to_dict()
    # Paths are derived from the config file location on load
    for key in ("registry_path", "state_dir", "telemetry_path"):
        data.pop(key, None)
    return data


def _create_starter_registry() -> dict[str, Any]:
    return {
        "version": 1,
        "hooks": [
            {
                "id": "file-size-guard",
                "agent": "devops",
                "category": "critical",
                "triggers": ["pre-commit", "file-change"],
                "handler": "hookgov.builtin:FileSizeGuard",
                "cacheTTL": 60000,
                "config": {"max_bytes": 1000000},
                "description": "Block oversized files",
            },
            {
                "id": "payload-fields",
                "agent": "project-manager",
                "category": "valuable",
                "triggers": ["sprint-transition"],
                "handler": "hookgov.builtin:required_payload_fields",
                "config": {"fields": ["sprint_phase"]},
                "description": "Warn when sprint events are missing fields",
            },
            {
                "id": "marker-scan",
                "agent": "coder",
                "category": "enhancement",
                "triggers": ["file-change"],
                "handler": "hookgov.builtin:marker_scan",
                "cacheTTL": 300000,
                "conditions": {"if_file_matches": r"\.(py|js|ts|go)$"},
                "description": "Count TODO/FIXME markers",
            },
        ],
    }


def initialize_hookgov(config_path: Path) -> Path:
    """
    Initialize hookgov in the current repository.

    If `config_path` is a file path, it is used directly.
    Otherwise, `.hookgov/config.yaml` is created under `config_path`.
    """
    config_path = Path(config_path)
    if config_path.suffix in (".yaml", ".yml"):
        hookgov_dir = config_path.parent
    else:
        hookgov_dir = config_path / ".hookgov"
        config_path = hookgov_dir / "config.yaml"

    hookgov_dir.mkdir(parents=True, exist_ok=True)
    (hookgov_dir / "logs").mkdir(exist_ok=True)
    (hookgov_dir / "state").mkdir(exist_ok=True)

    if not config_path.exists():
        with open(config_path, "w") as f:
            yaml.dump(_create_default_config(), f, default_flow_style=False, sort_keys=False)
        console.print(f"  Created [cyan]{config_path}[/cyan]")

    registry_path = hookgov_dir / "registry.yaml"
    if not registry_path.exists():
        with open(registry_path, "w") as f:
            yaml.dump(_create_starter_registry(), f, default_flow_style=False, sort_keys=False)
        console.print(f"  Created [cyan]{registry_path}[/cyan]")

    console.print(f"\n[dim]Config:[/dim] {config_path}")
    console.print("[dim]Run:[/dim] hookgov dispatch pre-commit --file <path>")
    return config_path
