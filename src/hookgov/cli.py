"""
hookgov CLI - Dispatch lifecycle events and operate hook governance.

Defaults to `.hookgov/config.yaml`. Exit code of `dispatch` is 1 when the
verdict is `blocked`, 0 otherwise.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import structlog
from rich.console import Console
from rich.table import Table

from hookgov.aggregator import Report, Verdict
from hookgov.config import GovernanceConfig
from hookgov.errors import GovernanceTransitionError
from hookgov.framework import HookFramework
from hookgov.governor import performance_rating
from hookgov.telemetry import read_telemetry_events
from hookgov.types import Event, HookStatus

console = Console()

_STATUS_STYLE = {
    HookStatus.SUCCESS.value: "green",
    HookStatus.WARNING.value: "yellow",
    HookStatus.BLOCKED.value: "red",
    HookStatus.SKIPPED.value: "dim",
    HookStatus.ERROR.value: "magenta",
}


def configure_logging(level: str = "info", json_output: bool = False) -> None:
    """Configure structlog once for CLI use. Logs go to stderr."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _load_config(ctx: click.Context) -> GovernanceConfig:
    config = GovernanceConfig.load(ctx.obj["config_path"])
    # Command-line flags win over the config file
    configure_logging(
        ctx.obj.get("log_level") or config.logging.level,
        ctx.obj.get("log_json") or config.logging.json,
    )
    return config


def _framework(ctx: click.Context) -> HookFramework:
    return HookFramework(_load_config(ctx))


def _print_report(report: Report) -> None:
    table = Table(title=f"{report.event_type} ({report.profile}, budget {report.budget_ms}ms)")
    table.add_column("Hook", style="cyan")
    table.add_column("Status")
    table.add_column("Time", justify="right")
    table.add_column("Message")

    for result in report.results:
        style = _STATUS_STYLE.get(result.status.value, "white")
        status = f"[{style}]{result.status.value}[/{style}]"
        if result.cached:
            status += " [dim](cached)[/dim]"
        message = result.message
        if result.annotations:
            message = "\n".join([message, *(f"[dim]{a}[/dim]" for a in result.annotations)])
        table.add_row(result.hook_id, status, f"{result.duration_ms}ms", message)

    if report.results:
        console.print(table)

    for note in report.notes:
        console.print(f"[dim]{note}[/dim]")
    for event in report.governance_events:
        console.print(f"[yellow]⚠[/yellow] {event.hook_id}: {event.action.value} ({event.reason})")

    color = {
        Verdict.BLOCKED: "red",
        Verdict.WARNING: "yellow",
        Verdict.SUCCESS: "green",
        Verdict.SKIPPED: "dim",
    }[report.verdict]
    console.print(
        f"Verdict: [{color}]{report.verdict.value}[/{color}] in {report.duration_ms}ms"
    )


@click.group()
@click.version_option(version="0.1.0")
@click.option("--config", "-c", type=Path, help="Path to config file")
@click.option("--log-level", type=str, default=None, help="Log level (debug, info, warning)")
@click.option("--log-json", is_flag=True, help="Emit logs as JSON")
@click.pass_context
def main(
    ctx: click.Context, config: Path | None, log_level: str | None, log_json: bool
) -> None:
    """hookgov - Hook execution and performance governance."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config or Path(".hookgov/config.yaml")
    ctx.obj["log_level"] = log_level
    ctx.obj["log_json"] = log_json
    configure_logging(log_level or "info", log_json)


@main.command()
@click.option("--config", type=Path, help="Path to config file (default: .hookgov/config.yaml)")
@click.pass_context
def init(ctx: click.Context, config: Path | None) -> None:
    """Initialize hookgov in repo."""
    from hookgov.init import initialize_hookgov

    config_path = config or ctx.obj["config_path"]
    initialize_hookgov(config_path)
    console.print("[green]✓[/green] hookgov initialized")


@main.command()
@click.argument("event_type")
@click.option("--payload", type=str, help="Event payload as a JSON object")
@click.option("--file", "file_path", type=Path, help="File the event refers to")
@click.option("--profile", type=str, help="Profile to use for this dispatch")
@click.option("--force", is_flag=True, help="Run hooks even if governance disabled them")
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def dispatch(
    ctx: click.Context,
    event_type: str,
    payload: str | None,
    file_path: Path | None,
    profile: str | None,
    force: bool,
    as_json: bool,
) -> None:
    """Dispatch an event and print the verdict."""
    data: dict[str, Any] = {}
    if payload:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint="--payload") from e
        if not isinstance(data, dict):
            raise click.BadParameter("must be a JSON object", param_hint="--payload")

    if file_path is not None:
        data.setdefault("file_path", str(file_path))
        if file_path.is_file():
            data.setdefault("content_hash", hashlib.sha256(file_path.read_bytes()).hexdigest())

    with _framework(ctx) as framework:
        report = framework.dispatch(
            Event(type=event_type, payload=data), profile=profile, force_enabled=force
        )

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report)
    ctx.exit(report.exit_code)


@main.command()
@click.option("--event", "event_type", type=str, help="Only hooks triggered by this event")
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def hooks(ctx: click.Context, event_type: str | None, as_json: bool) -> None:
    """List registered hooks and their governance state."""
    with _framework(ctx) as framework:
        registry = framework.registry
        defs = registry.by_trigger(event_type) if event_type else registry.all()
        rows = [
            {**d.to_dict(), "state": framework.governor.state_of(d.id).value} for d in defs
        ]

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        console.print("[yellow]No hooks registered[/yellow]")
        return

    table = Table(title="Hooks")
    table.add_column("ID", style="cyan")
    table.add_column("Agent")
    table.add_column("Category")
    table.add_column("Triggers")
    table.add_column("Cache TTL", justify="right")
    table.add_column("State")
    for row in rows:
        state = row["state"]
        table.add_row(
            row["id"],
            row["agent"],
            row["category"],
            ", ".join(row["triggers"]),
            f"{row['cache_ttl_ms']}ms" if row["cache_ttl_ms"] else "-",
            f"[red]{state}[/red]" if state == "disabled" else f"[green]{state}[/green]",
        )
    console.print(table)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def profiles(ctx: click.Context, as_json: bool) -> None:
    """List profiles."""
    config = _load_config(ctx)
    data = config.to_dict()["profiles"]

    if as_json:
        click.echo(json.dumps({"active": config.profile, "profiles": data}, indent=2))
        return

    table = Table(title="Profiles")
    table.add_column("Name", style="cyan")
    table.add_column("Budget", justify="right")
    table.add_column("Categories")
    table.add_column("Description")
    for name, profile in data.items():
        marker = " [green]*[/green]" if name == config.profile else ""
        categories = ", ".join(profile["categories"])
        if profile["allow_list"] is not None:
            categories = "allow-list: " + (", ".join(profile["allow_list"]) or "(empty)")
        table.add_row(
            name + marker, f"{profile['budget_ms']}ms", categories, profile["description"]
        )
    console.print(table)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.option("--reset", is_flag=True, help="Clear recorded performance history")
@click.option("--top", type=int, default=5, help="Entries per ranking")
@click.pass_context
def perf(ctx: click.Context, as_json: bool, reset: bool, top: int) -> None:
    """Show performance report."""
    with _framework(ctx) as framework:
        if reset:
            framework.governor.reset()
            console.print("[green]✓[/green] Performance history cleared")
            return
        report = framework.performance_report(top=top)
        snapshot = framework.governor.snapshot()

    if as_json:
        click.echo(json.dumps({**report, "hooks": snapshot}, indent=2))
        return

    summary = report["summary"]
    console.print("\n[bold]Hook Performance[/bold]")
    console.print(f"Executions: {summary['total_executions']}")
    console.print(f"Average: {summary['avg_time_ms']}ms")
    console.print(f"Cache hits: {summary['cache_hits']}")
    console.print(f"Disabled: {summary['disabled']}")

    if snapshot:
        table = Table(title="Per Hook")
        table.add_column("Hook", style="cyan")
        table.add_column("Runs", justify="right")
        table.add_column("Avg", justify="right")
        table.add_column("P95", justify="right")
        table.add_column("Failures", justify="right")
        table.add_column("Rating")
        table.add_column("State")
        for hook_id, record in snapshot.items():
            table.add_row(
                hook_id,
                str(record["executions"]),
                f"{record['avg_duration_ms']}ms",
                f"{record['p95_duration_ms']}ms",
                str(record["failures"]),
                performance_rating(record["avg_duration_ms"]),
                record["state"],
            )
        console.print(table)

    for line in report["recommendations"]:
        console.print(f"[yellow]•[/yellow] {line}")


@main.command()
@click.argument("hook_id")
@click.pass_context
def reenable(ctx: click.Context, hook_id: str) -> None:
    """Re-enable a hook disabled by governance."""
    with _framework(ctx) as framework:
        try:
            framework.reenable(hook_id)
        except GovernanceTransitionError as e:
            console.print(f"[red]✗[/red] {e}")
            ctx.exit(2)
    console.print(f"[green]✓[/green] Re-enabled `{hook_id}`")


@main.command()
@click.argument("hook_id")
@click.option("--reason", type=str, default="manually disabled", help="Why it is disabled")
@click.pass_context
def disable(ctx: click.Context, hook_id: str, reason: str) -> None:
    """Disable a hook until it is re-enabled."""
    with _framework(ctx) as framework:
        try:
            framework.disable(hook_id, reason)
        except GovernanceTransitionError as e:
            console.print(f"[red]✗[/red] {e}")
            ctx.exit(2)
    console.print(f"[green]✓[/green] Disabled `{hook_id}` ({reason})")


@main.command()
@click.option("--limit", type=int, default=20, help="Last N events")
@click.option("--hook", "hook_id", type=str, help="Only events involving this hook")
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def history(ctx: click.Context, limit: int, hook_id: str | None, as_json: bool) -> None:
    """Show dispatch and governance history."""
    config = _load_config(ctx)
    if config.telemetry_path is None:
        console.print("[dim]Telemetry is disabled in config.[/dim]")
        return

    events = read_telemetry_events(config.telemetry_path)
    if hook_id:
        events = [
            e
            for e in events
            if e.get("hook_id") == hook_id
            or any(r.get("hook_id") == hook_id for r in e.get("results") or [])
        ]
    events = events[-limit:] if limit else events

    if as_json:
        click.echo(json.dumps(events, indent=2))
        return

    if not events:
        console.print("[dim]No history yet.[/dim]")
        return

    table = Table(title="History")
    table.add_column("Time", style="dim")
    table.add_column("Type")
    table.add_column("Detail")
    for event in events:
        if event.get("type") == "governance":
            detail = f"{event.get('hook_id')}: {event.get('action')} ({event.get('reason')})"
        else:
            detail = (
                f"{event.get('event_type')} [{event.get('profile')}] -> "
                f"{event.get('verdict')} in {event.get('duration_ms')}ms"
            )
        table.add_row(str(event.get("timestamp", "")), str(event.get("type")), detail)
    console.print(table)


if __name__ == "__main__":
    main()
