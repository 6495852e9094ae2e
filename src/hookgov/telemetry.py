"""
Telemetry for dispatch and governance observability.

Reports and governance transitions are appended to a JSONL file, one
event per line, so the history can be tailed or read back by the CLI.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import structlog

if TYPE_CHECKING:
    from hookgov.aggregator import Report
    from hookgov.governor import GovernanceEvent

logger = structlog.get_logger()

EventType = Literal["dispatch", "governance"]


def _utc_now() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class TelemetryWriter:
    """
    Thread-safe JSONL writer for hookgov telemetry events.

    Concurrent dispatches share one writer; each event is written and
    flushed under a lock so lines never interleave.
    """

    def __init__(self, telemetry_path: Path) -> None:
        """
        Initialize telemetry writer.

        Args:
            telemetry_path: Path to telemetry.jsonl file
        """
        self.path = Path(telemetry_path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._file: Any = None
        self._open()

    def _open(self) -> None:
        """Open the telemetry file for appending."""
        try:
            self._file = open(self.path, "a", encoding="utf-8", buffering=1)
        except OSError as e:
            logger.error("telemetry_open_failed", path=str(self.path), error=str(e))

    def emit(self, event_type: EventType, data: dict[str, Any] | None = None) -> None:
        """
        Emit a telemetry event.

        Args:
            event_type: Type of event
            data: Additional event data
        """
        event = {
            "type": event_type,
            "timestamp": _utc_now(),
            **(data or {}),
        }

        with self._lock:
            if self._file and not self._file.closed:
                try:
                    self._file.write(json.dumps(event, default=str) + "\n")
                    self._file.flush()
                except (OSError, TypeError, ValueError) as e:
                    logger.error("telemetry_write_failed", event_type=event_type, error=str(e))

    def dispatch(self, report: Report) -> None:
        """Emit a dispatch report."""
        self.emit("dispatch", report.to_dict())

    def governance(self, event: GovernanceEvent) -> None:
        """Emit a governance transition."""
        self.emit("governance", event.to_dict())

    def close(self) -> None:
        """Close the telemetry file."""
        with self._lock:
            if self._file and not self._file.closed:
                try:
                    self._file.close()
                except OSError as e:
                    logger.error("telemetry_close_failed", error=str(e))

    def __enter__(self) -> TelemetryWriter:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()


def read_telemetry_events(
    telemetry_path: Path,
    offset: int = 0,
    limit: int | None = None,
    event_type: EventType | None = None,
) -> list[dict[str, Any]]:
    """
    Read telemetry events from JSONL file.

    Args:
        telemetry_path: Path to telemetry.jsonl file
        offset: Number of lines to skip from start
        limit: Maximum number of events to return
        event_type: Only return events of this type

    Returns:
        List of telemetry events
    """
    telemetry_path = Path(telemetry_path)
    if not telemetry_path.exists():
        return []

    events: list[dict[str, Any]] = []

    try:
        with open(telemetry_path, encoding="utf-8") as f:
            for i, line in enumerate(f):
                if i < offset:
                    continue
                if limit and len(events) >= limit:
                    break
                if not line.strip():
                    continue

                try:
                    event = json.loads(line.strip())
                except json.JSONDecodeError as e:
                    logger.warning("telemetry_parse_failed", line_num=i, error=str(e))
                    continue

                if event_type and event.get("type") != event_type:
                    continue
                events.append(event)

    except OSError as e:
        logger.error("telemetry_read_failed", path=str(telemetry_path), error=str(e))

    return events
