"""
Run status model and the status/log sink.

RunStatus is what the controller reports to observers. RunLog is the sink the
controller and the handlers emit human-readable events to: each entry is
written through structlog and kept in a bounded in-memory buffer that a
dashboard or CLI can read or subscribe to.
"""

from collections import deque
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from core.logger import get_structured_logger


class WorkflowStep(str, Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    NAVIGATING = "navigating"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class RunStatus:
    """Snapshot of a run. Replaced, never mutated, on every status update."""

    is_running: bool = False
    current_step: WorkflowStep = WorkflowStep.IDLE
    items_processed: int = 0
    items_succeeded: int = 0
    item_limit: int = 0
    last_error: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def updated(self, **changes: Any) -> "RunStatus":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["current_step"] = self.current_step.value
        data["start_time"] = self.start_time.isoformat() if self.start_time else None
        data["end_time"] = self.end_time.isoformat() if self.end_time else None
        return data


@dataclass(frozen=True)
class ProgressInfo:
    connections_processed: int
    connections_successful: int
    max_connections: int
    remaining_connections: int
    percent_complete: float


@dataclass(frozen=True)
class RunSummary:
    start_time: datetime
    end_time: datetime
    duration_ms: int
    total_processed: int
    successful: int
    failed: int
    success_rate: float
    errors: List[str] = field(default_factory=list)


def build_progress(processed: int, successful: int, max_connections: int) -> ProgressInfo:
    percent = (processed / max_connections) * 100 if max_connections > 0 else 0.0
    return ProgressInfo(
        connections_processed=processed,
        connections_successful=successful,
        max_connections=max_connections,
        remaining_connections=max(0, max_connections - processed),
        percent_complete=min(100.0, max(0.0, percent)),
    )


def build_summary(
    start_time: datetime,
    end_time: datetime,
    processed: int,
    successful: int,
    errors: Optional[List[str]] = None,
) -> RunSummary:
    duration_ms = int((end_time - start_time).total_seconds() * 1000)
    return RunSummary(
        start_time=start_time,
        end_time=end_time,
        duration_ms=duration_ms,
        total_processed=processed,
        successful=successful,
        failed=processed - successful,
        success_rate=(successful / processed) * 100 if processed > 0 else 0.0,
        errors=list(errors or []),
    )


def format_duration(milliseconds: float) -> str:
    """Render a duration as "45s", "1m 30s" or "1h 5m"."""
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def format_connection_stats(successful: int, total: int) -> str:
    rate = (successful / total) * 100 if total > 0 else 0.0
    return f"{successful}/{total} ({rate:.1f}%)"


LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    level: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
            "context": dict(self.context),
        }


class RunLog:
    """Status/log sink shared by the controller and the handlers."""

    def __init__(self, max_entries: int = 1000, logger=None):
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)
        self._listeners: List[Callable[[LogEntry], None]] = []
        self.logger = logger or get_structured_logger("automation")

    def emit(self, level: str, message: str, context: Optional[Dict[str, Any]] = None) -> LogEntry:
        level = level if level in LOG_LEVELS else "info"
        entry = LogEntry(timestamp=datetime.now(), level=level, message=message, context=dict(context or {}))
        self._entries.append(entry)

        getattr(self.logger, level)(message, **entry.context)

        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as e:
                self.logger.warning("log_listener_failed", error=str(e))
        return entry

    def debug(self, message: str, **context: Any) -> LogEntry:
        return self.emit("debug", message, context)

    def info(self, message: str, **context: Any) -> LogEntry:
        return self.emit("info", message, context)

    def warning(self, message: str, **context: Any) -> LogEntry:
        return self.emit("warning", message, context)

    def error(self, message: str, **context: Any) -> LogEntry:
        return self.emit("error", message, context)

    def action(self, message: str, **context: Any) -> LogEntry:
        return self.emit("info", f"Action: {message}", {"type": "action", **context})

    def progress(self, progress: ProgressInfo) -> LogEntry:
        return self.emit(
            "info",
            f"Progress: {progress.connections_processed}/{progress.max_connections} processed, "
            f"{progress.connections_successful} successful, {progress.remaining_connections} remaining "
            f"({progress.percent_complete:.1f}% complete)",
            {"type": "progress", **asdict(progress)},
        )

    def summary(self, summary: RunSummary) -> LogEntry:
        return self.emit(
            "info",
            f"Automation completed: {format_connection_stats(summary.successful, summary.total_processed)} "
            f"connections successful in {format_duration(summary.duration_ms)}",
            {
                "type": "summary",
                "duration_ms": summary.duration_ms,
                "total_processed": summary.total_processed,
                "successful": summary.successful,
                "failed": summary.failed,
                "success_rate": summary.success_rate,
                "errors": summary.errors,
            },
        )

    def entries(self, level: Optional[str] = None, limit: Optional[int] = None) -> List[LogEntry]:
        result = [e for e in self._entries if level is None or e.level == level]
        if limit is not None:
            result = result[-limit:] if limit > 0 else []
        return result

    def clear(self) -> None:
        self._entries.clear()

    def subscribe(self, listener: Callable[[LogEntry], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
