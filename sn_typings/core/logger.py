"""
Generation Logger

Console logging, per-record diagnostics and run summaries for generation runs.
"""

import csv
import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from rich.console import Console


class LogLevel(Enum):
    """Log level for entries."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    SUCCESS = "SUCCESS"


LEVEL_ORDER = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.SUCCESS: 25,
    LogLevel.WARNING: 30,
    LogLevel.ERROR: 40,
}


@dataclass
class DiagnosticEntry:
    """A single diagnostic about a fetched record."""

    timestamp: str
    table: str
    action: str  # loaded, skipped, failed, warning
    message: str = ""
    element: str | None = None
    record: dict[str, Any] = field(default_factory=dict)

    @property
    def is_failure(self) -> bool:
        return self.action in ("skipped", "failed")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp,
            "table": self.table,
            "element": self.element,
            "action": self.action,
            "message": self.message,
            "record": self.record,
        }


@dataclass
class RunSummary:
    """Summary of a generation run."""

    source: str
    started_at: datetime
    completed_at: datetime | None = None

    mode: str = "global"
    output: str | None = None

    tables_requested: int = 0
    tables_loaded: int = 0
    tables_rendered: int = 0
    tables_failed: int = 0
    records_skipped: int = 0
    remote_requests: int = 0

    failed_tables: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def duration(self) -> str:
        if not self.completed_at:
            return "In progress"
        delta = self.completed_at - self.started_at
        minutes = int(delta.total_seconds() // 60)
        seconds = int(delta.total_seconds() % 60)
        return f"{minutes}m {seconds}s"

    def to_text(self) -> str:
        """Generate human-readable summary."""
        status = "CANCELLED" if self.cancelled else "COMPLETED"
        lines = [
            "=" * 60,
            f"GENERATION SUMMARY: {self.source}",
            "=" * 60,
            f"{'Status:':<20} {status}",
            f"{'Mode:':<20} {self.mode}",
            f"{'Output:':<20} {self.output or '-'}",
            f"{'Started:':<20} {self.started_at.strftime('%Y-%m-%d %H:%M:%S')}",
            f"{'Duration:':<20} {self.duration}",
            "",
            "TABLE STATISTICS",
            "-" * 40,
            f"{'Requested:':<20} {self.tables_requested:,}",
            f"{'Loaded:':<20} {self.tables_loaded:,}",
            f"{'Rendered:':<20} {self.tables_rendered:,}",
            f"{'Failed:':<20} {self.tables_failed:,}",
            f"{'Records skipped:':<20} {self.records_skipped:,}",
            f"{'Remote requests:':<20} {self.remote_requests:,}",
        ]

        if self.failed_tables:
            lines.extend([
                "",
                "FAILED TABLES",
                "-" * 40,
            ])
            for name in self.failed_tables:
                lines.append(f"  • {name}")

        lines.append("=" * 60)
        return "\n".join(lines)


class GenerationLogger:
    """
    Logger for generation runs.

    Features:
    - Leveled console output with Rich
    - Per-record diagnostics
    - JSON and CSV export
    - Human-readable summary report

    Example:
        >>> logger = GenerationLogger("./logs")
        >>> logger.start_run("dev1234.service-now.com", mode="global")
        >>> logger.log_skipped("incident", "element record is missing sys_id")
        >>> summary = logger.end_run()
    """

    def __init__(
        self,
        output_dir: str | Path = "./logs",
        console_output: bool = True,
        level: str = "INFO",
        console: Console | None = None,
    ):
        """
        Initialize logger.

        Args:
            output_dir: Directory for exported diagnostics
            console_output: Whether to print to console
            level: Minimum level printed to console
            console: Rich console to print to
        """
        self.output_dir = Path(output_dir)
        self.console_output = console_output
        self.level = LogLevel(level.upper())
        self._console = console or Console(stderr=True)

        self._entries: list[DiagnosticEntry] = []
        self._summary: RunSummary | None = None
        self._run_name: str | None = None
        self._lock = threading.Lock()

    @property
    def summary(self) -> RunSummary | None:
        return self._summary

    @property
    def entries(self) -> list[DiagnosticEntry]:
        return list(self._entries)

    def start_run(self, source: str, mode: str = "global", output: str | None = None) -> RunSummary:
        """
        Start a new generation session.

        Args:
            source: Remote instance the schema is read from
            mode: Render mode
            output: Destination file
        """
        self._entries = []
        self._run_name = f"sn_typings_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        self._summary = RunSummary(
            source=source,
            started_at=datetime.now(),
            mode=mode,
            output=output,
        )
        self._log_message(LogLevel.INFO, f"Reading schema from {source} ({mode} mode)")
        return self._summary

    def log_entry(self, entry: DiagnosticEntry) -> None:
        with self._lock:
            self._entries.append(entry)
            if self._summary and entry.action == "skipped":
                self._summary.records_skipped += 1

    def log_skipped(
        self,
        table: str,
        message: str,
        element: str | None = None,
        record: dict[str, Any] | None = None,
    ) -> None:
        """Record a fetched row that was skipped."""
        self.log_entry(DiagnosticEntry(
            timestamp=datetime.now().isoformat(),
            table=table,
            element=element,
            action="skipped",
            message=message,
            record=record or {},
        ))
        target = f"{table}.{element}" if element else table
        self._log_message(LogLevel.WARNING, f"Skipped {target}: {message}")

    def log_table_loaded(self, table: str, element_count: int) -> None:
        if self._summary:
            self._summary.tables_loaded += 1
        self.log_entry(DiagnosticEntry(
            timestamp=datetime.now().isoformat(),
            table=table,
            action="loaded",
            message=f"{element_count} element(s)",
        ))
        self._log_message(LogLevel.DEBUG, f"Loaded {table} ({element_count} elements)")

    def log_table_failed(self, table: str, message: str) -> None:
        if self._summary:
            self._summary.tables_failed += 1
            if table not in self._summary.failed_tables:
                self._summary.failed_tables.append(table)
        self.log_entry(DiagnosticEntry(
            timestamp=datetime.now().isoformat(),
            table=table,
            action="failed",
            message=message,
        ))
        self._log_message(LogLevel.ERROR, f"Table {table} failed: {message}")

    def log_request(self, table: str, query: str | None = None) -> None:
        with self._lock:
            if self._summary:
                self._summary.remote_requests += 1
        self._log_message(LogLevel.DEBUG, f"GET {table}" + (f" [{query}]" if query else ""))

    def log_error(self, message: str) -> None:
        """Log an error message."""
        self._log_message(LogLevel.ERROR, message)

    def log_warning(self, message: str) -> None:
        """Log a warning message."""
        self._log_message(LogLevel.WARNING, message)

    def log_info(self, message: str) -> None:
        """Log an info message."""
        self._log_message(LogLevel.INFO, message)

    def log_debug(self, message: str) -> None:
        self._log_message(LogLevel.DEBUG, message)

    def log_success(self, message: str) -> None:
        self._log_message(LogLevel.SUCCESS, message)

    def end_run(self, export: bool = False) -> RunSummary:
        """
        End the session, optionally exporting diagnostics.

        Returns:
            Summary report
        """
        if not self._summary:
            raise RuntimeError("No generation run in progress")

        self._summary.completed_at = datetime.now()

        if export:
            self.export_json()
            self.export_csv()

        if self.console_output:
            self._console.print(self._summary.to_text())

        return self._summary

    def export_json(self, filepath: Path | None = None) -> Path:
        """
        Export diagnostics to a JSON file.

        Args:
            filepath: Custom output path (uses default if None)

        Returns:
            Path to exported file
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = filepath or (self.output_dir / f"{self._run_name or 'sn_typings'}.json")

        data = {
            "source": self._summary.source if self._summary else None,
            "started_at": self._summary.started_at.isoformat() if self._summary else None,
            "completed_at": self._summary.completed_at.isoformat() if self._summary and self._summary.completed_at else None,
            "entries": [e.to_dict() for e in self._entries],
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return output_path

    def export_csv(self, filepath: Path | None = None) -> Path:
        """
        Export diagnostics to a CSV file.

        Args:
            filepath: Custom output path

        Returns:
            Path to exported file
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = filepath or (self.output_dir / f"{self._run_name or 'sn_typings'}.csv")

        if not self._entries:
            return output_path

        fieldnames = ["timestamp", "table", "element", "action", "message"]

        with open(output_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
            writer.writeheader()
            for entry in self._entries:
                writer.writerow(entry.to_dict())

        return output_path

    def get_failures(self) -> list[DiagnosticEntry]:
        """Get all skipped or failed entries."""
        return [e for e in self._entries if e.is_failure]

    def _log_message(self, level: LogLevel, message: str) -> None:
        """Log a message to console."""
        if not self.console_output or LEVEL_ORDER[level] < LEVEL_ORDER[self.level]:
            return

        timestamp = datetime.now().strftime("%H:%M:%S")
        colors = {
            LogLevel.DEBUG: "dim",
            LogLevel.INFO: "blue",
            LogLevel.WARNING: "yellow",
            LogLevel.ERROR: "red bold",
            LogLevel.SUCCESS: "green bold",
        }
        color = colors.get(level, "white")
        self._console.print(f"[dim]{timestamp}[/] [{color}]{level.value}[/] {message}", highlight=False)
