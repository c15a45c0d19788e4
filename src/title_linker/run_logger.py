# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Link-run journal for JSONL output.

Records one event per document outcome so a batch can be audited after the
fact, independently of the review log kept inside the vault:
- JSONL format (one JSON object per line)
- Real-time logging with immediate flush, so interrupted batches keep a record
- Date-based file rotation
- Run statistics for the final summary

Log Location: ~/.title_match_linker/runs/<DATE>-<SESSION-ID>.jsonl
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from title_linker.log_config import build_log_filename, get_current_utc_date, get_runs_dir

logger = logging.getLogger(__name__)

# Fallback file name when no session id is given
DEFAULT_RUN_LOG_FILE = "runs.jsonl"


class RunEventType:
    """Types of journal events.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    DOCUMENT_LINKED = "document_linked"
    DOCUMENT_SKIPPED = "document_skipped"
    DOCUMENT_FAILED = "document_failed"
    DOCUMENT_REVERTED = "document_reverted"
    DOCUMENT_ACCEPTED = "document_accepted"
    BATCH_COMPLETED = "batch_completed"


@dataclass
class RunEvent:
    """A single journal event.

    Attributes:
        timestamp: ISO 8601 timestamp of the event.
        event_type: RunEventType value.
        path: Document path, empty for batch-level events.
        links_added: Links added by this event (0 when not applicable).
        detail: Free-form reason or error message.
    """

    timestamp: str
    event_type: str
    path: str
    links_added: int = 0
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event_type": self.event_type,
            "path": self.path,
            "links_added": self.links_added,
            "detail": self.detail,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunEvent":
        return cls(
            timestamp=data["timestamp"],
            event_type=data["event_type"],
            path=data["path"],
            links_added=data.get("links_added", 0),
            detail=data.get("detail", ""),
        )

    @classmethod
    def create(cls, event_type: str, path: str = "", links_added: int = 0, detail: str = "") -> "RunEvent":
        """Factory method to create a RunEvent with auto-generated timestamp."""
        return cls(
            timestamp=datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            event_type=event_type,
            path=path,
            links_added=links_added,
            detail=detail,
        )


@dataclass
class RunStatistics:
    """Aggregated journal data for one session."""

    total_events: int = 0
    by_event_type: Dict[str, int] = field(default_factory=dict)
    total_links_added: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_events": self.total_events,
            "by_event_type": self.by_event_type,
            "total_links_added": self.total_links_added,
        }


class RunLogger:
    """Writes RunEvents to a JSONL file.

    Usage:
        with RunLogger(session_id="abc-123") as journal:
            journal.log_event(RunEvent.create(RunEventType.DOCUMENT_LINKED, "a.md", 3))
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        data_root: Optional[Path] = None,
        enabled: bool = True,
    ) -> None:
        """Initialize the run logger.

        Args:
            session_id: Session ID for the log filename. If None, a static
                filename is used without date rotation.
            data_root: Root directory for logs. Events go to {data_root}/runs/.
            enabled: When False, events are counted but nothing is written.
        """
        self._log_dir = get_runs_dir(data_root)
        self._session_id = session_id
        self._enabled = enabled
        if session_id is not None:
            self._log_file = build_log_filename(session_id)
            self._use_date_rotation = True
        else:
            self._log_file = DEFAULT_RUN_LOG_FILE
            self._use_date_rotation = False

        self._current_date = get_current_utc_date()
        self._event_count = 0
        self._by_event_type: Counter[str] = Counter()
        self._total_links = 0
        self._file_handle: Optional[TextIO] = None

    def _check_date_rotation(self) -> None:
        if not self._use_date_rotation:
            return

        current_date = get_current_utc_date()
        if current_date != self._current_date:
            if self._file_handle is not None:
                self._file_handle.close()
                self._file_handle = None
                logger.debug(f"Rotated run log: {self._current_date} -> {current_date}")
            self._current_date = current_date
            self._log_file = build_log_filename(self._session_id)  # type: ignore[arg-type]

    def _open_file(self) -> TextIO:
        self._check_date_rotation()

        if self._file_handle is None:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            log_path = self.get_log_path()
            # Handle lifecycle is managed by close()
            self._file_handle = open(log_path, "a", encoding="utf-8")  # noqa: SIM115
            logger.debug(f"Opened run log file: {log_path}")
        return self._file_handle

    def log_event(self, event: RunEvent) -> None:
        """Log a single event and flush it to disk.

        Journal write errors are logged and do not interrupt the caller.
        """
        self._event_count += 1
        self._by_event_type[event.event_type] += 1
        if event.event_type == RunEventType.DOCUMENT_LINKED:
            self._total_links += event.links_added

        if not self._enabled:
            return

        try:
            file_handle = self._open_file()
            file_handle.write(json.dumps(event.to_dict(), separators=(",", ":")) + "\n")
            file_handle.flush()
        except OSError as e:
            logger.warning(f"Unable to write run log {self.get_log_path()}: {e}")

    def get_statistics(self) -> RunStatistics:
        return RunStatistics(
            total_events=self._event_count,
            by_event_type=dict(self._by_event_type),
            total_links_added=self._total_links,
        )

    def get_log_path(self) -> Path:
        return self._log_dir / self._log_file

    def close(self) -> None:
        """Close the log file handle."""
        if self._file_handle is not None:
            self._file_handle.close()
            self._file_handle = None
            logger.debug(f"Closed run log file: {self.get_log_path()}")

    def __enter__(self) -> "RunLogger":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def read_run_events(log_path: Path, path: Optional[str] = None) -> List[RunEvent]:
    """Read journal events in chronological order.

    Malformed lines are skipped with a warning.

    Args:
        log_path: Path to a runs JSONL file.
        path: If provided, only events for this document are returned.

    Returns:
        List of RunEvent objects. Empty if the file does not exist.
    """
    if not log_path.exists():
        return []

    events: List[RunEvent] = []
    with open(log_path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                event = RunEvent.from_dict(json.loads(line))
            except (json.JSONDecodeError, KeyError) as e:
                logger.warning(f"Skipping malformed run log entry: {e}")
                continue
            if path is None or event.path == path:
                events.append(event)
    return events
