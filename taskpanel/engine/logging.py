"""
TaskPanel Logging — stdlib logger setup plus a structured JSON event log.

Implements:
- configure_logging: applies LoggingConfig to the "taskpanel" logger tree
- EventLog: per-category JSONL files (daily files) or an in-memory buffer
- Log entry builders for requests, mutations and view events

Files: {directory}/{category}/{YYYY-MM-DD}.jsonl
"""

from __future__ import annotations

import json
import logging
from collections import deque
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from taskpanel.engine.config import LoggingConfig

logger = logging.getLogger("taskpanel.engine.logging")

CATEGORIES = ("requests", "mutations", "views")


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """Apply the configured level to the package logger and return it."""
    root = logging.getLogger("taskpanel")
    root.setLevel(getattr(logging, config.level, logging.INFO))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root.addHandler(handler)
    return root


class LogEntry:
    """A structured log entry destined for a specific category."""

    __slots__ = ("category", "data")

    def __init__(self, category: str, data: Dict[str, Any]):
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class EventLog:
    """
    Writes structured JSON entries per category.

    With a directory, entries are appended to daily JSONL files; without one
    they are kept in memory, newest `memory_limit` entries per category, which
    is what tests and short-lived CLI runs use.
    """

    def __init__(
        self,
        directory: Optional[str] = None,
        enabled: bool = True,
        memory_limit: int = 1000,
    ):
        self._dir = Path(directory) if directory else None
        self._enabled = enabled
        self._memory: Dict[str, Deque[Dict[str, Any]]] = {
            cat: deque(maxlen=memory_limit) for cat in CATEGORIES
        }
        if self._dir is not None:
            for cat in CATEGORIES:
                (self._dir / cat).mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, config: LoggingConfig) -> "EventLog":
        return cls(
            directory=config.directory,
            enabled=config.enabled,
            memory_limit=config.memory_limit,
        )

    @property
    def directory(self) -> Optional[Path]:
        return self._dir

    def write(self, entry: LogEntry) -> None:
        """Write a single entry."""
        if not self._enabled:
            return
        if entry.category not in CATEGORIES:
            logger.warning("Unknown log category '%s' — entry dropped", entry.category)
            return
        if self._dir is None:
            self._memory[entry.category].append(entry.data)
            return
        with open(self._resolve_path(entry.category), "a", encoding="utf-8") as f:
            f.write(entry.to_json())
            f.write("\n")

    def _resolve_path(self, category: str) -> Path:
        return self._dir / category / f"{date.today().isoformat()}.jsonl"

    def query(
        self,
        category: str,
        *,
        filters: Optional[Dict[str, Any]] = None,
        days: int = 7,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Read entries back, newest first.

        Args:
            category: One of CATEGORIES.
            filters: Only entries matching ALL key/value pairs are returned.
            days: How many daily files to scan (file mode only).
            limit: Max number of entries to return.
        """
        if self._dir is None:
            source = list(self._memory.get(category, []))
        else:
            source = []
            start = date.today() - timedelta(days=days)
            current = date.today()
            while current >= start:
                path = self._dir / category / f"{current.isoformat()}.jsonl"
                if path.exists():
                    # Older days go first so the final reverse yields newest first
                    source = self._read_jsonl(path) + source
                current -= timedelta(days=1)

        if filters:
            source = [d for d in source if all(d.get(k) == v for k, v in filters.items())]
        source.reverse()
        return source[:limit]

    @staticmethod
    def _read_jsonl(path: Path) -> List[Dict[str, Any]]:
        entries: List[Dict[str, Any]] = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(json.loads(line))
                    except json.JSONDecodeError:
                        continue
        except OSError as exc:
            logger.warning("Could not read log file %s: %s", path, exc)
        return entries

    def clear(self) -> None:
        """Drop in-memory entries."""
        for entries in self._memory.values():
            entries.clear()


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    session_id: Optional[str] = None,
    task_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    if session_id:
        entry["session_id"] = session_id
    if task_id:
        entry["task_id"] = task_id
    entry.update(extra)
    return entry


def log_request(
    method: str,
    url: str,
    status_code: Optional[int],
    duration_ms: float,
    success: bool,
    session_id: Optional[str] = None,
    operation: Optional[str] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a backend request log entry."""
    data = _base_entry(
        event="backend_request",
        level="INFO" if success else "ERROR",
        session_id=session_id,
        method=method,
        url=url,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        success=success,
    )
    if operation:
        data["operation"] = operation
    if error:
        data["error"] = error
    return LogEntry("requests", data)


def log_mutation_event(
    event: str,
    mutation_id: str,
    name: str,
    keys: List[str],
    session_id: Optional[str] = None,
    task_id: Optional[str] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a mutation lifecycle entry (pending/committed/rolled_back/stale)."""
    data = _base_entry(
        event=f"mutation_{event}",
        level="ERROR" if error else "INFO",
        session_id=session_id,
        task_id=task_id,
        mutation_id=mutation_id,
        mutation=name,
        keys=keys,
    )
    if error:
        data["error"] = error
    return LogEntry("mutations", data)


def log_view_event(
    event: str,
    session_id: Optional[str] = None,
    task_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build a view entry (task opened/closed, stale response discarded)."""
    data = _base_entry(
        event=event,
        level="INFO",
        session_id=session_id,
        task_id=task_id,
    )
    if details:
        data["details"] = details
    return LogEntry("views", data)
