"""
TaskPanel Error Hierarchy — Structured exceptions scoped to one interaction.

Every error carries the session_id / task_id it was raised under so that the
JSONL event log can correlate a failure with the view that triggered it.

Hierarchy:
    TaskPanelError
    ├── TaskPanelValidationError     — Client-side validation failed (no request sent)
    ├── TaskPanelRequestError        — Network failure, non-2xx status or malformed body
    ├── TaskPanelStaleResponseError  — Response targets a task no longer displayed
    ├── TaskPanelMutationError       — Illegal pending-mutation state transition
    ├── TaskPanelPermissionError     — Side-panel action not enabled for this user
    └── TaskPanelConfigError         — Configuration error
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class TaskPanelError(Exception):
    """
    Base error for all TaskPanel failures.
    All context is serializable to JSON.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.session_id: Optional[str] = context.get("session_id")
        self.task_id: Optional[str] = context.get("task_id")
        self.operation: Optional[str] = context.get("operation")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for the event log."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "session_id": self.session_id,
            "task_id": self.task_id,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("session_id", "task_id", "operation")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.task_id:
            parts.append(f"task_id={self.task_id}")
        return " | ".join(parts)


class TaskPanelValidationError(TaskPanelError):
    """
    Advisory client-side validation failed before dispatch.
    Includes the offending field and the list of problems found.
    """

    def __init__(self, message: str, **context: Any):
        self.field: Optional[str] = context.get("field")
        self.validation_errors: List[str] = context.get("validation_errors") or [message]
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field"] = self.field
        d["validation_errors"] = self.validation_errors
        return d


class TaskPanelRequestError(TaskPanelError):
    """Backend round trip failed: network error, non-2xx status or malformed body."""

    def __init__(self, message: str, **context: Any):
        self.status_code: Optional[int] = context.get("status_code")
        self.method: Optional[str] = context.get("method")
        self.url: Optional[str] = context.get("url")
        self.response_body: Optional[Any] = context.get("response_body")
        super().__init__(message, **context)

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["status_code"] = self.status_code
        d["method"] = self.method
        d["url"] = self.url
        return d


class TaskPanelStaleResponseError(TaskPanelError):
    """A response arrived for a task that is no longer the active view."""

    def __init__(self, message: str, **context: Any):
        self.active_task_id: Optional[str] = context.get("active_task_id")
        super().__init__(message, **context)


class TaskPanelMutationError(TaskPanelError):
    """Pending mutation was driven through an illegal state transition."""

    def __init__(self, message: str, **context: Any):
        self.mutation_id: Optional[str] = context.get("mutation_id")
        self.state: Optional[str] = context.get("state")
        super().__init__(message, **context)


class TaskPanelPermissionError(TaskPanelError):
    """Action is not enabled by the caller-supplied permission flags."""

    def __init__(self, message: str, **context: Any):
        self.action: Optional[str] = context.get("action")
        super().__init__(message, **context)


class TaskPanelConfigError(TaskPanelError):
    """Configuration error — invalid taskpanel.yaml."""
    pass
