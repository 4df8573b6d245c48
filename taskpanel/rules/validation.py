"""
Client-side advisory validation.

Runs before a request is dispatched so obviously bad input never reaches the
network. The backend stays the source of truth; passing here guarantees
nothing about acceptance.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional, Sequence

from taskpanel.engine.errors import TaskPanelValidationError
from taskpanel.records.collaborator import CollaboratorRole
from taskpanel.records.task import TaskPriority, TaskStatus

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

TASK_FIELDS = ("title", "description", "status", "priority", "due_date", "assignee", "completed_at")
SUBTASK_FIELDS = ("title", "description", "completed")

# Mirrors the max_length constraints on Task.title, Subtask.title and Tag.name
TITLE_MAX_LENGTH = 500
TAG_NAME_MAX_LENGTH = 100


def require_text(
    value: Optional[str],
    field: str,
    label: Optional[str] = None,
    max_length: Optional[int] = None,
    **context: Any,
) -> str:
    """Return value stripped, or raise if it is missing, blank or too long."""
    label = label or field.capitalize()
    if value is None or not value.strip():
        raise TaskPanelValidationError(f"{label} is required", field=field, **context)
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise TaskPanelValidationError(
            f"{label} must be at most {max_length} characters",
            field=field,
            **context,
        )
    return value


def require_id(value: Optional[str], field: str, **context: Any) -> str:
    if not value:
        raise TaskPanelValidationError(f"{field} is required", field=field, **context)
    return value


def require_choice(value: Any, choices: Iterable[Any], field: str, **context: Any) -> str:
    allowed = [getattr(c, "value", c) for c in choices]
    raw = getattr(value, "value", value)
    if raw not in allowed:
        raise TaskPanelValidationError(
            f"Invalid {field} '{raw}'. Must be one of: {', '.join(allowed)}",
            field=field,
            **context,
        )
    return raw


def validate_role(role: Any, **context: Any) -> str:
    return require_choice(role, CollaboratorRole, "role", **context)


def validate_status(status: Any, **context: Any) -> str:
    return require_choice(status, TaskStatus, "status", **context)


def validate_priority(priority: Any, **context: Any) -> str:
    return require_choice(priority, TaskPriority, "priority", **context)


def validate_color(color: Optional[str], **context: Any) -> Optional[str]:
    if color is not None and not _HEX_COLOR.match(color):
        raise TaskPanelValidationError(
            f"Invalid color '{color}'. Expected #RRGGBB",
            field="color",
            **context,
        )
    return color


def validate_pagination(limit: int, offset: int, **context: Any) -> None:
    problems = []
    if limit <= 0:
        problems.append(f"limit must be positive, got {limit}")
    if offset < 0:
        problems.append(f"offset must not be negative, got {offset}")
    if problems:
        raise TaskPanelValidationError(
            "; ".join(problems),
            field="limit" if limit <= 0 else "offset",
            validation_errors=problems,
            **context,
        )


def require_changes(changes: dict, allowed: Sequence[str], **context: Any) -> dict:
    """Drop unset keys and reject unknown ones; at least one change must remain."""
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise TaskPanelValidationError(
            f"Unknown field(s): {', '.join(unknown)}",
            field=unknown[0],
            validation_errors=[f"unknown field '{k}'" for k in unknown],
            **context,
        )
    cleaned = {k: v for k, v in changes.items() if v is not None}
    if not cleaned:
        raise TaskPanelValidationError("No changes to apply", **context)
    return cleaned


def validate_task_changes(changes: dict, **context: Any) -> dict:
    cleaned = require_changes(changes, TASK_FIELDS, operation="update_task", **context)
    if "title" in cleaned:
        cleaned["title"] = require_text(cleaned["title"], "title", max_length=TITLE_MAX_LENGTH, **context)
    if "status" in cleaned:
        cleaned["status"] = validate_status(cleaned["status"], **context)
    if "priority" in cleaned:
        cleaned["priority"] = validate_priority(cleaned["priority"], **context)
    return cleaned


def validate_subtask_changes(changes: dict, **context: Any) -> dict:
    cleaned = require_changes(changes, SUBTASK_FIELDS, operation="update_subtask", **context)
    if "title" in cleaned:
        cleaned["title"] = require_text(
            cleaned["title"], "title", "Subtask title", max_length=TITLE_MAX_LENGTH, **context,
        )
    return cleaned


def validate_tag_ref(
    tag_id: Optional[str],
    tag_name: Optional[str],
    tag_color: Optional[str] = None,
    **context: Any,
) -> Optional[str]:
    """
    An existing tag is referenced by id; a new one needs a name.
    Returns the stripped name for a new tag, None when tag_id is given.
    """
    if tag_id:
        return None
    if not tag_name or not tag_name.strip():
        raise TaskPanelValidationError(
            "Either tag_id or tag_name is required", field="tag_id", **context,
        )
    validate_color(tag_color, **context)
    return require_text(tag_name, "tag_name", "Tag name", max_length=TAG_NAME_MAX_LENGTH, **context)
