"""
Activity display — one message formatter per activity kind.

FORMATTERS is keyed by ActivityType and checked at import to cover every
kind, so adding a kind without a message fails loudly. Unknown kinds coming
from a newer backend (GenericActivity) fall back to a neutral message.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from taskpanel.records.activity import ActivityType, GenericActivity

FALLBACK_MESSAGE = "performed an action"


def _or(value: Optional[str], default: str) -> str:
    return value if value else default


def _status_changed(a: Any) -> str:
    return (
        f'changed status from "{_or(a.payload.from_status, "unknown")}" '
        f'to "{_or(a.payload.to_status, "unknown")}"'
    )


def _subtask(verb: str) -> Callable[[Any], str]:
    def fmt(a: Any) -> str:
        return f'{verb} subtask "{_or(a.payload.title, "untitled")}"'
    return fmt


def _role(a: Any) -> str:
    role = a.payload.role
    return getattr(role, "value", role) or "collaborator"


FORMATTERS: Dict[ActivityType, Callable[[Any], str]] = {
    ActivityType.TASK_CREATED: lambda a: "created the task",
    ActivityType.TASK_COMPLETED: lambda a: "completed the task",
    ActivityType.TASK_UPDATED: lambda a: f"updated task {_or(a.payload.field, 'details')}",
    ActivityType.TASK_EDITED: lambda a: f"updated task {_or(a.payload.field, 'details')}",
    ActivityType.TASK_STATUS_CHANGED: _status_changed,
    ActivityType.PRIORITY_CHANGED: lambda a: f"changed priority to {_or(a.payload.priority, 'unknown')}",
    ActivityType.DUE_DATE_CHANGED: lambda a: "changed the due date",
    ActivityType.COMMENT_ADDED: lambda a: "added a comment",
    ActivityType.COMMENT_REPLY_ADDED: lambda a: "replied to a comment",
    ActivityType.COMMENT_EDITED: lambda a: "updated a comment",
    ActivityType.COMMENT_DELETED: lambda a: "deleted a comment",
    ActivityType.TAG_ADDED: lambda a: f'added tag "{_or(a.payload.tag_name, "unknown")}"',
    ActivityType.TAG_REMOVED: lambda a: f'removed tag "{_or(a.payload.tag_name, "unknown")}"',
    ActivityType.COLLABORATOR_ADDED: lambda a: f"added {_or(a.payload.user_name, 'someone')} as {_role(a)}",
    ActivityType.COLLABORATOR_ROLE_UPDATED: lambda a: (
        f"changed {_or(a.payload.user_name, 'someone')}'s role to {_or(a.payload.new_role, 'unknown')}"
    ),
    ActivityType.COLLABORATOR_REMOVED: lambda a: f"removed {_or(a.payload.user_name, 'someone')} as collaborator",
    ActivityType.SUBTASK_ADDED: _subtask("added"),
    ActivityType.SUBTASK_COMPLETED: _subtask("completed"),
    ActivityType.SUBTASK_REOPENED: _subtask("reopened"),
    ActivityType.SUBTASK_UPDATED: _subtask("updated"),
    ActivityType.SUBTASK_DELETED: _subtask("deleted"),
}

_missing = set(ActivityType) - set(FORMATTERS)
if _missing:
    raise RuntimeError(f"No message formatter for: {sorted(t.value for t in _missing)}")


def format_activity(activity: Any) -> str:
    """Human-readable message for one activity, without the actor's name."""
    if isinstance(activity, GenericActivity):
        return FALLBACK_MESSAGE
    return FORMATTERS[ActivityType(activity.type)](activity)


# ── Categories & filters ──

def activity_category(activity_type: str) -> str:
    """Icon/colour bucket, matched on substrings of the kind."""
    if "status" in activity_type or "completed" in activity_type:
        return "status"
    if "comment" in activity_type:
        return "comment"
    if "tag" in activity_type:
        return "tag"
    if "collaborator" in activity_type:
        return "collaborator"
    if "updated" in activity_type or "edited" in activity_type:
        return "update"
    return "other"


FILTER_OPTIONS: List[Tuple[str, Optional[str]]] = [
    ("All", None),
    ("Status", ActivityType.TASK_STATUS_CHANGED.value),
    ("Comments", ActivityType.COMMENT_ADDED.value),
    ("Tags", ActivityType.TAG_ADDED.value),
    ("Collaborators", ActivityType.COLLABORATOR_ADDED.value),
    ("Updates", ActivityType.TASK_UPDATED.value),
]


def filter_value(label: str) -> Optional[str]:
    """Map a filter label (case-insensitive) to the `type` query value."""
    for name, value in FILTER_OPTIONS:
        if name.lower() == label.lower():
            return value
    raise KeyError(label)


# ── Time ──

def relative_time(when: datetime, now: Optional[datetime] = None) -> str:
    """'Just now', '5m ago', '3h ago', '1 day ago', '4 days ago'."""
    now = now or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    seconds = (now - when).total_seconds()
    hours = int(seconds // 3600)
    if hours < 1:
        minutes = int(seconds // 60)
        return "Just now" if minutes < 1 else f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    return "1 day ago" if days == 1 else f"{days} days ago"
