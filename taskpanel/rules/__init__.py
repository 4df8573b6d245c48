"""TaskPanel Rules — pure functions deriving display state from records."""

from taskpanel.rules.comment_tree import build_comment_tree, count_comments, flatten_tree  # noqa: F401
from taskpanel.rules.subtask_progress import SubtaskProgress, subtask_progress  # noqa: F401

__all__ = [
    "build_comment_tree",
    "count_comments",
    "flatten_tree",
    "SubtaskProgress",
    "subtask_progress",
]
