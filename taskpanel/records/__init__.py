"""TaskPanel Records. Each record is defined in its own module."""

from .task import Task, TaskPriority, TaskStatus
from .comment import Comment, CommentThread
from .subtask import Subtask
from .collaborator import Collaborator, CollaboratorRole
from .tag import AssignedTag, Tag, TaskTag
from .activity import ActivityPage, ActivityType, GenericActivity, parse_activity
from .friendship import Friendship, FriendshipStatus

__all__ = [
    "Task", "TaskStatus", "TaskPriority",
    "Comment", "CommentThread",
    "Subtask",
    "Collaborator", "CollaboratorRole",
    "Tag", "TaskTag", "AssignedTag",
    "ActivityType", "ActivityPage", "GenericActivity", "parse_activity",
    "Friendship", "FriendshipStatus",
]
