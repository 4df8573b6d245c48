"""Comment record — flat rows from the backend, threaded one level deep for display."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class Comment(BaseModel):
    """
    Comment on a Task.

    parent_id, if present, references another comment on the same task.
    A comment that still has replies is deleted logically: its content is
    replaced by a placeholder and is_deleted is set.
    """

    id: str
    task_id: str
    author: str = Field(description="User ID of comment author")
    parent_id: Optional[str] = Field(default=None)
    content: str = Field(description="Comment text")
    created_at: Optional[datetime] = Field(default=None)
    edited_at: Optional[datetime] = Field(default=None)
    is_deleted: bool = Field(default=False)
    deleted_at: Optional[datetime] = Field(default=None)

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None


class CommentThread(Comment):
    """A top-level comment carrying its direct replies, in original order."""

    replies: List[Comment] = Field(default_factory=list)
