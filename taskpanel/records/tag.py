"""Tag records — workspace tags and their assignment to tasks."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_TAG_COLOR = "#3B82F6"


class Tag(BaseModel):
    id: str
    name: str = Field(max_length=100)
    color: str = Field(default=DEFAULT_TAG_COLOR)
    workspace_id: Optional[str] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None)


class TaskTag(BaseModel):
    """Join row. task_tag_id is unique per (task_id, tag_id)."""

    task_tag_id: str
    task_id: str
    tag_id: str
    assigned_at: Optional[datetime] = Field(default=None)


class AssignedTag(Tag):
    """A Tag as listed on a task: tag fields plus the join row's id and time."""

    task_tag_id: str
    assigned_at: Optional[datetime] = Field(default=None)
