"""Task record — the unit of work displayed in the side panel."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Task(BaseModel):
    """
    A task belonging to a list within a workspace.

    Deletion is a hard delete on the backend; the client simply drops its copy.
    """

    id: str
    title: str = Field(max_length=500)
    description: Optional[str] = Field(default=None)
    status: TaskStatus = Field(default=TaskStatus.TODO)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    due_date: Optional[datetime] = Field(default=None)
    list_id: Optional[str] = Field(default=None)
    workspace_id: Optional[str] = Field(default=None)
    created_by: Optional[str] = Field(default=None, description="User ID of the creator")
    assignee: Optional[str] = Field(default=None, description="Assigned user ID")
    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED
