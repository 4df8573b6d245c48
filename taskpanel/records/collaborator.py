"""Collaborator record — a user granted a role on a single task."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CollaboratorRole(str, Enum):
    OWNER = "owner"
    ASSIGNEE = "assignee"
    REVIEWER = "reviewer"
    OBSERVER = "observer"


class Collaborator(BaseModel):
    """At most one collaborator record exists per (task_id, user_id)."""

    id: str
    task_id: str
    user_id: str
    role: CollaboratorRole = Field(default=CollaboratorRole.ASSIGNEE)
    added_by: Optional[str] = Field(default=None)
    user_name: Optional[str] = Field(default=None, description="Display name, when joined in")
    created_at: Optional[datetime] = Field(default=None)
