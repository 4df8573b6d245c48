"""Subtask record — checklist item on a Task."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Subtask(BaseModel):
    id: str
    task_id: str
    title: str = Field(max_length=500)
    description: Optional[str] = Field(default=None)
    completed: bool = Field(default=False)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)

    @model_validator(mode="after")
    def check_completed_at(self) -> "Subtask":
        # completed_at is set iff completed is true
        if self.completed and self.completed_at is None:
            raise ValueError("completed subtask must carry completed_at")
        if not self.completed and self.completed_at is not None:
            raise ValueError("open subtask must not carry completed_at")
        return self

    def with_completed(self, completed: bool, now: Optional[datetime] = None) -> "Subtask":
        """Copy with the completion flag flipped and completed_at kept consistent."""
        now = now or datetime.now(timezone.utc)
        return self.model_copy(update={
            "completed": completed,
            "completed_at": now if completed else None,
            "updated_at": now,
        })
