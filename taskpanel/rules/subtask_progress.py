"""Subtask completion summary shown in the panel header and Subtasks tab."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from taskpanel.records.subtask import Subtask


@dataclass(frozen=True)
class SubtaskProgress:
    completed: int
    total: int

    @property
    def percentage(self) -> int:
        """Completed share rounded half-up to a whole percent; 0 when empty."""
        if self.total == 0:
            return 0
        return int(self.completed * 100 / self.total + 0.5)

    @property
    def badge(self) -> str:
        return f"{self.completed}/{self.total}"

    @property
    def is_done(self) -> bool:
        return self.total > 0 and self.completed == self.total


def subtask_progress(subtasks: Sequence[Subtask]) -> SubtaskProgress:
    return SubtaskProgress(
        completed=sum(1 for s in subtasks if s.completed),
        total=len(subtasks),
    )
