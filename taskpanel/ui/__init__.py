"""TaskPanel UI state — framework-agnostic view models for the task side panel."""

from taskpanel.ui.side_panel import PanelDialog, PanelPermissions, PanelTab, TaskSidePanel  # noqa: F401
from taskpanel.ui.task_detail import TaskDetailView  # noqa: F401

__all__ = ["PanelDialog", "PanelPermissions", "PanelTab", "TaskSidePanel", "TaskDetailView"]
