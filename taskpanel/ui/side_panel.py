"""
Task Side Panel — tab/dialog state and permission-gated actions.

The panel never derives permissions itself: `is_owner` and `can_edit` are
supplied by the caller and only decide which actions are enabled. Task
changes are not applied here; they are handed to the parent view through
the callbacks, which may be plain functions or coroutines.

Dialogs are independent booleans. Several may be open at once; the most
recently opened one is the visible one.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from taskpanel.engine.errors import TaskPanelPermissionError, TaskPanelValidationError
from taskpanel.records.task import Task, TaskPriority, TaskStatus
from taskpanel.rules import validation

logger = logging.getLogger("taskpanel.ui.side_panel")


class PanelTab(str, Enum):
    OVERVIEW = "overview"
    SUBTASKS = "subtasks"
    COMMENTS = "comments"
    COLLABORATORS = "collaborators"
    TAGS = "tags"
    ACTIVITY = "activity"


TAB_LABELS: Dict[PanelTab, str] = {
    PanelTab.OVERVIEW: "Overview",
    PanelTab.SUBTASKS: "Subtasks",
    PanelTab.COMMENTS: "Comments",
    PanelTab.COLLABORATORS: "Team",
    PanelTab.TAGS: "Tags",
    PanelTab.ACTIVITY: "Activity",
}


class PanelDialog(str, Enum):
    EDIT_TASK = "edit_task"
    CREATE_TASK = "create_task"
    ADD_MEMBER = "add_member"
    CONFIRM_DELETE = "confirm_delete"


@dataclass(frozen=True)
class PanelPermissions:
    """Caller-computed flags. is_owner: workspace or task creator."""

    is_owner: bool = False
    can_edit: bool = False

    @property
    def can_edit_task(self) -> bool:
        return self.can_edit

    @property
    def can_toggle_status(self) -> bool:
        return self.can_edit

    @property
    def can_delete(self) -> bool:
        return self.is_owner or self.can_edit

    @property
    def can_comment(self) -> bool:
        return self.can_edit or self.is_owner

    @property
    def can_manage_collaborators(self) -> bool:
        return self.is_owner or self.can_edit

    @property
    def can_manage_tags(self) -> bool:
        return self.can_edit or self.is_owner


Callback = Callable[..., Any]


@dataclass
class PanelCallbacks:
    on_status_change: Optional[Callback] = None    # (task_id, TaskStatus)
    on_priority_change: Optional[Callback] = None  # (task_id, TaskPriority)
    on_update: Optional[Callback] = None           # (task_id, **changes)
    on_delete: Optional[Callback] = None           # (task_id)
    on_close: Optional[Callback] = None            # ()


def next_status(status: Union[TaskStatus, str]) -> TaskStatus:
    """Two-state toggle: completed → todo, anything else → completed."""
    if TaskStatus(status) == TaskStatus.COMPLETED:
        return TaskStatus.TODO
    return TaskStatus.COMPLETED


async def _invoke(callback: Optional[Callback], *args: Any, **kwargs: Any) -> Any:
    if callback is None:
        return None
    result = callback(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


class TaskSidePanel:
    """
    Side panel state for one displayed task.

    Usage:
        panel = TaskSidePanel(task, PanelPermissions(can_edit=True), callbacks)
        panel.select_tab("comments")
        await panel.toggle_status()
    """

    def __init__(
        self,
        task: Task,
        permissions: Optional[PanelPermissions] = None,
        callbacks: Optional[PanelCallbacks] = None,
    ):
        self.task = task
        self.permissions = permissions or PanelPermissions()
        self.callbacks = callbacks or PanelCallbacks()
        self.active_tab = PanelTab.OVERVIEW
        self._dialogs: Dict[PanelDialog, bool] = {d: False for d in PanelDialog}
        self._opened: List[PanelDialog] = []

    # ── Tabs ──

    def select_tab(self, tab: Union[PanelTab, str]) -> PanelTab:
        """Local transition only; no request is issued."""
        try:
            self.active_tab = PanelTab(tab)
        except ValueError:
            raise TaskPanelValidationError(
                f"Unknown tab '{tab}'", field="tab", task_id=self.task.id,
            ) from None
        return self.active_tab

    @staticmethod
    def tabs() -> List[PanelTab]:
        return list(PanelTab)

    # ── Dialogs ──

    def open_dialog(self, dialog: Union[PanelDialog, str]) -> None:
        dialog = PanelDialog(dialog)
        self._dialogs[dialog] = True
        if dialog in self._opened:
            self._opened.remove(dialog)
        self._opened.append(dialog)

    def close_dialog(self, dialog: Union[PanelDialog, str]) -> None:
        dialog = PanelDialog(dialog)
        self._dialogs[dialog] = False
        if dialog in self._opened:
            self._opened.remove(dialog)

    def is_open(self, dialog: Union[PanelDialog, str]) -> bool:
        return self._dialogs[PanelDialog(dialog)]

    @property
    def open_dialogs(self) -> List[PanelDialog]:
        return list(self._opened)

    @property
    def visible_dialog(self) -> Optional[PanelDialog]:
        return self._opened[-1] if self._opened else None

    # ── Permissions ──

    def available_actions(self) -> List[str]:
        p = self.permissions
        actions = []
        if p.can_edit_task:
            actions.append("edit")
        if p.can_toggle_status:
            actions.append("toggle_status")
            actions.append("change_priority")
        if p.can_delete:
            actions.append("delete")
        if p.can_comment:
            actions.append("comment")
        if p.can_manage_collaborators:
            actions.append("manage_collaborators")
        if p.can_manage_tags:
            actions.append("manage_tags")
        return actions

    def _require(self, allowed: bool, action: str) -> None:
        if not allowed:
            raise TaskPanelPermissionError(
                f"Action '{action}' is not available for this task",
                action=action,
                task_id=self.task.id,
            )

    # ── Actions ──

    def open_edit(self) -> None:
        self._require(self.permissions.can_edit_task, "edit")
        self.open_dialog(PanelDialog.EDIT_TASK)

    def open_add_member(self) -> None:
        self._require(self.permissions.can_manage_collaborators, "manage_collaborators")
        self.open_dialog(PanelDialog.ADD_MEMBER)

    async def toggle_status(self) -> Any:
        self._require(self.permissions.can_toggle_status, "toggle_status")
        new_status = next_status(self.task.status)
        logger.debug("Toggling task %s %s -> %s", self.task.id, self.task.status.value, new_status.value)
        return self._sync(await _invoke(self.callbacks.on_status_change, self.task.id, new_status))

    async def change_priority(self, priority: Union[TaskPriority, str]) -> Any:
        self._require(self.permissions.can_toggle_status, "change_priority")
        priority = TaskPriority(validation.validate_priority(priority, task_id=self.task.id))
        return self._sync(await _invoke(self.callbacks.on_priority_change, self.task.id, priority))

    async def save_edit(self, **changes: Any) -> Any:
        """Submit the edit dialog; the dialog closes once the parent accepted it."""
        self._require(self.permissions.can_edit_task, "edit")
        result = self._sync(await _invoke(self.callbacks.on_update, self.task.id, **changes))
        if result is not None:
            self.close_dialog(PanelDialog.EDIT_TASK)
        return result

    def request_delete(self) -> None:
        self._require(self.permissions.can_delete, "delete")
        self.open_dialog(PanelDialog.CONFIRM_DELETE)

    def cancel_delete(self) -> None:
        self.close_dialog(PanelDialog.CONFIRM_DELETE)

    async def confirm_delete(self) -> bool:
        """Delete after confirmation, then close the panel."""
        self._require(self.permissions.can_delete, "delete")
        if not self.is_open(PanelDialog.CONFIRM_DELETE):
            raise TaskPanelValidationError(
                "Delete must be confirmed first", field="confirm", task_id=self.task.id,
            )
        self.close_dialog(PanelDialog.CONFIRM_DELETE)
        result = await _invoke(self.callbacks.on_delete, self.task.id)
        if result is False:
            return False
        await self.close()
        return True

    async def close(self) -> None:
        for dialog in list(self._opened):
            self.close_dialog(dialog)
        await _invoke(self.callbacks.on_close)

    def set_task(self, task: Task) -> None:
        """Parent pushes the latest task (e.g. after a refetch)."""
        self.task = task

    def _sync(self, result: Any) -> Any:
        if isinstance(result, Task):
            self.task = result
        return result
