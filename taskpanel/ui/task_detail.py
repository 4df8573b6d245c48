"""
Task Detail View — aggregates one task's sub-entities and keeps them in sync.

Pipeline:
    open(task_id)   → activate in the session, load task / comments / subtasks /
                      collaborators / tags / first activity page concurrently;
                      each result is applied only if the task is still active
    <mutation>()    → optimistic PendingMutation through the OptimisticStore,
                      one request via MutationClient, commit or exact rollback
    after commit    → aggregate keys (task lists, activity) are invalidated;
                      the ones this view displays are refetched
    close()         → drop every cached value for the task

Errors from mutations never escape: the optimistic state is rolled back, the
message is passed once to `notify`, and the method returns None.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from taskpanel.api.client import MutationClient
from taskpanel.engine.cache import (
    CacheKeys,
    append_item,
    find_item,
    patch_item,
    remove_item,
    replace_item,
)
from taskpanel.engine.context import TaskPanelContext
from taskpanel.engine.errors import TaskPanelError, TaskPanelValidationError
from taskpanel.engine.logging import log_view_event
from taskpanel.engine.mutation import MutationState, PendingMutation
from taskpanel.records.collaborator import Collaborator, CollaboratorRole
from taskpanel.records.comment import Comment, CommentThread
from taskpanel.records.subtask import Subtask
from taskpanel.records.tag import AssignedTag
from taskpanel.records.task import Task, TaskPriority, TaskStatus
from taskpanel.rules import validation
from taskpanel.rules.comment_tree import build_comment_tree
from taskpanel.rules.subtask_progress import SubtaskProgress, subtask_progress
from taskpanel.ui.side_panel import PanelCallbacks, PanelPermissions, TaskSidePanel

logger = logging.getLogger("taskpanel.ui.task_detail")

Notify = Callable[[str], Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _temp_id() -> str:
    return f"temp-{uuid.uuid4().hex}"


@dataclass
class ActivityFeedState:
    type: Optional[str] = None
    next_offset: int = 0
    has_more: bool = False


class TaskDetailView:
    """
    Usage:
        view = TaskDetailView(ctx, notify=toast)
        await view.open("task-1")
        await view.add_comment("Looks good")
        view.comment_tree
    """

    def __init__(
        self,
        context: TaskPanelContext,
        notify: Optional[Notify] = None,
        client: Optional[MutationClient] = None,
    ):
        self.ctx = context
        self.client = client or MutationClient(context.transport, context.config)
        self._notify_cb = notify
        self.task_id: Optional[str] = None
        self.feed = ActivityFeedState()

    @property
    def cache(self):
        return self.ctx.cache

    @property
    def store(self):
        return self.ctx.store

    @property
    def session(self):
        return self.ctx.session

    # ── Display state (always re-derived from the cache) ──

    @property
    def task(self) -> Optional[Task]:
        return self._get(CacheKeys.task)

    @property
    def comments(self) -> List[Comment]:
        return self._get(CacheKeys.comments) or []

    @property
    def comment_tree(self) -> List[CommentThread]:
        return build_comment_tree(self.comments)

    @property
    def subtasks(self) -> List[Subtask]:
        return self._get(CacheKeys.subtasks) or []

    @property
    def progress(self) -> SubtaskProgress:
        return subtask_progress(self.subtasks)

    @property
    def collaborators(self) -> List[Collaborator]:
        return self._get(CacheKeys.collaborators) or []

    @property
    def tags(self) -> List[AssignedTag]:
        return self._get(CacheKeys.task_tags) or []

    @property
    def activity(self) -> List[Any]:
        return self._get(CacheKeys.activity) or []

    def _get(self, key_fn: Callable[[str], str]) -> Any:
        if self.task_id is None:
            return None
        return self.cache.get(key_fn(self.task_id))

    # ── Lifecycle ──

    async def open(self, task_id: str) -> bool:
        """Display task_id. Returns False if any section failed to load."""
        if self.task_id is not None and self.task_id != task_id:
            self.close()
        self.task_id = task_id
        self.feed = ActivityFeedState()
        self.session.activate_task(task_id)
        self._log_view("task_opened", task_id)

        results = await asyncio.gather(
            self._load(task_id, CacheKeys.task(task_id), self.client.get_task(task_id)),
            self._load(task_id, CacheKeys.comments(task_id), self.client.list_comments(task_id)),
            self._load(task_id, CacheKeys.subtasks(task_id), self.client.list_subtasks(task_id)),
            self._load(task_id, CacheKeys.collaborators(task_id), self.client.list_collaborators(task_id)),
            self._load(task_id, CacheKeys.task_tags(task_id), self.client.list_task_tags(task_id)),
            self._load_activity(task_id, offset=0),
        )
        return all(results)

    def close(self) -> None:
        """Navigate away: in-flight responses for this task will be ignored."""
        task_id = self.task_id
        if task_id is None:
            return
        self.session.deactivate_task(task_id)
        self.store.discard_task(task_id)
        self.task_id = None
        self._log_view("task_closed", task_id)

    def side_panel(self, permissions: PanelPermissions) -> TaskSidePanel:
        """A side panel whose callbacks route back into this view."""
        if self.task is None:
            raise TaskPanelError("No task is loaded", task_id=self.task_id)
        callbacks = PanelCallbacks(
            on_status_change=lambda task_id, status: self.change_status(status),
            on_priority_change=lambda task_id, priority: self.change_priority(priority),
            on_update=lambda task_id, **changes: self.update_task(**changes),
            on_delete=lambda task_id: self.delete_task(),
            on_close=self.close,
        )
        return TaskSidePanel(self.task, permissions, callbacks)

    async def _load(self, task_id: str, key: str, request: Awaitable[Any]) -> bool:
        try:
            result = await request
        except TaskPanelError as e:
            if self.session.is_active(task_id):
                self._notify(e)
                return False
            return True
        if not self.session.is_active(task_id):
            self._log_view("stale_response_discarded", task_id, {"key": key})
            return True
        self.store.receive(key, result)
        return True

    async def _load_activity(self, task_id: str, offset: int) -> bool:
        key = CacheKeys.activity(task_id)
        feed_type = self.feed.type
        try:
            page = await self.client.fetch_activity(
                task_id,
                limit=self.ctx.config.activity.page_size,
                offset=offset,
                type=feed_type,
            )
        except TaskPanelError as e:
            if self.session.is_active(task_id):
                self._notify(e)
                return False
            return True
        if not self.session.is_active(task_id) or self.feed.type != feed_type:
            self._log_view("stale_response_discarded", task_id, {"key": key, "offset": offset})
            return True
        items = page.items if offset == 0 else [*(self.cache.get(key) or []), *page.items]
        self.store.receive(key, items)
        self.feed = ActivityFeedState(type=feed_type, next_offset=page.next_offset, has_more=page.has_more)
        return True

    # ── Activity feed ──

    async def load_more_activity(self) -> bool:
        task_id = self._require_open()
        if not self.feed.has_more:
            return False
        return await self._load_activity(task_id, offset=self.feed.next_offset)

    async def filter_activity(self, activity_type: Optional[str]) -> bool:
        """Restart the feed from the first page with a type filter (None = all)."""
        task_id = self._require_open()
        self.feed = ActivityFeedState(type=activity_type)
        return await self._load_activity(task_id, offset=0)

    # ── Comments ──

    async def add_comment(self, content: str, parent_id: Optional[str] = None) -> Optional[Comment]:
        task_id = self._require_open()
        key = CacheKeys.comments(task_id)

        def check() -> None:
            validation.require_text(content, "content", "Comment content", task_id=task_id)
            if parent_id is not None:
                parent = find_item(self.cache.get(key), parent_id)
                if parent is not None and parent.task_id != task_id:
                    raise TaskPanelValidationError(
                        "Parent comment belongs to a different task",
                        field="parent_id",
                        task_id=task_id,
                    )

        temp = Comment(
            id=_temp_id(),
            task_id=task_id,
            author=self.session.user_id,
            parent_id=parent_id,
            content=(content or "").strip(),
            created_at=_now(),
        )
        mutation = PendingMutation(
            name="create_comment",
            task_id=task_id,
            optimistic={key: lambda items: append_item(items, temp)},
            reconcile={key: lambda items, created: replace_item(items, temp.id, created)},
            invalidates=self._aggregates(task_id),
        )
        return await self._mutate(
            mutation, lambda: self.client.create_comment(task_id, content, parent_id), check,
        )

    async def reply_to_comment(self, parent_id: str, content: str) -> Optional[Comment]:
        return await self.add_comment(content, parent_id=parent_id)

    async def edit_comment(self, comment_id: str, content: str) -> Optional[Comment]:
        task_id = self._require_open()
        key = CacheKeys.comments(task_id)
        edited_at = _now()

        def check() -> None:
            validation.require_text(content, "content", "Comment content", task_id=task_id)

        mutation = PendingMutation(
            name="update_comment",
            task_id=task_id,
            optimistic={key: lambda items: patch_item(
                items, comment_id, content=(content or "").strip(), edited_at=edited_at,
            )},
            reconcile={key: lambda items, updated: replace_item(items, comment_id, updated)},
            invalidates=[CacheKeys.activity(task_id)],
        )
        return await self._mutate(
            mutation, lambda: self.client.update_comment(task_id, comment_id, content), check,
        )

    async def delete_comment(self, comment_id: str) -> bool:
        """Soft-delete when the comment has replies, hard-delete otherwise."""
        task_id = self._require_open()
        key = CacheKeys.comments(task_id)
        has_replies = any(c.parent_id == comment_id for c in self.comments)
        placeholder = self.ctx.config.comments.deleted_placeholder
        deleted_at = _now()

        def optimistic(items: Any) -> List[Comment]:
            if has_replies:
                return patch_item(
                    items, comment_id,
                    content=placeholder, is_deleted=True, deleted_at=deleted_at,
                )
            return remove_item(items, comment_id)

        def reconcile(items: Any, tombstone: Optional[Comment]) -> List[Comment]:
            if tombstone is None:
                return remove_item(items, comment_id)
            return replace_item(items, comment_id, tombstone)

        mutation = PendingMutation(
            name="delete_comment",
            task_id=task_id,
            optimistic={key: optimistic},
            reconcile={key: reconcile},
            invalidates=self._aggregates(task_id),
        )
        await self._mutate(mutation, lambda: self.client.delete_comment(task_id, comment_id))
        return self._succeeded(mutation)

    # ── Subtasks ──

    async def add_subtask(self, title: str, description: Optional[str] = None) -> Optional[Subtask]:
        task_id = self._require_open()
        key = CacheKeys.subtasks(task_id)

        def check() -> None:
            validation.require_text(
                title, "title", "Subtask title",
                max_length=validation.TITLE_MAX_LENGTH, task_id=task_id,
            )

        temp_id = _temp_id()
        now = _now()

        def optimistic(items: Any) -> List[Subtask]:
            return append_item(items, Subtask(
                id=temp_id,
                task_id=task_id,
                title=title.strip(),
                description=description,
                created_at=now,
                updated_at=now,
            ))

        mutation = PendingMutation(
            name="create_subtask",
            task_id=task_id,
            optimistic={key: optimistic},
            reconcile={key: lambda items, created: replace_item(items, temp_id, created)},
            invalidates=self._aggregates(task_id),
        )
        return await self._mutate(
            mutation, lambda: self.client.create_subtask(task_id, title, description), check,
        )

    async def toggle_subtask(self, subtask_id: str) -> Optional[Subtask]:
        task_id = self._require_open()
        current = find_item(self.subtasks, subtask_id)
        if current is None:
            self._notify(TaskPanelValidationError(
                "Subtask not found", field="subtask_id", task_id=task_id,
            ))
            return None
        return await self._update_subtask(
            task_id, subtask_id, completed=not current.completed,
        )

    async def update_subtask(self, subtask_id: str, **changes: Any) -> Optional[Subtask]:
        task_id = self._require_open()
        return await self._update_subtask(task_id, subtask_id, **changes)

    async def _update_subtask(self, task_id: str, subtask_id: str, **changes: Any) -> Optional[Subtask]:
        key = CacheKeys.subtasks(task_id)
        now = _now()
        valid: Dict[str, Any] = {}

        def check() -> None:
            valid.update(validation.validate_subtask_changes(changes, task_id=task_id))

        def optimistic(items: Any) -> List[Subtask]:
            result = []
            for s in items or []:
                if s.id == subtask_id:
                    fields = {k: v for k, v in valid.items() if k != "completed"}
                    s = s.model_copy(update={**fields, "updated_at": now})
                    if "completed" in valid and valid["completed"] != s.completed:
                        s = s.with_completed(bool(valid["completed"]), now)
                result.append(s)
            return result

        mutation = PendingMutation(
            name="update_subtask",
            task_id=task_id,
            optimistic={key: optimistic},
            reconcile={key: lambda items, updated: replace_item(items, subtask_id, updated)},
            invalidates=self._aggregates(task_id),
        )
        return await self._mutate(
            mutation, lambda: self.client.update_subtask(task_id, subtask_id, **changes), check,
        )

    async def delete_subtask(self, subtask_id: str) -> bool:
        task_id = self._require_open()
        key = CacheKeys.subtasks(task_id)
        mutation = PendingMutation(
            name="delete_subtask",
            task_id=task_id,
            optimistic={key: lambda items: remove_item(items, subtask_id)},
            invalidates=self._aggregates(task_id),
        )
        await self._mutate(mutation, lambda: self.client.delete_subtask(task_id, subtask_id))
        return self._succeeded(mutation)

    # ── Collaborators ──

    async def add_collaborator(
        self, user_id: str, role: Any = CollaboratorRole.ASSIGNEE,
    ) -> Optional[Collaborator]:
        task_id = self._require_open()
        key = CacheKeys.collaborators(task_id)
        temp_id = _temp_id()
        added_at = _now()

        def check() -> None:
            validation.require_id(user_id, "user_id", task_id=task_id)
            validation.validate_role(role, task_id=task_id)
            if any(c.user_id == user_id for c in self.collaborators):
                raise TaskPanelValidationError(
                    "User is already a collaborator on this task",
                    field="user_id",
                    task_id=task_id,
                )

        def optimistic(items: Any) -> List[Collaborator]:
            return append_item(items, Collaborator(
                id=temp_id,
                task_id=task_id,
                user_id=user_id,
                role=CollaboratorRole(getattr(role, "value", role)),
                added_by=self.session.user_id,
                created_at=added_at,
            ))

        mutation = PendingMutation(
            name="add_collaborator",
            task_id=task_id,
            optimistic={key: optimistic},
            reconcile={key: lambda items, created: replace_item(items, temp_id, created)},
            invalidates=self._aggregates(task_id),
        )
        return await self._mutate(
            mutation, lambda: self.client.add_collaborator(task_id, user_id, role), check,
        )

    async def update_collaborator_role(self, collaborator_id: str, role: Any) -> Optional[Collaborator]:
        task_id = self._require_open()
        key = CacheKeys.collaborators(task_id)

        def check() -> None:
            validation.validate_role(role, task_id=task_id)

        mutation = PendingMutation(
            name="update_collaborator_role",
            task_id=task_id,
            optimistic={key: lambda items: patch_item(
                items, collaborator_id, role=CollaboratorRole(getattr(role, "value", role)),
            )},
            reconcile={key: lambda items, updated: replace_item(items, collaborator_id, updated)},
            invalidates=[CacheKeys.activity(task_id)],
        )
        return await self._mutate(
            mutation,
            lambda: self.client.update_collaborator_role(task_id, collaborator_id, role),
            check,
        )

    async def remove_collaborator(self, collaborator_id: str) -> bool:
        task_id = self._require_open()
        key = CacheKeys.collaborators(task_id)
        mutation = PendingMutation(
            name="remove_collaborator",
            task_id=task_id,
            optimistic={key: lambda items: remove_item(items, collaborator_id)},
            invalidates=self._aggregates(task_id),
        )
        await self._mutate(mutation, lambda: self.client.remove_collaborator(task_id, collaborator_id))
        return self._succeeded(mutation)

    # ── Tags ──

    async def add_tag(
        self,
        tag_id: Optional[str] = None,
        tag_name: Optional[str] = None,
        tag_color: Optional[str] = None,
    ) -> Optional[AssignedTag]:
        """Assign an existing workspace tag by id, or create one by name."""
        task_id = self._require_open()
        key = CacheKeys.task_tags(task_id)
        known = self._workspace_tag(tag_id) if tag_id else None
        name = (tag_name or (known.name if known else "")).strip()
        color = tag_color or (known.color if known else self.ctx.config.tags.default_color)

        def check() -> None:
            validation.validate_tag_ref(tag_id, tag_name, tag_color, task_id=task_id)
            for t in self.tags:
                if (tag_id and t.id == tag_id) or (not tag_id and name and t.name.lower() == name.lower()):
                    raise TaskPanelValidationError(
                        "Tag already added to this task", field="tag_id", task_id=task_id,
                    )

        temp_id = _temp_id()
        assigned_at = _now()

        def optimistic(items: Any) -> List[AssignedTag]:
            return append_item(items, AssignedTag(
                id=tag_id or temp_id,
                name=name,
                color=color,
                task_tag_id=temp_id,
                assigned_at=assigned_at,
            ))

        mutation = PendingMutation(
            name="add_tag",
            task_id=task_id,
            optimistic={key: optimistic},
            reconcile={key: lambda items, created: replace_item(items, tag_id or temp_id, created)},
            invalidates=self._aggregates(task_id),
        )
        return await self._mutate(
            mutation,
            lambda: self.client.add_tag(task_id, tag_id=tag_id, tag_name=tag_name, tag_color=tag_color),
            check,
        )

    async def remove_tag(self, task_tag_id: str) -> bool:
        task_id = self._require_open()
        key = CacheKeys.task_tags(task_id)
        mutation = PendingMutation(
            name="remove_tag",
            task_id=task_id,
            optimistic={key: lambda items: [t for t in items or [] if t.task_tag_id != task_tag_id]},
            invalidates=self._aggregates(task_id),
        )
        await self._mutate(mutation, lambda: self.client.remove_tag(task_id, task_tag_id))
        return self._succeeded(mutation)

    async def load_workspace_tags(self) -> bool:
        task = self.task
        if task is None or not task.workspace_id:
            return False
        return await self._load(
            task.id,
            CacheKeys.workspace_tags(task.workspace_id),
            self.client.list_workspace_tags(task.workspace_id),
        )

    def _workspace_tag(self, tag_id: str) -> Any:
        task = self.task
        if task is None or not task.workspace_id:
            return None
        return find_item(self.cache.get(CacheKeys.workspace_tags(task.workspace_id)), tag_id)

    # ── Task ──

    async def change_status(self, status: Any) -> Optional[Task]:
        task_id = self._require_open()
        raw = getattr(status, "value", status)

        def check() -> None:
            validation.validate_status(raw, task_id=task_id)

        def changes() -> Dict[str, Any]:
            new_status = TaskStatus(raw)
            completed_at = _now() if new_status == TaskStatus.COMPLETED else None
            return {"status": new_status, "completed_at": completed_at}

        return await self._update_task(
            task_id, "update_status", changes,
            lambda: self.client.update_task(task_id, status=raw), check,
        )

    async def change_priority(self, priority: Any) -> Optional[Task]:
        task_id = self._require_open()
        raw = getattr(priority, "value", priority)

        def check() -> None:
            validation.validate_priority(raw, task_id=task_id)

        return await self._update_task(
            task_id, "update_priority", lambda: {"priority": TaskPriority(raw)},
            lambda: self.client.update_task(task_id, priority=raw), check,
        )

    async def update_task(self, **changes: Any) -> Optional[Task]:
        task_id = self._require_open()

        def check() -> None:
            validation.validate_task_changes(changes, task_id=task_id)

        return await self._update_task(
            task_id, "update_task",
            lambda: {k: v for k, v in changes.items() if v is not None},
            lambda: self.client.update_task(task_id, **changes), check,
        )

    async def _update_task(
        self,
        task_id: str,
        name: str,
        changes: Callable[[], Dict[str, Any]],
        request: Callable[[], Awaitable[Task]],
        check: Callable[[], None],
    ) -> Optional[Task]:
        """Optimistic patch of the task detail; task lists and activity are invalidated."""
        key = CacheKeys.task(task_id)

        def optimistic(task: Optional[Task]) -> Optional[Task]:
            # model_copy skips validation; fields are checked before begin()
            return task.model_copy(update=changes()) if task is not None else None

        mutation = PendingMutation(
            name=name,
            task_id=task_id,
            optimistic={key: optimistic},
            reconcile={key: lambda task, updated: updated},
            invalidates=self._aggregates(task_id),
        )
        return await self._mutate(mutation, request, check)

    async def delete_task(self) -> bool:
        task_id = self._require_open()
        try:
            await self.client.delete_task(task_id)
        except TaskPanelError as e:
            self._notify(e)
            return False
        self.cache.invalidate_pattern(CacheKeys.TASK_LISTS)
        if self.session.is_active(task_id):
            self.close()
        return True

    # ── Internals ──

    def _require_open(self) -> str:
        if self.task_id is None:
            raise TaskPanelError("No task is open")
        return self.task_id

    @staticmethod
    def _aggregates(task_id: str) -> List[str]:
        return [CacheKeys.TASK_LISTS, CacheKeys.activity(task_id)]

    @staticmethod
    def _succeeded(mutation: PendingMutation) -> bool:
        return mutation.state is MutationState.COMMITTED and not mutation.stale

    async def _mutate(
        self,
        mutation: PendingMutation,
        request: Callable[[], Awaitable[Any]],
        check: Optional[Callable[[], None]] = None,
    ) -> Any:
        try:
            if check is not None:
                check()
            result = await self.store.run(mutation, request)
        except TaskPanelError as e:
            self._notify(e)
            return None
        if mutation.stale:
            return None
        await self._refresh_stale(mutation.task_id)
        return result

    async def _refresh_stale(self, task_id: Optional[str]) -> None:
        """Refetch the invalidated keys this view displays."""
        if task_id is None or not self.session.is_active(task_id):
            return
        if self.cache.is_stale(CacheKeys.task(task_id)):
            await self._load(task_id, CacheKeys.task(task_id), self.client.get_task(task_id))
        if self.cache.is_stale(CacheKeys.activity(task_id)):
            self.feed = ActivityFeedState(type=self.feed.type)
            await self._load_activity(task_id, offset=0)

    def _notify(self, error: TaskPanelError) -> None:
        logger.warning("%r", error)
        if self._notify_cb is not None:
            self._notify_cb(error.message)

    def _log_view(self, event: str, task_id: str, details: Optional[Dict[str, Any]] = None) -> None:
        if self.ctx.event_log is not None:
            self.ctx.event_log.write(log_view_event(
                event,
                session_id=self.session.session_id,
                task_id=task_id,
                details=details,
            ))
