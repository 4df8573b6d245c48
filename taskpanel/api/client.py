"""
TaskPanel Mutation Client — one coroutine per entity action.

Each call:
    1. Validates required input locally (TaskPanelValidationError, no request)
    2. Performs exactly one round trip through BackendTransport
    3. Parses the JSON body into a record (a body that does not fit the
       record is reported as a malformed response)

Endpoints (relative to backend.base_url):
    /tasks/{id}                               GET, PATCH, DELETE
    /tasks/{id}/comments[/{comment_id}]       GET, POST, PATCH, DELETE
    /tasks/{id}/subtasks[/{subtask_id}]       GET, POST, PATCH, DELETE
    /tasks/{id}/collaborators[/{collab_id}]   GET, POST, PATCH, DELETE
    /tasks/{id}/tags[/{task_tag_id}]          GET, POST, DELETE
    /tasks/{id}/activity?limit&offset&type    GET
    /workspaces/{id}/tags                     GET
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from taskpanel.engine.config import ClientConfig
from taskpanel.engine.errors import TaskPanelRequestError
from taskpanel.engine.transport import BackendTransport
from taskpanel.records.activity import ActivityPage, parse_activity
from taskpanel.records.collaborator import Collaborator
from taskpanel.records.comment import Comment
from taskpanel.records.subtask import Subtask
from taskpanel.records.tag import AssignedTag, Tag
from taskpanel.records.task import Task
from taskpanel.rules import validation

logger = logging.getLogger("taskpanel.api.client")

M = TypeVar("M", bound=BaseModel)

def _malformed(failure_message: str, operation: str, task_id: Optional[str], e: Exception) -> TaskPanelRequestError:
    return TaskPanelRequestError(
        f"{failure_message}: malformed response body",
        operation=operation,
        task_id=task_id,
        cause=str(e),
    )


def parse_record(
    model: Type[M], body: Any, failure_message: str, operation: str, task_id: Optional[str] = None,
) -> M:
    try:
        return model.model_validate(body)
    except ValidationError as e:
        raise _malformed(failure_message, operation, task_id, e) from e


def parse_records(
    model: Type[M], body: Any, failure_message: str, operation: str, task_id: Optional[str] = None,
) -> List[M]:
    if not isinstance(body, list):
        raise _malformed(failure_message, operation, task_id, TypeError("expected a JSON array"))
    return [parse_record(model, item, failure_message, operation, task_id) for item in body]


class MutationClient:
    """
    Typed access to task detail endpoints.

    Usage:
        client = MutationClient(ctx.transport, ctx.config)
        comment = await client.create_comment(task_id, "Looks good")
    """

    def __init__(self, transport: BackendTransport, config: Optional[ClientConfig] = None):
        self._transport = transport
        self._config = config or ClientConfig()

    async def _call(
        self,
        method: str,
        path: str,
        operation: str,
        failure_message: str,
        **kwargs: Any,
    ) -> Any:
        return await self._transport.request(
            method,
            path,
            failure_message=failure_message,
            operation=operation,
            **kwargs,
        )

    # ── Task ──

    async def get_task(self, task_id: str) -> Task:
        validation.require_id(task_id, "task_id")
        body = await self._call("GET", f"/tasks/{task_id}", "get_task", "Failed to fetch task")
        return parse_record(Task, body, "Failed to fetch task", "get_task", task_id)

    async def update_task(self, task_id: str, **changes: Any) -> Task:
        validation.require_id(task_id, "task_id")
        changes = validation.validate_task_changes(changes, task_id=task_id)
        payload = {
            k: v.isoformat() if hasattr(v, "isoformat") else v
            for k, v in changes.items()
        }
        body = await self._call(
            "PATCH", f"/tasks/{task_id}", "update_task", "Failed to update task", json=payload,
        )
        return parse_record(Task, body, "Failed to update task", "update_task", task_id)

    async def delete_task(self, task_id: str) -> None:
        validation.require_id(task_id, "task_id")
        await self._call("DELETE", f"/tasks/{task_id}", "delete_task", "Failed to delete task")

    # ── Comments ──

    async def list_comments(self, task_id: str) -> List[Comment]:
        validation.require_id(task_id, "task_id")
        body = await self._call(
            "GET", f"/tasks/{task_id}/comments", "list_comments", "Failed to fetch comments",
        )
        return parse_records(Comment, body, "Failed to fetch comments", "list_comments", task_id)

    async def create_comment(
        self, task_id: str, content: str, parent_id: Optional[str] = None,
    ) -> Comment:
        validation.require_id(task_id, "task_id")
        content = validation.require_text(content, "content", "Comment content", task_id=task_id)
        payload: Dict[str, Any] = {"content": content}
        if parent_id:
            payload["parent_id"] = parent_id
        body = await self._call(
            "POST", f"/tasks/{task_id}/comments", "create_comment",
            "Failed to create comment", json=payload,
        )
        return parse_record(Comment, body, "Failed to create comment", "create_comment", task_id)

    async def update_comment(self, task_id: str, comment_id: str, content: str) -> Comment:
        validation.require_id(comment_id, "comment_id")
        content = validation.require_text(content, "content", "Comment content", task_id=task_id)
        body = await self._call(
            "PATCH", f"/tasks/{task_id}/comments/{comment_id}", "update_comment",
            "Failed to update comment", json={"content": content},
        )
        return parse_record(Comment, body, "Failed to update comment", "update_comment", task_id)

    async def delete_comment(self, task_id: str, comment_id: str) -> Optional[Comment]:
        """
        Delete a comment. Returns the tombstoned Comment when the backend
        soft-deleted it (it has replies), None for a hard delete.
        """
        validation.require_id(comment_id, "comment_id")
        body = await self._call(
            "DELETE", f"/tasks/{task_id}/comments/{comment_id}", "delete_comment",
            "Failed to delete comment",
        )
        if isinstance(body, dict) and "id" in body:
            return parse_record(Comment, body, "Failed to delete comment", "delete_comment", task_id)
        return None

    # ── Subtasks ──

    async def list_subtasks(self, task_id: str) -> List[Subtask]:
        validation.require_id(task_id, "task_id")
        body = await self._call(
            "GET", f"/tasks/{task_id}/subtasks", "list_subtasks", "Failed to fetch subtasks",
        )
        return parse_records(Subtask, body, "Failed to fetch subtasks", "list_subtasks", task_id)

    async def create_subtask(
        self, task_id: str, title: str, description: Optional[str] = None,
    ) -> Subtask:
        validation.require_id(task_id, "task_id")
        title = validation.require_text(
            title, "title", "Subtask title", max_length=validation.TITLE_MAX_LENGTH, task_id=task_id,
        )
        payload: Dict[str, Any] = {"title": title}
        if description:
            payload["description"] = description
        body = await self._call(
            "POST", f"/tasks/{task_id}/subtasks", "create_subtask",
            "Failed to create subtask", json=payload,
        )
        return parse_record(Subtask, body, "Failed to create subtask", "create_subtask", task_id)

    async def update_subtask(self, task_id: str, subtask_id: str, **changes: Any) -> Subtask:
        validation.require_id(subtask_id, "subtask_id")
        changes = validation.validate_subtask_changes(changes, task_id=task_id)
        body = await self._call(
            "PATCH", f"/tasks/{task_id}/subtasks/{subtask_id}", "update_subtask",
            "Failed to update subtask", json=changes,
        )
        return parse_record(Subtask, body, "Failed to update subtask", "update_subtask", task_id)

    async def delete_subtask(self, task_id: str, subtask_id: str) -> None:
        validation.require_id(subtask_id, "subtask_id")
        await self._call(
            "DELETE", f"/tasks/{task_id}/subtasks/{subtask_id}", "delete_subtask",
            "Failed to delete subtask",
        )

    # ── Collaborators ──

    async def list_collaborators(self, task_id: str) -> List[Collaborator]:
        validation.require_id(task_id, "task_id")
        body = await self._call(
            "GET", f"/tasks/{task_id}/collaborators", "list_collaborators",
            "Failed to fetch collaborators",
        )
        return parse_records(
            Collaborator, body, "Failed to fetch collaborators", "list_collaborators", task_id,
        )

    async def add_collaborator(self, task_id: str, user_id: str, role: Any = "assignee") -> Collaborator:
        validation.require_id(task_id, "task_id")
        validation.require_id(user_id, "user_id", task_id=task_id)
        role = validation.validate_role(role, task_id=task_id)
        body = await self._call(
            "POST", f"/tasks/{task_id}/collaborators", "add_collaborator",
            "Failed to add collaborator", json={"user_id": user_id, "role": role},
        )
        return parse_record(Collaborator, body, "Failed to add collaborator", "add_collaborator", task_id)

    async def update_collaborator_role(
        self, task_id: str, collaborator_id: str, role: Any,
    ) -> Collaborator:
        validation.require_id(collaborator_id, "collaborator_id")
        role = validation.validate_role(role, task_id=task_id)
        body = await self._call(
            "PATCH", f"/tasks/{task_id}/collaborators/{collaborator_id}",
            "update_collaborator_role", "Failed to update collaborator", json={"role": role},
        )
        return parse_record(
            Collaborator, body, "Failed to update collaborator", "update_collaborator_role", task_id,
        )

    async def remove_collaborator(self, task_id: str, collaborator_id: str) -> None:
        validation.require_id(collaborator_id, "collaborator_id")
        await self._call(
            "DELETE", f"/tasks/{task_id}/collaborators/{collaborator_id}", "remove_collaborator",
            "Failed to remove collaborator",
        )

    # ── Tags ──

    async def list_task_tags(self, task_id: str) -> List[AssignedTag]:
        validation.require_id(task_id, "task_id")
        body = await self._call(
            "GET", f"/tasks/{task_id}/tags", "list_task_tags", "Failed to fetch tags",
        )
        return parse_records(AssignedTag, body, "Failed to fetch tags", "list_task_tags", task_id)

    async def list_workspace_tags(self, workspace_id: str) -> List[Tag]:
        validation.require_id(workspace_id, "workspace_id")
        body = await self._call(
            "GET", f"/workspaces/{workspace_id}/tags", "list_workspace_tags", "Failed to fetch tags",
        )
        return parse_records(Tag, body, "Failed to fetch tags", "list_workspace_tags")

    async def add_tag(
        self,
        task_id: str,
        tag_id: Optional[str] = None,
        tag_name: Optional[str] = None,
        tag_color: Optional[str] = None,
    ) -> AssignedTag:
        """Assign an existing tag by id, or create-and-assign one by name."""
        validation.require_id(task_id, "task_id")
        name = validation.validate_tag_ref(tag_id, tag_name, tag_color, task_id=task_id)
        if tag_id:
            payload: Dict[str, Any] = {"tag_id": tag_id}
        else:
            payload = {"tag_name": name, "tag_color": tag_color or self._config.tags.default_color}
        body = await self._call(
            "POST", f"/tasks/{task_id}/tags", "add_tag", "Failed to add tag", json=payload,
        )
        return parse_record(AssignedTag, body, "Failed to add tag", "add_tag", task_id)

    async def remove_tag(self, task_id: str, task_tag_id: str) -> None:
        validation.require_id(task_tag_id, "task_tag_id")
        await self._call(
            "DELETE", f"/tasks/{task_id}/tags/{task_tag_id}", "remove_tag", "Failed to remove tag",
        )

    # ── Activity ──

    async def fetch_activity(
        self,
        task_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
        type: Optional[str] = None,
    ) -> ActivityPage:
        """One page of activity, newest first. has_more when exactly `limit` rows come back."""
        validation.require_id(task_id, "task_id")
        limit = limit if limit is not None else self._config.activity.page_size
        validation.validate_pagination(limit, offset, task_id=task_id)
        body = await self._call(
            "GET", f"/tasks/{task_id}/activity", "fetch_activity", "Failed to fetch activity",
            params={"limit": limit, "offset": offset, "type": type},
        )
        if not isinstance(body, list):
            raise _malformed(
                "Failed to fetch activity", "fetch_activity", task_id, TypeError("expected a JSON array"),
            )
        try:
            items = [parse_activity(row) for row in body]
        except (ValidationError, AttributeError) as e:
            raise _malformed("Failed to fetch activity", "fetch_activity", task_id, e) from e
        return ActivityPage(items=items, limit=limit, offset=offset, type=type)
