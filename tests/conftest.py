"""
TaskPanel Test Suite — Shared fixtures and an in-memory fake backend.

Run:  pytest tests/ -v
"""

from __future__ import annotations

import asyncio
import itertools
import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from taskpanel.api.client import MutationClient
from taskpanel.engine.config import BackendConfig, ClientConfig
from taskpanel.engine.context import SessionContext, TaskPanelContext
from taskpanel.engine.logging import EventLog
from taskpanel.ui.task_detail import TaskDetailView

BASE_URL = "http://test/api"
EPOCH = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
PLACEHOLDER = "[This comment has been deleted]"


# ---------------------------------------------------------------------------
# Reset module-level config between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config():
    """Reset global singletons between tests."""
    import taskpanel.engine.config as cfg_mod

    cfg_mod._client_config = None
    yield
    cfg_mod._client_config = None


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------

def _error(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"error": message})


class FakeBackend:
    """
    REST-ish backend kept in plain dicts, served through httpx.MockTransport.

    - fail(method, path, ...)   next matching request gets an error response
    - gate(method, path)        matching requests wait until the event is set
    - requests                  every request received, in order
    """

    def __init__(self, user_id: str = "user-1"):
        self.user_id = user_id
        self.users: Dict[str, str] = {"alice": "user-1", "bob": "user-2", "carol": "user-3"}
        self.tasks: Dict[str, Dict[str, Any]] = {}
        self.comments: List[Dict[str, Any]] = []
        self.subtasks: List[Dict[str, Any]] = []
        self.collaborators: List[Dict[str, Any]] = []
        self.task_tags: List[Dict[str, Any]] = []
        self.workspace_tags: List[Dict[str, Any]] = []
        self.activity: List[Dict[str, Any]] = []
        self.friendships: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self._failures: List[Tuple[str, str, httpx.Response, bool]] = []
        self._gates: List[Tuple[str, str, asyncio.Event]] = []
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    # ── Test controls ──

    def fail(self, method: str, path: str, status: int = 500,
             error: Optional[str] = "Internal server error", body: Optional[bytes] = None,
             once: bool = True) -> None:
        if body is not None:
            response = httpx.Response(status, content=body)
        elif error is None:
            response = httpx.Response(status, json={})
        else:
            response = _error(status, error)
        self._failures.append((method, path, response, once))

    def disconnect(self, method: str, path: str) -> None:
        self._failures.append((method, path, None, True))

    def gate(self, method: str, path: str) -> asyncio.Event:
        event = asyncio.Event()
        self._gates.append((method, path, event))
        return event

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and self._path(r) == path)

    # ── Seeding ──

    def now(self) -> str:
        return (EPOCH + timedelta(minutes=next(self._clock))).isoformat()

    def new_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids)}"

    def seed_task(self, task_id: str = "task-1", **fields: Any) -> Dict[str, Any]:
        task = {
            "id": task_id,
            "title": "Write release notes",
            "description": "For 1.0",
            "status": "todo",
            "priority": "medium",
            "list_id": "list-1",
            "workspace_id": "ws-1",
            "created_by": self.user_id,
            "created_at": EPOCH.isoformat(),
            "updated_at": EPOCH.isoformat(),
            "completed_at": None,
        }
        task.update(fields)
        self.tasks[task_id] = task
        return task

    def seed_comment(self, task_id: str = "task-1", content: str = "hi",
                     parent_id: Optional[str] = None, comment_id: Optional[str] = None,
                     author: Optional[str] = None) -> Dict[str, Any]:
        comment = {
            "id": comment_id or self.new_id("c"),
            "task_id": task_id,
            "author": author or self.user_id,
            "parent_id": parent_id,
            "content": content,
            "created_at": self.now(),
            "edited_at": None,
            "is_deleted": False,
            "deleted_at": None,
        }
        self.comments.append(comment)
        return comment

    def seed_subtask(self, task_id: str = "task-1", title: str = "step",
                     completed: bool = False, subtask_id: Optional[str] = None) -> Dict[str, Any]:
        now = self.now()
        subtask = {
            "id": subtask_id or self.new_id("s"),
            "task_id": task_id,
            "title": title,
            "description": None,
            "completed": completed,
            "completed_at": now if completed else None,
            "created_at": now,
            "updated_at": now,
        }
        self.subtasks.append(subtask)
        return subtask

    def seed_workspace_tag(self, name: str, color: str = "#10B981",
                           workspace_id: str = "ws-1", tag_id: Optional[str] = None) -> Dict[str, Any]:
        tag = {
            "id": tag_id or self.new_id("tag"),
            "name": name,
            "color": color,
            "workspace_id": workspace_id,
            "created_at": EPOCH.isoformat(),
        }
        self.workspace_tags.append(tag)
        return tag

    def seed_task_tag(self, tag: Dict[str, Any], task_id: str = "task-1") -> Dict[str, Any]:
        assigned = {**tag, "task_id": task_id, "task_tag_id": self.new_id("tt"), "assigned_at": self.now()}
        self.task_tags.append(assigned)
        return assigned

    def seed_activity(self, type: str, task_id: str = "task-1", **payload: Any) -> Dict[str, Any]:
        row = {
            "id": next(self._ids),
            "task_id": task_id,
            "actor": self.user_id,
            "type": type,
            "payload": payload,
            "created_at": self.now(),
        }
        self.activity.append(row)
        return row

    def seed_friendship(self, user_id: str, friend_id: str, status: str = "pending") -> Dict[str, Any]:
        row = {
            "id": self.new_id("f"),
            "user_id": user_id,
            "friend_id": friend_id,
            "status": status,
            "created_at": self.now(),
        }
        self.friendships.append(row)
        return row

    # ── Transport handler ──

    @staticmethod
    def _path(request: httpx.Request) -> str:
        path = request.url.path
        return path[len("/api"):] if path.startswith("/api") else path

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, self._path(request)

        for g_method, g_path, event in list(self._gates):
            if g_method == method and g_path == path:
                self._gates.remove((g_method, g_path, event))
                await event.wait()

        for entry in list(self._failures):
            f_method, f_path, response, once = entry
            if f_method == method and f_path == path:
                if once:
                    self._failures.remove(entry)
                if response is None:
                    raise httpx.ConnectError("connection refused", request=request)
                return response

        body = None
        if request.content:
            body = json.loads(request.content)
        return self._route(method, path, dict(request.url.params), body or {})

    def _route(self, method: str, path: str, params: Dict[str, str], body: Dict[str, Any]) -> httpx.Response:
        m = re.fullmatch(r"/tasks/([^/]+)", path)
        if m:
            return self._task(method, m.group(1), body)
        m = re.fullmatch(r"/tasks/([^/]+)/(comments|subtasks|collaborators|tags|activity)(?:/([^/]+))?", path)
        if m:
            task_id, resource, item_id = m.groups()
            if task_id not in self.tasks:
                return _error(404, "Task not found")
            handler = getattr(self, f"_{resource}")
            return handler(method, task_id, item_id, params, body)
        m = re.fullmatch(r"/workspaces/([^/]+)/tags", path)
        if m and method == "GET":
            return httpx.Response(200, json=[t for t in self.workspace_tags if t["workspace_id"] == m.group(1)])
        m = re.fullmatch(r"/friendships(?:/([^/]+))?", path)
        if m:
            return self._friendships(method, m.group(1), params, body)
        return _error(404, "Not found")

    def _log(self, task_id: str, type: str, **payload: Any) -> None:
        self.seed_activity(type, task_id=task_id, **payload)

    def _task(self, method: str, task_id: str, body: Dict[str, Any]) -> httpx.Response:
        task = self.tasks.get(task_id)
        if task is None:
            return _error(404, "Task not found")
        if method == "GET":
            return httpx.Response(200, json=task)
        if method == "PATCH":
            old_status = task["status"]
            task = {**task, **body, "updated_at": self.now()}
            if "status" in body:
                task["completed_at"] = self.now() if body["status"] == "completed" else None
                self._log(task_id, "task_status_changed", **{"from": old_status, "to": body["status"]})
            if "priority" in body:
                self._log(task_id, "priority_changed", priority=body["priority"])
            self.tasks[task_id] = task
            return httpx.Response(200, json=task)
        if method == "DELETE":
            del self.tasks[task_id]
            return httpx.Response(200, json={"message": "Task deleted successfully"})
        return _error(405, "Method not allowed")

    def _comments(self, method, task_id, comment_id, params, body) -> httpx.Response:
        if method == "GET" and comment_id is None:
            return httpx.Response(200, json=[c for c in self.comments if c["task_id"] == task_id])
        if method == "POST":
            content = (body.get("content") or "").strip()
            if not content:
                return _error(400, "Content is required")
            parent_id = body.get("parent_id")
            if parent_id:
                parent = next((c for c in self.comments if c["id"] == parent_id), None)
                if parent is None or parent["task_id"] != task_id:
                    return _error(400, "Parent comment not found")
            comment = self.seed_comment(task_id, content, parent_id=parent_id)
            self._log(task_id, "comment_reply_added" if parent_id else "comment_added",
                      comment_id=comment["id"], content=content, parent_id=parent_id)
            return httpx.Response(201, json=comment)

        comment = next((c for c in self.comments if c["id"] == comment_id and c["task_id"] == task_id), None)
        if comment is None:
            return _error(404, "Comment not found")
        if method == "PATCH":
            old = comment["content"]
            comment.update(content=body["content"], edited_at=self.now())
            self._log(task_id, "comment_edited", comment_id=comment_id, old_content=old,
                      new_content=body["content"])
            return httpx.Response(200, json=comment)
        if method == "DELETE":
            has_replies = any(c.get("parent_id") == comment_id for c in self.comments)
            self._log(task_id, "comment_deleted", comment_id=comment_id, soft_delete=has_replies,
                      had_replies=has_replies, content=comment["content"])
            if has_replies:
                comment.update(content=PLACEHOLDER, is_deleted=True, deleted_at=self.now())
                return httpx.Response(200, json=comment)
            self.comments.remove(comment)
            return httpx.Response(200, json={"message": "Task comment deleted successfully"})
        return _error(405, "Method not allowed")

    def _subtasks(self, method, task_id, subtask_id, params, body) -> httpx.Response:
        if method == "GET" and subtask_id is None:
            return httpx.Response(200, json=[s for s in self.subtasks if s["task_id"] == task_id])
        if method == "POST":
            title = (body.get("title") or "").strip()
            if not title:
                return _error(400, "Title is required")
            subtask = self.seed_subtask(task_id, title)
            subtask["description"] = body.get("description")
            self._log(task_id, "subtask_added", subtask_id=subtask["id"], title=title)
            return httpx.Response(201, json=subtask)

        subtask = next((s for s in self.subtasks if s["id"] == subtask_id), None)
        if subtask is None:
            return _error(404, "Subtask not found")
        if method == "PATCH":
            now = self.now()
            for k in ("title", "description"):
                if k in body:
                    subtask[k] = body[k]
            if "completed" in body:
                subtask["completed"] = bool(body["completed"])
                subtask["completed_at"] = now if body["completed"] else None
                self._log(task_id, "subtask_completed" if body["completed"] else "subtask_reopened",
                          subtask_id=subtask_id, title=subtask["title"])
            subtask["updated_at"] = now
            return httpx.Response(200, json=subtask)
        if method == "DELETE":
            self.subtasks.remove(subtask)
            self._log(task_id, "subtask_deleted", subtask_id=subtask_id, title=subtask["title"])
            return httpx.Response(200, json={"message": "Subtask deleted successfully"})
        return _error(405, "Method not allowed")

    def _collaborators(self, method, task_id, collaborator_id, params, body) -> httpx.Response:
        if method == "GET" and collaborator_id is None:
            return httpx.Response(200, json=[c for c in self.collaborators if c["task_id"] == task_id])
        if method == "POST":
            if any(c["task_id"] == task_id and c["user_id"] == body["user_id"] for c in self.collaborators):
                return _error(409, "User is already a collaborator on this task")
            row = {
                "id": self.new_id("col"),
                "task_id": task_id,
                "user_id": body["user_id"],
                "role": body.get("role", "assignee"),
                "added_by": self.user_id,
                "created_at": self.now(),
            }
            self.collaborators.append(row)
            self._log(task_id, "collaborator_added", collaborator_id=body["user_id"],
                      role=row["role"], added_by=self.user_id)
            return httpx.Response(201, json=row)

        row = next((c for c in self.collaborators if c["id"] == collaborator_id), None)
        if row is None:
            return _error(404, "Collaborator not found")
        if method == "PATCH":
            old = row["role"]
            row["role"] = body["role"]
            self._log(task_id, "collaborator_role_updated", collaborator_id=row["user_id"],
                      old_role=old, new_role=body["role"])
            return httpx.Response(200, json=row)
        if method == "DELETE":
            self.collaborators.remove(row)
            self._log(task_id, "collaborator_removed", collaborator_id=row["user_id"], role=row["role"],
                      removed_by=self.user_id, self_removed=row["user_id"] == self.user_id)
            return httpx.Response(200, json={"message": "Collaborator removed"})
        return _error(405, "Method not allowed")

    def _tags(self, method, task_id, task_tag_id, params, body) -> httpx.Response:
        if method == "GET":
            return httpx.Response(200, json=[
                {k: v for k, v in t.items() if k != "task_id"}
                for t in self.task_tags if t["task_id"] == task_id
            ])
        if method == "POST":
            if body.get("tag_id"):
                tag = next((t for t in self.workspace_tags if t["id"] == body["tag_id"]), None)
                if tag is None:
                    return _error(404, "Tag not found")
            else:
                tag = self.seed_workspace_tag(body["tag_name"], body.get("tag_color", "#3B82F6"),
                                              workspace_id=self.tasks[task_id]["workspace_id"])
            if any(t["task_id"] == task_id and t["id"] == tag["id"] for t in self.task_tags):
                return _error(409, "Tag is already assigned to this task")
            assigned = self.seed_task_tag(tag, task_id)
            self._log(task_id, "tag_added", tag_id=tag["id"], tag_name=tag["name"], tag_color=tag["color"])
            return httpx.Response(201, json={k: v for k, v in assigned.items() if k != "task_id"})
        if method == "DELETE":
            row = next((t for t in self.task_tags if t["task_tag_id"] == task_tag_id), None)
            if row is None:
                return _error(404, "Tag not found on this task")
            self.task_tags.remove(row)
            self._log(task_id, "tag_removed", tag_id=row["id"], tag_name=row["name"], tag_color=row["color"])
            return httpx.Response(200, json={"message": "Tag removed from task successfully"})
        return _error(405, "Method not allowed")

    def _activity(self, method, task_id, _item_id, params, body) -> httpx.Response:
        rows = [a for a in self.activity if a["task_id"] == task_id]
        if params.get("type"):
            rows = [a for a in rows if a["type"] == params["type"]]
        rows.sort(key=lambda a: a["created_at"], reverse=True)
        offset = int(params.get("offset", 0))
        limit = int(params.get("limit", 20))
        return httpx.Response(200, json=rows[offset:offset + limit])

    def _friendships(self, method, friendship_id, params, body) -> httpx.Response:
        mine = [f for f in self.friendships if self.user_id in (f["user_id"], f["friend_id"])]
        if friendship_id == "requests" and method == "GET":
            return httpx.Response(200, json=[
                f for f in mine if f["friend_id"] == self.user_id and f["status"] == "pending"
            ])
        if friendship_id is None and method == "GET":
            if params.get("status"):
                mine = [f for f in mine if f["status"] == params["status"]]
            return httpx.Response(200, json=mine)
        if friendship_id is None and method == "POST":
            friend_id = self.users.get(body.get("friend_username", ""))
            if friend_id is None:
                return _error(404, "User not found")
            if friend_id == self.user_id:
                return _error(400, "Cannot send friend request to yourself")
            pair = {self.user_id, friend_id}
            if any({f["user_id"], f["friend_id"]} == pair for f in self.friendships):
                return _error(409, "Friend request already sent")
            return httpx.Response(201, json=self.seed_friendship(self.user_id, friend_id))

        row = next((f for f in mine if f["id"] == friendship_id), None)
        if row is None:
            return _error(404, "Friend request not found")
        if method == "PATCH":
            row["status"] = {"accept": "accepted", "reject": "rejected"}[body["action"]]
            return httpx.Response(200, json=row)
        if method == "DELETE":
            self.friendships.remove(row)
            return httpx.Response(200, json={"message": "Friendship removed"})
        return _error(405, "Method not allowed")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def seeded(backend):
    """task-1 with 3 subtasks (2 done), one comment thread and a few activities."""
    backend.seed_task("task-1")
    backend.seed_task("task-2", title="Other task")
    backend.seed_subtask(title="Draft", completed=True, subtask_id="s-1")
    backend.seed_subtask(title="Review", completed=True, subtask_id="s-2")
    backend.seed_subtask(title="Publish", completed=False, subtask_id="s-3")
    backend.seed_comment(content="First!", comment_id="c-A")
    backend.seed_comment(content="Agreed", parent_id="c-A", comment_id="c-B", author="user-2")
    backend.seed_activity("task_created")
    backend.seed_activity("comment_added", comment_id="c-A", content="First!")
    return backend


@pytest.fixture
def http_client(backend):
    return httpx.AsyncClient(transport=httpx.MockTransport(backend.handler), base_url=BASE_URL)


@pytest.fixture
def config():
    return ClientConfig(backend=BackendConfig(base_url=BASE_URL))


@pytest.fixture
def session():
    return SessionContext(user_id="user-1", username="alice", access_token="tok-123")


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def ctx(config, session, http_client, event_log):
    return TaskPanelContext.create(config, session, http_client=http_client, event_log=event_log)


@pytest.fixture
def client(ctx):
    return MutationClient(ctx.transport, ctx.config)


@pytest.fixture
def notices():
    """Messages surfaced to the user through the view's notify callback."""
    return []


@pytest.fixture
def view(ctx, notices):
    return TaskDetailView(ctx, notify=notices.append)
