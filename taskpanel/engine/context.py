"""
TaskPanel Session & View Context — explicitly constructed, passed-down state.

There are no ambient singletons: a SessionContext describes who is signed in
and which task is currently displayed, and a TaskPanelContext bundles it with
the config, transport, cache and event log that every view receives.

Usage:
    from taskpanel.engine.context import SessionContext, TaskPanelContext

    ctx = TaskPanelContext.create(config, SessionContext(user_id="u1"))
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

from taskpanel.engine.errors import TaskPanelStaleResponseError

if TYPE_CHECKING:
    import httpx

    from taskpanel.engine.cache import QueryCache
    from taskpanel.engine.config import ClientConfig
    from taskpanel.engine.logging import EventLog
    from taskpanel.engine.mutation import OptimisticStore
    from taskpanel.engine.transport import BackendTransport


@dataclass
class SessionContext:
    """
    Per-session state: the signed-in user and the currently displayed task.

    active_task_id is the staleness reference — a response is applied only if
    the task it was requested for is still the active one.
    """

    user_id: str
    username: str = ""
    access_token: Optional[str] = None
    session_id: str = field(default_factory=lambda: f"sess_{uuid.uuid4().hex[:12]}")
    active_task_id: Optional[str] = None

    def activate_task(self, task_id: str) -> None:
        self.active_task_id = task_id

    def deactivate_task(self, task_id: Optional[str] = None) -> None:
        """Clear the active task (only if it matches, when task_id is given)."""
        if task_id is None or self.active_task_id == task_id:
            self.active_task_id = None

    def is_active(self, task_id: Optional[str]) -> bool:
        return task_id is not None and task_id == self.active_task_id

    def require_active(self, task_id: str) -> None:
        """Raise TaskPanelStaleResponseError unless task_id is displayed."""
        if not self.is_active(task_id):
            raise TaskPanelStaleResponseError(
                f"Task {task_id} is no longer displayed",
                task_id=task_id,
                active_task_id=self.active_task_id,
                session_id=self.session_id,
            )

    def auth_headers(self) -> Dict[str, str]:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging (never includes the token)."""
        return {
            "user_id": self.user_id,
            "username": self.username,
            "session_id": self.session_id,
            "active_task_id": self.active_task_id,
        }


@dataclass
class TaskPanelContext:
    """Everything a view needs, constructed once per session and passed down."""

    config: "ClientConfig"
    session: SessionContext
    transport: "BackendTransport"
    cache: "QueryCache"
    store: "OptimisticStore"
    event_log: Optional["EventLog"] = None

    @classmethod
    def create(
        cls,
        config: "ClientConfig",
        session: SessionContext,
        http_client: Optional["httpx.AsyncClient"] = None,
        event_log: Optional["EventLog"] = None,
    ) -> "TaskPanelContext":
        from taskpanel.engine.cache import QueryCache
        from taskpanel.engine.logging import EventLog
        from taskpanel.engine.mutation import OptimisticStore
        from taskpanel.engine.transport import BackendTransport

        if event_log is None:
            event_log = EventLog.from_config(config.logging)
        transport = BackendTransport(
            config.backend, session, client=http_client, event_log=event_log,
        )
        cache = QueryCache()
        store = OptimisticStore(cache, session, event_log=event_log)
        return cls(
            config=config,
            session=session,
            transport=transport,
            cache=cache,
            store=store,
            event_log=event_log,
        )

    async def aclose(self) -> None:
        await self.transport.aclose()
