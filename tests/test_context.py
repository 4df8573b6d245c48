"""Unit tests for taskpanel.engine.context — session state and the view context."""

import pytest

from taskpanel.engine.cache import QueryCache
from taskpanel.engine.config import ClientConfig
from taskpanel.engine.context import SessionContext, TaskPanelContext
from taskpanel.engine.errors import TaskPanelStaleResponseError
from taskpanel.engine.mutation import OptimisticStore
from taskpanel.engine.transport import BackendTransport


class TestSessionContext:

    def test_defaults(self):
        s = SessionContext(user_id="user-1")
        assert s.session_id.startswith("sess_")
        assert s.active_task_id is None
        assert s.auth_headers() == {}

    def test_session_ids_unique(self):
        assert SessionContext(user_id="a").session_id != SessionContext(user_id="a").session_id

    def test_activate_and_is_active(self):
        s = SessionContext(user_id="user-1")
        s.activate_task("task-1")
        assert s.is_active("task-1")
        assert not s.is_active("task-2")
        assert not s.is_active(None)

    def test_deactivate_only_matching(self):
        s = SessionContext(user_id="user-1", active_task_id="task-1")
        s.deactivate_task("task-2")
        assert s.active_task_id == "task-1"
        s.deactivate_task("task-1")
        assert s.active_task_id is None

    def test_deactivate_any(self):
        s = SessionContext(user_id="user-1", active_task_id="task-1")
        s.deactivate_task()
        assert s.active_task_id is None

    def test_require_active_raises_stale(self):
        s = SessionContext(user_id="user-1", active_task_id="task-2")
        with pytest.raises(TaskPanelStaleResponseError) as exc:
            s.require_active("task-1")
        assert exc.value.task_id == "task-1"
        assert exc.value.active_task_id == "task-2"

    def test_auth_headers(self):
        s = SessionContext(user_id="user-1", access_token="tok")
        assert s.auth_headers() == {"Authorization": "Bearer tok"}

    def test_to_dict_omits_token(self):
        d = SessionContext(user_id="user-1", username="alice", access_token="secret").to_dict()
        assert d["username"] == "alice"
        assert "secret" not in d.values()
        assert "access_token" not in d


class TestTaskPanelContext:

    def test_create_wires_components(self, config, session, http_client):
        ctx = TaskPanelContext.create(config, session, http_client=http_client)
        assert isinstance(ctx.transport, BackendTransport)
        assert isinstance(ctx.cache, QueryCache)
        assert isinstance(ctx.store, OptimisticStore)
        assert ctx.store.cache is ctx.cache
        assert ctx.transport.session is session
        assert ctx.event_log is not None

    def test_contexts_do_not_share_caches(self, session):
        a = TaskPanelContext.create(ClientConfig(), session)
        b = TaskPanelContext.create(ClientConfig(), session)
        a.cache.set("task:1", "x")
        assert b.cache.get("task:1") is None

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self, ctx, http_client):
        await ctx.aclose()
        assert not http_client.is_closed
