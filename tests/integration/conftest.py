"""
Integration test fixtures — a project directory with taskpanel.yaml and an
on-disk JSONL event log, wired to the in-memory FakeBackend.

Run: pytest tests/integration/ -v -m integration
"""

from __future__ import annotations

import pytest

from taskpanel.engine.config import load_client_config
from taskpanel.engine.context import SessionContext, TaskPanelContext
from taskpanel.ui.task_detail import TaskDetailView


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: cross-module flows with file-backed config and logs")


@pytest.fixture
def integration_project(tmp_path):
    """Project tree: taskpanel.yaml at the root, event log under .taskpanel/logs."""
    root = tmp_path / "project"
    root.mkdir()
    log_dir = root / ".taskpanel" / "logs"
    (root / "taskpanel.yaml").write_text(
        "taskpanel:\n"
        "  name: IntegrationPanel\n"
        "  environment: staging\n"
        "  backend:\n"
        "    base_url: http://test/api\n"
        "  activity:\n"
        "    page_size: 5\n"
        "  comments:\n"
        "    deleted_placeholder: '[removed]'\n"
        "  logging:\n"
        "    level: DEBUG\n"
        f"    directory: {log_dir}\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def project_ctx(integration_project, http_client, monkeypatch):
    monkeypatch.chdir(integration_project)
    config = load_client_config()
    session = SessionContext(user_id="user-1", username="alice", access_token="tok-int")
    return TaskPanelContext.create(config, session, http_client=http_client)


@pytest.fixture
def project_view(project_ctx, notices):
    return TaskDetailView(project_ctx, notify=notices.append)
