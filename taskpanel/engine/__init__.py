"""TaskPanel Engine — Errors, config, logging, context, transport, cache, mutations."""

from taskpanel.engine.cache import QueryCache  # noqa: F401
from taskpanel.engine.context import SessionContext, TaskPanelContext  # noqa: F401
from taskpanel.engine.mutation import OptimisticStore, PendingMutation  # noqa: F401
from taskpanel.engine.transport import BackendTransport  # noqa: F401

__all__ = [
    "QueryCache",
    "SessionContext",
    "TaskPanelContext",
    "OptimisticStore",
    "PendingMutation",
    "BackendTransport",
]
