"""
TaskPanel — Task detail aggregation, comment threading and optimistic
mutations for a collaborative task workspace backend.

Subpackages:
    engine   — errors, config, logging, context, transport, cache, mutations
    records  — pydantic data model for tasks and their sub-entities
    rules    — pure functions (comment tree, progress, activity messages)
    api      — typed REST clients (task sub-entities, friendships)
    ui       — side panel state machine and task detail view
"""

__version__ = "1.0.0"
__all__ = ["engine", "records", "rules", "api", "ui"]
