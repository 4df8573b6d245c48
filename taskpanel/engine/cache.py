"""
TaskPanel Query Cache — Per-session, in-memory cache of backend query results.

Key format (string keys, glob-matchable):
    task:{task_id}                  task detail
    tasks:list:{scope}              task list views (workspace boards, my tasks)
    comments:task:{task_id}         flat comment list
    subtasks:task:{task_id}
    collaborators:task:{task_id}
    tags:task:{task_id}             tags assigned to a task
    tags:workspace:{workspace_id}   tags available in a workspace
    activity:task:{task_id}         activity feed pages loaded so far
    friendships:{status}

Writes are atomic per key: an entry is always replaced by a new value, never
patched in place. Snapshots deep-copy the value so a restore brings back
exactly the state seen when the snapshot was taken.
"""

from __future__ import annotations

import copy
import fnmatch
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

logger = logging.getLogger("taskpanel.engine.cache")

Listener = Callable[[str, str], None]


class CacheKeys:
    """Key builders shared by views, the optimistic store and invalidation."""

    @staticmethod
    def task(task_id: str) -> str:
        return f"task:{task_id}"

    @staticmethod
    def task_list(scope: str) -> str:
        return f"tasks:list:{scope}"

    TASK_LISTS = "tasks:list:*"

    @staticmethod
    def comments(task_id: str) -> str:
        return f"comments:task:{task_id}"

    @staticmethod
    def subtasks(task_id: str) -> str:
        return f"subtasks:task:{task_id}"

    @staticmethod
    def collaborators(task_id: str) -> str:
        return f"collaborators:task:{task_id}"

    @staticmethod
    def task_tags(task_id: str) -> str:
        return f"tags:task:{task_id}"

    @staticmethod
    def workspace_tags(workspace_id: str) -> str:
        return f"tags:workspace:{workspace_id}"

    @staticmethod
    def activity(task_id: str) -> str:
        return f"activity:task:{task_id}"

    @staticmethod
    def friendships(status: Optional[str] = None) -> str:
        return f"friendships:{status or 'all'}"

    FRIENDSHIPS = "friendships:*"

    @staticmethod
    def for_task(task_id: str) -> List[str]:
        """Every detail key scoped to one task."""
        return [
            CacheKeys.task(task_id),
            CacheKeys.comments(task_id),
            CacheKeys.subtasks(task_id),
            CacheKeys.collaborators(task_id),
            CacheKeys.task_tags(task_id),
            CacheKeys.activity(task_id),
        ]


@dataclass
class CacheEntry:
    """One cached value. Replaced wholesale on every write."""
    key: str
    value: Any
    version: int
    updated_at: float
    stale: bool = False


@dataclass(frozen=True)
class CacheSnapshot:
    """Full copy of an entry (or its absence) captured before a mutation."""
    key: str
    existed: bool
    value: Any
    version: int


class QueryCache:
    """
    In-memory cache keyed by entity key.

    Supports:
    - get / set / delete / delete_pattern
    - snapshot / restore for optimistic rollback
    - invalidate / invalidate_pattern (marks stale, value kept for display)
    - listeners notified with (key, event) on every change
    """

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._listeners: List[tuple] = []
        self._version = 0

    # ── Core Operations ──

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        return entry.value if entry is not None else default

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> int:
        """Replace the entry for key. Returns the new version."""
        self._version += 1
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            version=self._version,
            updated_at=time.time(),
        )
        self._notify(key, "set")
        return self._version

    def delete(self, key: str) -> bool:
        if self._entries.pop(key, None) is None:
            return False
        self._notify(key, "delete")
        return True

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern. Returns count deleted."""
        keys = self.keys(pattern)
        for key in keys:
            self.delete(key)
        return len(keys)

    def exists(self, key: str) -> bool:
        return key in self._entries

    def keys(self, pattern: str = "*") -> List[str]:
        return [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]

    # ── Staleness ──

    def invalidate(self, key: str) -> bool:
        """Mark an entry stale so its owner refetches. Value stays visible."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        self._entries[key] = CacheEntry(
            key=key,
            value=entry.value,
            version=entry.version,
            updated_at=entry.updated_at,
            stale=True,
        )
        self._notify(key, "invalidate")
        return True

    def invalidate_pattern(self, pattern: str) -> List[str]:
        """Invalidate every key matching pattern. Returns the keys marked."""
        marked = [k for k in self.keys(pattern) if self.invalidate(k)]
        if marked:
            logger.debug("Invalidated %d key(s) for %s", len(marked), pattern)
        return marked

    def is_stale(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.stale

    def stale_keys(self, pattern: str = "*") -> List[str]:
        return [k for k in self.keys(pattern) if self._entries[k].stale]

    # ── Snapshots ──

    def snapshot(self, key: str) -> CacheSnapshot:
        entry = self._entries.get(key)
        if entry is None:
            return CacheSnapshot(key=key, existed=False, value=None, version=0)
        return CacheSnapshot(
            key=key,
            existed=True,
            value=copy.deepcopy(entry.value),
            version=entry.version,
        )

    def restore(self, snapshot: CacheSnapshot) -> None:
        """Bring back exactly the captured state in a single replace."""
        if not snapshot.existed:
            self.delete(snapshot.key)
            return
        self._version += 1
        self._entries[snapshot.key] = CacheEntry(
            key=snapshot.key,
            value=copy.deepcopy(snapshot.value),
            version=self._version,
            updated_at=time.time(),
        )
        self._notify(snapshot.key, "restore")

    # ── Listeners ──

    def subscribe(self, pattern: str, listener: Listener) -> Callable[[], None]:
        """Call listener(key, event) for changes to keys matching pattern."""
        token = (pattern, listener)
        self._listeners.append(token)

        def unsubscribe() -> None:
            if token in self._listeners:
                self._listeners.remove(token)

        return unsubscribe

    def _notify(self, key: str, event: str) -> None:
        for pattern, listener in list(self._listeners):
            if fnmatch.fnmatchcase(key, pattern):
                listener(key, event)

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "stale": len(self.stale_keys()),
            "listeners": len(self._listeners),
        }


# ---------------------------------------------------------------------------
# List helpers: each returns a new list and leaves its input untouched
# ---------------------------------------------------------------------------

def _item_id(item: Any) -> Any:
    return item.get("id") if isinstance(item, dict) else getattr(item, "id", None)


def append_item(items: Optional[Sequence[Any]], item: Any) -> List[Any]:
    return [*(items or []), item]


def replace_item(items: Optional[Sequence[Any]], item_id: Any, new_item: Any) -> List[Any]:
    """Swap the item with item_id for new_item; append if absent."""
    result: List[Any] = []
    found = False
    new_id = _item_id(new_item)
    for existing in items or []:
        existing_id = _item_id(existing)
        if existing_id == item_id or existing_id == new_id:
            # Server copy may already be present (e.g. after a refetch)
            if not found:
                result.append(new_item)
                found = True
            continue
        result.append(existing)
    if not found:
        result.append(new_item)
    return result


def remove_item(items: Optional[Sequence[Any]], item_id: Any) -> List[Any]:
    return [i for i in items or [] if _item_id(i) != item_id]


def patch_item(items: Optional[Sequence[Any]], item_id: Any, **changes: Any) -> List[Any]:
    """Return a new list where the matching pydantic item is copied with changes."""
    return [
        i.model_copy(update=changes) if _item_id(i) == item_id else i
        for i in items or []
    ]


def find_item(items: Optional[Sequence[Any]], item_id: Any) -> Optional[Any]:
    for i in items or []:
        if _item_id(i) == item_id:
            return i
    return None
