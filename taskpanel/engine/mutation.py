"""
TaskPanel Optimistic Mutations — Pending-mutation state machine over QueryCache.

Lifecycle of one mutation:

    IDLE ──begin()──▶ PENDING ──commit()───▶ COMMITTED
                         │
                         └────rollback()──▶ ROLLED_BACK

begin()    snapshots every affected key, then applies the optimistic updaters.
commit()   folds the server payload into the confirmed value of each key.
rollback() restores the snapshot when the mutation was alone on the key.
           Otherwise the confirmed value is rebuilt with the remaining
           optimistic updaters re-applied on top, so neither an earlier nor a
           later mutation on the same key leaks into the result.

A key's visible value is always: confirmed value + pending updaters, applied
in initiation order. Confirmed values move forward only on receive() (a fetch
result) or commit() (a mutation result).
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from taskpanel.engine.cache import CacheKeys, CacheSnapshot, QueryCache
from taskpanel.engine.context import SessionContext
from taskpanel.engine.errors import TaskPanelError, TaskPanelMutationError
from taskpanel.engine.logging import EventLog, log_mutation_event, log_view_event

logger = logging.getLogger("taskpanel.engine.mutation")

T = TypeVar("T")
Updater = Callable[[Any], Any]
Reconciler = Callable[[Any, Any], Any]

class MutationState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


_TRANSITIONS = {
    MutationState.IDLE: {MutationState.PENDING},
    MutationState.PENDING: {MutationState.COMMITTED, MutationState.ROLLED_BACK},
    MutationState.COMMITTED: set(),
    MutationState.ROLLED_BACK: set(),
}


@dataclass
class PendingMutation:
    """
    One optimistic mutation.

    optimistic: key -> updater(old_value) -> new_value, applied at begin()
    reconcile:  key -> reconciler(old_value, server_result) -> new_value,
                applied at commit(); keys may differ from the optimistic ones
    invalidates: glob patterns marked stale after a successful commit
    """

    name: str
    task_id: Optional[str] = None
    optimistic: Dict[str, Updater] = field(default_factory=dict)
    reconcile: Dict[str, Reconciler] = field(default_factory=dict)
    invalidates: List[str] = field(default_factory=list)
    mutation_id: str = field(default_factory=lambda: f"mut_{uuid.uuid4().hex[:12]}")
    state: MutationState = MutationState.IDLE
    snapshots: Dict[str, CacheSnapshot] = field(default_factory=dict)
    error: Optional[TaskPanelError] = None
    stale: bool = False

    def transition(self, new_state: MutationState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise TaskPanelMutationError(
                f"Illegal transition {self.state.value} -> {new_state.value} "
                f"for mutation '{self.name}'",
                mutation_id=self.mutation_id,
                state=self.state.value,
                task_id=self.task_id,
            )
        self.state = new_state

    @property
    def keys(self) -> List[str]:
        return list(self.optimistic)

    @property
    def is_settled(self) -> bool:
        return self.state in (MutationState.COMMITTED, MutationState.ROLLED_BACK)


class OptimisticStore:
    """
    Applies PendingMutations to a QueryCache and keeps confirmed values.

    Usage:
        store = OptimisticStore(cache, session)
        store.receive(CacheKeys.comments(task_id), comments)
        result = await store.run(mutation, lambda: client.create_comment(...))
    """

    def __init__(
        self,
        cache: QueryCache,
        session: SessionContext,
        event_log: Optional[EventLog] = None,
    ):
        self._cache = cache
        self._session = session
        self._event_log = event_log
        self._pending: Dict[str, List[PendingMutation]] = {}
        self._confirmed: Dict[str, Any] = {}
        self._confirmed_version: Dict[str, int] = {}
        self._begin_version: Dict[str, Dict[str, int]] = {}
        self._stacked: Dict[str, List[str]] = {}

    @property
    def cache(self) -> QueryCache:
        return self._cache

    # ── Authoritative data ──

    def receive(self, key: str, value: Any) -> None:
        """Store a fetch result as the confirmed value and re-apply pending updates."""
        if self._pending.get(key):
            self._set_confirmed(key, value)
            self._cache.set(key, self._fold(key))
        else:
            self._confirmed.pop(key, None)
            self._bump(key)
            self._cache.set(key, value)

    def pending_for(self, key: str) -> List[PendingMutation]:
        return list(self._pending.get(key, []))

    def has_pending(self, task_id: Optional[str] = None) -> bool:
        return any(
            m for muts in self._pending.values() for m in muts
            if task_id is None or m.task_id == task_id
        )

    # ── State machine ──

    def begin(self, mutation: PendingMutation) -> None:
        mutation.transition(MutationState.PENDING)
        versions: Dict[str, int] = {}
        stacked: List[str] = []
        for key, updater in mutation.optimistic.items():
            if self._pending.get(key):
                stacked.append(key)
            mutation.snapshots[key] = self._cache.snapshot(key)
            if key not in self._confirmed:
                self._confirmed[key] = copy.deepcopy(self._cache.get(key))
            versions[key] = self._confirmed_version.get(key, 0)
            self._pending.setdefault(key, []).append(mutation)
            self._cache.set(key, updater(self._cache.get(key)))
        self._begin_version[mutation.mutation_id] = versions
        self._stacked[mutation.mutation_id] = stacked
        self._log("pending", mutation)

    def commit(self, mutation: PendingMutation, result: Any) -> None:
        mutation.transition(MutationState.COMMITTED)
        self._begin_version.pop(mutation.mutation_id, None)
        self._stacked.pop(mutation.mutation_id, None)

        for key in mutation.optimistic:
            self._remove_pending(key, mutation)

        touched = list(mutation.optimistic) + [
            k for k in mutation.reconcile if k not in mutation.optimistic
        ]
        for key in touched:
            reconciler = mutation.reconcile.get(key)
            if key in self._confirmed:
                confirmed = self._confirmed[key]
                if reconciler is not None:
                    self._set_confirmed(key, reconciler(confirmed, result))
                elif key in mutation.optimistic:
                    # No server-side shape to fold in: the optimistic value stands
                    self._set_confirmed(key, mutation.optimistic[key](copy.deepcopy(confirmed)))
                self._publish(key)
            elif reconciler is not None and self._cache.exists(key):
                self._bump(key)
                self._cache.set(key, reconciler(self._cache.get(key), result))

        for pattern in mutation.invalidates:
            self._cache.invalidate_pattern(pattern)
        self._log("committed", mutation)

    def rollback(self, mutation: PendingMutation, error: Optional[TaskPanelError] = None) -> None:
        mutation.transition(MutationState.ROLLED_BACK)
        mutation.error = error
        versions = self._begin_version.pop(mutation.mutation_id, {})
        stacked = self._stacked.pop(mutation.mutation_id, [])

        for key in mutation.optimistic:
            self._remove_pending(key, mutation)
            untouched = self._confirmed_version.get(key, 0) == versions.get(key, 0)
            # A snapshot taken on top of another pending mutation carries its change
            if not self._pending.get(key) and untouched and key not in stacked:
                self._confirmed.pop(key, None)
                self._cache.restore(mutation.snapshots[key])
            else:
                self._publish(key)
        self._log("rolled_back", mutation, error=error.message if error else None)

    async def run(
        self,
        mutation: PendingMutation,
        request: Callable[[], Awaitable[T]],
    ) -> T:
        """
        begin → await request → commit, or rollback and re-raise.

        A response that arrives after the mutation's task stopped being
        displayed never touches the cache: a success settles as COMMITTED
        and a failure as ROLLED_BACK, and the failure is still raised.
        """
        self.begin(mutation)
        try:
            result = await request()
        except TaskPanelError as e:
            if self._is_stale(mutation):
                self._settle_stale(mutation, MutationState.ROLLED_BACK, error=e)
            else:
                self.rollback(mutation, e)
            raise

        if self._is_stale(mutation):
            self._settle_stale(mutation, MutationState.COMMITTED)
            return result
        self.commit(mutation, result)
        return result

    # ── Navigation ──

    def discard_task(self, task_id: str) -> int:
        """
        Drop every cached value scoped to task_id (navigation away).

        In-flight mutations for the task are settled as stale so their late
        responses are ignored. Returns the number of cache keys removed.
        """
        removed = 0
        for key in CacheKeys.for_task(task_id):
            for mutation in self._pending.pop(key, []):
                if mutation.state is MutationState.PENDING:
                    mutation.stale = True
            self._confirmed.pop(key, None)
            if self._cache.delete(key):
                removed += 1
        if self._event_log is not None:
            self._event_log.write(log_view_event(
                "task_discarded",
                session_id=self._session.session_id,
                task_id=task_id,
                details={"keys_removed": removed},
            ))
        return removed

    # ── Internals ──

    def _is_stale(self, mutation: PendingMutation) -> bool:
        if mutation.stale:
            return True
        return mutation.task_id is not None and not self._session.is_active(mutation.task_id)

    def _settle_stale(
        self,
        mutation: PendingMutation,
        state: MutationState,
        error: Optional[TaskPanelError] = None,
    ) -> None:
        mutation.stale = True
        mutation.error = error
        mutation.transition(state)
        self._begin_version.pop(mutation.mutation_id, None)
        self._stacked.pop(mutation.mutation_id, None)
        for key in mutation.optimistic:
            self._remove_pending(key, mutation)
        logger.debug("Discarded stale response of %s for task %s", mutation.name, mutation.task_id)
        self._log("stale", mutation, error=error.message if error else None)

    def _remove_pending(self, key: str, mutation: PendingMutation) -> None:
        pending = self._pending.get(key)
        if pending and mutation in pending:
            pending.remove(mutation)
        if not pending:
            self._pending.pop(key, None)

    def _set_confirmed(self, key: str, value: Any) -> None:
        self._confirmed[key] = value
        self._bump(key)

    def _bump(self, key: str) -> None:
        self._confirmed_version[key] = self._confirmed_version.get(key, 0) + 1

    def _fold(self, key: str) -> Any:
        value = copy.deepcopy(self._confirmed.get(key))
        for mutation in self._pending.get(key, []):
            value = mutation.optimistic[key](value)
        return value

    def _publish(self, key: str) -> None:
        """Write confirmed + pending to the cache; forget confirmed once settled."""
        self._cache.set(key, self._fold(key))
        if not self._pending.get(key):
            self._confirmed.pop(key, None)

    def _log(self, event: str, mutation: PendingMutation, error: Optional[str] = None) -> None:
        logger.debug("Mutation %s (%s) %s", mutation.name, mutation.mutation_id, event)
        if self._event_log is not None:
            self._event_log.write(log_mutation_event(
                event=event,
                mutation_id=mutation.mutation_id,
                name=mutation.name,
                keys=mutation.keys,
                session_id=self._session.session_id,
                task_id=mutation.task_id,
                error=error,
            ))
