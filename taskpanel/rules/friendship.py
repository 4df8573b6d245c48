"""
Friendship state transitions.

    pending ──accept──▶ accepted
    pending ──reject──▶ rejected
    any     ──remove──▶ (row deleted)

At most one friendship exists per unordered {user_id, friend_id} pair.
"""

from __future__ import annotations

from typing import FrozenSet, Optional, Sequence

from taskpanel.engine.errors import TaskPanelValidationError
from taskpanel.records.friendship import Friendship, FriendshipStatus

ACTIONS = {
    "accept": FriendshipStatus.ACCEPTED,
    "reject": FriendshipStatus.REJECTED,
}


def pair_key(user_id: str, friend_id: str) -> FrozenSet[str]:
    return frozenset((user_id, friend_id))


def find_friendship(
    friendships: Sequence[Friendship], user_id: str, friend_id: str,
) -> Optional[Friendship]:
    key = pair_key(user_id, friend_id)
    for f in friendships:
        if pair_key(f.user_id, f.friend_id) == key:
            return f
    return None


def next_status(friendship: Friendship, action: str) -> FriendshipStatus:
    """Target status for accept/reject; only pending requests can be answered."""
    if action not in ACTIONS:
        raise TaskPanelValidationError(
            f"Invalid action '{action}'. Must be 'accept' or 'reject'",
            field="action",
        )
    if friendship.status != FriendshipStatus.PENDING:
        raise TaskPanelValidationError(
            f"Cannot {action} a friendship that is {friendship.status.value}",
            field="status",
        )
    return ACTIONS[action]


def check_can_request(
    friendships: Sequence[Friendship], user_id: str, friend_id: str,
) -> None:
    """Reject a new request that would duplicate an existing pair."""
    if user_id == friend_id:
        raise TaskPanelValidationError(
            "Cannot send friend request to yourself", field="friend_id",
        )
    existing = find_friendship(friendships, user_id, friend_id)
    if existing is None:
        return
    messages = {
        FriendshipStatus.ACCEPTED: "You are already friends with this user",
        FriendshipStatus.PENDING: "Friend request already sent",
        FriendshipStatus.REJECTED: "Friend request was previously rejected",
    }
    raise TaskPanelValidationError(messages[existing.status], field="friend_id")
