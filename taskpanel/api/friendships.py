"""
TaskPanel Friendship Client — request / accept / reject / remove.

Endpoints:
    /friendships?status=     GET (list), POST {friend_username}
    /friendships/requests    GET (incoming pending requests)
    /friendships/{id}        PATCH {action: accept|reject}, DELETE
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from taskpanel.engine.transport import BackendTransport
from taskpanel.records.friendship import Friendship, FriendshipStatus
from taskpanel.rules import friendship as rules
from taskpanel.rules import validation
from taskpanel.api.client import parse_record, parse_records

logger = logging.getLogger("taskpanel.api.friendships")


class FriendshipClient:

    def __init__(self, transport: BackendTransport):
        self._transport = transport

    async def list(self, status: Optional[FriendshipStatus] = None) -> List[Friendship]:
        raw = None
        if status is not None:
            raw = validation.require_choice(status, FriendshipStatus, "status")
        body = await self._transport.request(
            "GET", "/friendships", params={"status": raw},
            failure_message="Failed to fetch friendships", operation="list_friendships",
        )
        return parse_records(Friendship, body, "Failed to fetch friendships", "list_friendships")

    async def requests(self) -> List[Friendship]:
        body = await self._transport.request(
            "GET", "/friendships/requests",
            failure_message="Failed to fetch friend requests", operation="list_friend_requests",
        )
        return parse_records(
            Friendship, body, "Failed to fetch friend requests", "list_friend_requests",
        )

    async def send_request(
        self,
        friend_username: str,
        friend_id: Optional[str] = None,
        known: Sequence[Friendship] = (),
    ) -> Friendship:
        """
        Send a request by username. When the recipient's id is known, the
        request is checked against `known` friendships before dispatch.
        """
        username = validation.require_text(friend_username, "friend_username", "Friend username")
        session = self._transport.session
        if username == session.username:
            friend_id = session.user_id
        if friend_id is not None:
            rules.check_can_request(known, session.user_id, friend_id)
        body = await self._transport.request(
            "POST", "/friendships", json={"friend_username": username},
            failure_message="Failed to send friend request", operation="send_friend_request",
        )
        return parse_record(Friendship, body, "Failed to send friend request", "send_friend_request")

    async def respond(self, friendship: Friendship, action: str) -> Friendship:
        """Accept or reject a pending request."""
        target = rules.next_status(friendship, action)
        body = await self._transport.request(
            "PATCH", f"/friendships/{friendship.id}", json={"action": action},
            failure_message=f"Failed to {action} friend request", operation=f"{action}_friend_request",
        )
        updated = parse_record(
            Friendship, body, f"Failed to {action} friend request", f"{action}_friend_request",
        )
        if updated.status != target:
            logger.warning(
                "Friendship %s is %s after %s (expected %s)",
                friendship.id, updated.status.value, action, target.value,
            )
        return updated

    async def accept(self, friendship: Friendship) -> Friendship:
        return await self.respond(friendship, "accept")

    async def reject(self, friendship: Friendship) -> Friendship:
        return await self.respond(friendship, "reject")

    async def remove(self, friendship_id: str) -> None:
        validation.require_id(friendship_id, "friendship_id")
        await self._transport.request(
            "DELETE", f"/friendships/{friendship_id}",
            failure_message="Failed to remove friend", operation="remove_friend",
        )
