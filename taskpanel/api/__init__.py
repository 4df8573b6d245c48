"""TaskPanel API — typed clients over the backend's REST endpoints."""

from taskpanel.api.client import MutationClient  # noqa: F401
from taskpanel.api.friendships import FriendshipClient  # noqa: F401

__all__ = ["MutationClient", "FriendshipClient"]
