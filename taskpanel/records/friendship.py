"""Friendship record — a request/accept relationship between two users."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class FriendshipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Friendship(BaseModel):
    id: str
    user_id: str = Field(description="User who sent the request")
    friend_id: str = Field(description="User who received the request")
    status: FriendshipStatus = Field(default=FriendshipStatus.PENDING)
    created_at: Optional[datetime] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user_id, self.friend_id)

    def other(self, user_id: str) -> str:
        return self.friend_id if user_id == self.user_id else self.user_id
