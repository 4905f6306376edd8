from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict

from core.errors import InvalidArgumentError
from ledger.models import Account


class FriendshipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"


class FriendStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    if user_a == user_b:
        raise InvalidArgumentError("A friendship needs two different users")
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def friendship_id(user_a: str, user_b: str) -> str:
    return ":".join(canonical_pair(user_a, user_b))


class Friendship(BaseModel):
    id: str
    user_id1: str  # first user (lexicographically)
    user_id2: str
    status: FriendshipStatus
    initiated_by: str
    created_at: datetime
    accepted_at: Optional[datetime] = None
    blocked_by: Optional[str] = None

    # Snapshots taken when the request is created
    user1_name: str = ""
    user2_name: str = ""
    user1_username: str = ""
    user2_username: str = ""

    model_config = ConfigDict(from_attributes=True)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user_id1, self.user_id2)

    def other_user_id(self, current_user_id: str) -> str:
        return self.user_id2 if self.user_id1 == current_user_id else self.user_id1

    def other_user_name(self, current_user_id: str) -> str:
        return self.user2_name if self.user_id1 == current_user_id else self.user1_name

    def other_username(self, current_user_id: str) -> str:
        return self.user2_username if self.user_id1 == current_user_id else self.user1_username

    def can_accept(self, user_id: str) -> bool:
        return (
            self.status == FriendshipStatus.PENDING
            and self.involves(user_id)
            and user_id != self.initiated_by
        )


class FriendRequest(BaseModel):
    friendship: Friendship
    requester: Account


class SendFriendRequest(BaseModel):
    receiver_id: str


class FriendshipResponse(BaseModel):
    friendship: Friendship
    notification_delivered: bool = False
    message: str


class FriendStatusResponse(BaseModel):
    user_id: str
    other_user_id: str
    status: FriendStatus
