from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class NotificationKind(str, Enum):
    GIFT_RECEIVED = "gift_received"
    FRIEND_REQUEST = "friend_request"
    FRIEND_ACCEPTED = "friend_accepted"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    LEADERBOARD_CHANGE = "leaderboard_change"
    POINTS_EXPIRING = "points_expiring"
    WEEKLY_REPORT = "weekly_report"


class Notification(BaseModel):
    id: str
    user_id: str
    type: NotificationKind
    title: str
    message: str
    related_user_id: Optional[str] = None
    related_transaction_id: Optional[str] = None
    related_friendship_id: Optional[str] = None
    read: bool = False
    created_at: datetime
    read_at: Optional[datetime] = None
    action_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class UnreadCountResponse(BaseModel):
    user_id: str
    unread: int
