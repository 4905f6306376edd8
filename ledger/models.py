from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class EntryKind(str, Enum):
    GIFT = "gift"
    BONUS = "bonus"
    EARNED = "earned"
    PENALTY = "penalty"


class EntryStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ActivityType(str, Enum):
    SENT = "sent"
    RECEIVED = "received"
    EARNED = "earned"
    DEDUCTED = "deducted"


# (minimum total gifted, level), highest first
GENEROSITY_LEVELS = (
    (5000, "Legend"),
    (2000, "Philanthropist"),
    (500, "Giver"),
    (100, "Helper"),
    (0, "Newbie"),
)


def generosity_level(score: int) -> str:
    for threshold, level in GENEROSITY_LEVELS:
        if score >= threshold:
            return level
    return GENEROSITY_LEVELS[-1][1]


class Account(BaseModel):
    id: str
    name: str = ""
    username: str = ""
    email: str = ""
    school: str = ""
    student_id: str = ""
    email_verified: bool = False

    balance: int = Field(default=0, ge=0)
    total_earned: int = Field(default=0, ge=0)
    total_gifted: int = Field(default=0, ge=0)
    gifts_given: int = Field(default=0, ge=0)
    gifts_received: int = Field(default=0, ge=0)

    # Derived; recomputed by the ranking engine, never authoritative
    rank: int = 0
    generosity_score: int = 0
    generosity_level: str = "Newbie"
    achievements: list[str] = Field(default_factory=list)

    created_at: datetime
    last_active: datetime

    model_config = ConfigDict(from_attributes=True)

    def points_expiration_days(self, now: Optional[datetime] = None, window_days: int = 30) -> int:
        now = now or datetime.now(timezone.utc)
        expires_at = self.created_at + timedelta(days=window_days)
        return max(0, (expires_at - now).days)


class AccountDelta(BaseModel):
    balance: int = 0
    total_earned: int = 0
    total_gifted: int = 0
    gifts_given: int = 0
    gifts_received: int = 0

    def counters(self) -> dict[str, int]:
        return {
            "total_earned": self.total_earned,
            "total_gifted": self.total_gifted,
            "gifts_given": self.gifts_given,
            "gifts_received": self.gifts_received,
        }


class CreateAccountRequest(BaseModel):
    user_id: str = Field(..., description="Id issued by the identity provider")
    name: str
    username: str = Field(..., min_length=3, max_length=30)
    email: str = ""
    school: str = ""
    student_id: str = ""
    email_verified: bool = False
    initial_balance: Optional[int] = Field(default=None, ge=0, description="Defaults to the configured starting balance")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "user_id": "u-alice",
            "name": "Alice Park",
            "username": "alice",
            "email": "alice@example.edu",
            "school": "State University",
        }
    })


class LedgerEntry(BaseModel):
    id: str
    kind: EntryKind
    from_user_id: Optional[str] = None
    to_user_id: str
    amount: int = Field(..., gt=0)
    message: Optional[str] = None
    status: EntryStatus
    created_at: datetime
    completed_at: Optional[datetime] = None

    # Snapshots taken when the entry is written; may be stale against the account
    from_user_name: Optional[str] = None
    from_username: Optional[str] = None
    to_user_name: str = ""
    to_username: str = ""

    model_config = ConfigDict(from_attributes=True)

    def signed_amount(self, user_id: str) -> int:
        """Effect of this entry on ``user_id``'s balance."""
        if self.status != EntryStatus.COMPLETED:
            return 0
        if self.kind == EntryKind.GIFT:
            if self.from_user_id == user_id:
                return -self.amount
            return self.amount if self.to_user_id == user_id else 0
        if self.to_user_id != user_id:
            return 0
        return -self.amount if self.kind == EntryKind.PENALTY else self.amount


class Activity(BaseModel):
    id: str
    user_id: str
    type: ActivityType
    from_user_id: Optional[str] = None
    to_user_id: Optional[str] = None
    from_name: Optional[str] = None
    to_name: Optional[str] = None
    amount: int
    message: Optional[str] = None
    transaction_id: str
    timestamp: datetime


class GiftRequest(BaseModel):
    to_user_id: str
    amount: int = Field(..., description="Points to send; must be positive")
    message: Optional[str] = Field(default=None, max_length=280)


class CreditRequest(BaseModel):
    user_id: str
    kind: EntryKind = EntryKind.BONUS
    amount: int
    message: Optional[str] = None


class TransferResponse(BaseModel):
    entry: LedgerEntry
    sender: Optional[Account] = None
    receiver: Account
    notification_delivered: bool = False
    message: str


class LedgerHistoryResponse(BaseModel):
    user_id: str
    entries: list[LedgerEntry]
    current_balance: int


class LeaderboardEntry(BaseModel):
    rank: int
    account: Account


class IntegrityReport(BaseModel):
    status: str
    user_id: str
    calculated_balance: int
    recorded_balance: int
    entry_count: int
    verified_at: datetime
