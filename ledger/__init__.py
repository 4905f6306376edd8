"""
Points Ledger

This module provides:
- Accounts with a never-negative balance and lifetime counters
- Immutable gift, bonus, earned and penalty entries
- Atomic transfers between two accounts
- Activity feed and ledger history
- Leaderboard ordering and dense rank with ties
"""

from .models import (
    Account,
    AccountDelta,
    Activity,
    ActivityType,
    EntryKind,
    EntryStatus,
    LedgerEntry,
)
from .accounts import AccountStore
from .service import LedgerService
from .gifts import GiftService
from .ranking import RankingEngine

__all__ = [
    "Account",
    "AccountDelta",
    "Activity",
    "ActivityType",
    "EntryKind",
    "EntryStatus",
    "LedgerEntry",
    "AccountStore",
    "LedgerService",
    "GiftService",
    "RankingEngine",
]
