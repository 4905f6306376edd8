"""
Friend graph: one edge per unordered pair of users, keyed by the canonical
(lexicographically ordered) pair so either side sees the same document.
"""

from .models import (
    Friendship,
    FriendshipStatus,
    FriendStatus,
    FriendRequest,
    canonical_pair,
    friendship_id,
)
from .graph import FriendGraph
from .requests import FriendRequestService

__all__ = [
    "Friendship",
    "FriendshipStatus",
    "FriendStatus",
    "FriendRequest",
    "canonical_pair",
    "friendship_id",
    "FriendGraph",
    "FriendRequestService",
]
